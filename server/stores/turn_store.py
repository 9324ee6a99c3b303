"""
PostgreSQL-backed game and turn store.

The turn log is append-only except for undo, which deletes only the latest
turn. Side-state rows are a projection of the log, written in the same
transaction as the turn they reflect.

Features:
- Optimistic concurrency via unique constraint on (game_id, turn_number)
- Turn insert + side-state upsert (+ game status) in one transaction
- Undo guarded so only the latest turn can be deleted
"""

import json
import logging
from datetime import timezone
from typing import Optional

import asyncpg

from game import Game
from models.game_state import SideState
from models.turns import TurnRecord, payload_from_dict
from stores.base import ConcurrencyError, GameStore

logger = logging.getLogger(__name__)


# SQL schema for the darts store
SCHEMA_SQL = """
-- Games (record of options, roster and status)
CREATE TABLE IF NOT EXISTS darts_games (
    id VARCHAR(64) PRIMARY KEY,
    match_id VARCHAR(64),
    game_number INT NOT NULL DEFAULT 1,
    variant VARCHAR(20) NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'NotStarted',
    winning_side_id VARCHAR(64),
    halted BOOLEAN NOT NULL DEFAULT FALSE,
    data JSONB NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Turns (append-only log, undo deletes the latest row only)
CREATE TABLE IF NOT EXISTS darts_turns (
    id BIGSERIAL PRIMARY KEY,
    game_id VARCHAR(64) NOT NULL REFERENCES darts_games(id) ON DELETE CASCADE,
    turn_number INT NOT NULL,
    round_number INT NOT NULL,
    player_id VARCHAR(64) NOT NULL,
    side_id VARCHAR(64) NOT NULL,
    darts_thrown INT NOT NULL,
    score INT NOT NULL,
    kind VARCHAR(20) NOT NULL,
    all_star_tier VARCHAR(10),
    payload JSONB NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    -- One row per turn number per game
    UNIQUE(game_id, turn_number)
);

-- Side state (projection of darts_turns, not source of truth)
CREATE TABLE IF NOT EXISTS darts_side_state (
    game_id VARCHAR(64) NOT NULL REFERENCES darts_games(id) ON DELETE CASCADE,
    side_id VARCHAR(64) NOT NULL,
    remaining INT NOT NULL DEFAULT 0,
    has_doubled_in BOOLEAN NOT NULL DEFAULT FALSE,
    marks JSONB NOT NULL DEFAULT '{}',
    points INT NOT NULL DEFAULT 0,
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    PRIMARY KEY (game_id, side_id)
);

CREATE INDEX IF NOT EXISTS idx_darts_turns_game ON darts_turns(game_id, turn_number);
CREATE INDEX IF NOT EXISTS idx_darts_turns_player ON darts_turns(player_id);
CREATE INDEX IF NOT EXISTS idx_darts_games_match ON darts_games(match_id, game_number)
    WHERE match_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_darts_games_status ON darts_games(status);
"""

UPSERT_SIDE_SQL = """
INSERT INTO darts_side_state (game_id, side_id, remaining, has_doubled_in, marks, points)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (game_id, side_id) DO UPDATE
SET remaining = EXCLUDED.remaining,
    has_doubled_in = EXCLUDED.has_doubled_in,
    marks = EXCLUDED.marks,
    points = EXCLUDED.points,
    updated_at = NOW()
"""

UPDATE_GAME_SQL = """
UPDATE darts_games
SET status = $2, winning_side_id = $3, halted = $4, data = $5, updated_at = NOW()
WHERE id = $1
"""


class PostgresGameStore(GameStore):
    """
    PostgreSQL-backed game store.

    Uses asyncpg for async database access.
    """

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize store with connection pool.

        Args:
            pool: asyncpg connection pool.
        """
        self.pool = pool

    @classmethod
    async def create(cls, postgres_url: str) -> "PostgresGameStore":
        """
        Create a store with a new connection pool.

        Args:
            postgres_url: PostgreSQL connection URL.

        Returns:
            Configured PostgresGameStore instance.
        """
        pool = await asyncpg.create_pool(postgres_url, min_size=2, max_size=10)
        store = cls(pool)
        await store.initialize_schema()
        return store

    async def initialize_schema(self) -> None:
        """Create database tables if they don't exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Darts store schema initialized")

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()

    # -------------------------------------------------------------------------
    # Games
    # -------------------------------------------------------------------------

    async def create_game(self, game: Game, side_states: list[SideState]) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                try:
                    await conn.execute(
                        """
                        INSERT INTO darts_games
                            (id, match_id, game_number, variant, status, winning_side_id, halted, data)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                        """,
                        game.game_id,
                        game.match_id,
                        game.game_number,
                        game.variant.value,
                        game.status.value,
                        game.winning_side_id,
                        game.halted,
                        json.dumps(game.to_dict()),
                    )
                except asyncpg.UniqueViolationError:
                    raise ConcurrencyError(f"Game {game.game_id} already exists")
                await self._write_sides(conn, game.game_id, side_states)

    async def get_game(self, game_id: str) -> Optional[Game]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT data FROM darts_games WHERE id = $1", game_id)
            return self._row_to_game(row) if row else None

    async def update_game(self, game: Game) -> None:
        async with self.pool.acquire() as conn:
            await self._write_game(conn, game)

    async def get_match_games(self, match_id: str) -> list[Game]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT data FROM darts_games
                WHERE match_id = $1
                ORDER BY game_number
                """,
                match_id,
            )
            return [self._row_to_game(row) for row in rows]

    async def delete_game(self, game_id: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM darts_games WHERE id = $1", game_id)
            return result.endswith(" 1")

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def get_turns(self, game_id: str) -> list[TurnRecord]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT game_id, turn_number, round_number, player_id, side_id,
                       darts_thrown, score, all_star_tier, payload, created_at
                FROM darts_turns
                WHERE game_id = $1
                ORDER BY turn_number
                """,
                game_id,
            )
            return [self._row_to_turn(row) for row in rows]

    async def get_last_turn_number(self, game_id: str) -> int:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT COALESCE(MAX(turn_number), 0) as last
                FROM darts_turns
                WHERE game_id = $1
                """,
                game_id,
            )
            return row["last"]

    async def append_turn(
        self,
        turn: TurnRecord,
        side_states: list[SideState],
        game: Optional[Game] = None,
    ) -> None:
        """
        Insert a turn with its side-state projection in one transaction.

        Raises:
            ConcurrencyError: If turn_number already exists for this game.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                try:
                    await conn.execute(
                        """
                        INSERT INTO darts_turns
                            (game_id, turn_number, round_number, player_id, side_id,
                             darts_thrown, score, kind, all_star_tier, payload)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                        """,
                        turn.game_id,
                        turn.turn_number,
                        turn.round_number,
                        turn.player_id,
                        turn.side_id,
                        turn.darts_thrown,
                        turn.score,
                        turn.kind.value,
                        turn.all_star_tier,
                        json.dumps(turn.payload.to_dict()),
                    )
                except asyncpg.UniqueViolationError:
                    raise ConcurrencyError(
                        f"Turn {turn.turn_number} already exists for game {turn.game_id}"
                    )
                await self._write_sides(conn, turn.game_id, side_states)
                if game is not None:
                    await self._write_game(conn, game)

    async def delete_turn(
        self,
        turn: TurnRecord,
        side_states: list[SideState],
        game: Optional[Game] = None,
    ) -> None:
        """
        Delete the latest turn and rewrite the projection in one transaction.

        Raises:
            ConcurrencyError: If the turn is not the game's latest.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    """
                    DELETE FROM darts_turns
                    WHERE game_id = $1 AND turn_number = $2
                      AND turn_number = (
                          SELECT MAX(turn_number) FROM darts_turns WHERE game_id = $1
                      )
                    """,
                    turn.game_id,
                    turn.turn_number,
                )
                if not result.endswith(" 1"):
                    raise ConcurrencyError(
                        f"Turn {turn.turn_number} is not the latest turn of game {turn.game_id}"
                    )
                await self._write_sides(conn, turn.game_id, side_states)
                if game is not None:
                    await self._write_game(conn, game)

    # -------------------------------------------------------------------------
    # Side state
    # -------------------------------------------------------------------------

    async def get_side_states(self, game_id: str) -> dict[str, SideState]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT side_id, remaining, has_doubled_in, marks, points
                FROM darts_side_state
                WHERE game_id = $1
                """,
                game_id,
            )
            return {
                row["side_id"]: SideState(
                    side_id=row["side_id"],
                    remaining=row["remaining"],
                    has_doubled_in=row["has_doubled_in"],
                    marks=json.loads(row["marks"]) if row["marks"] else {},
                    points=row["points"],
                )
                for row in rows
            }

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _write_sides(self, conn, game_id: str, side_states: list[SideState]) -> None:
        for state in side_states:
            await conn.execute(
                UPSERT_SIDE_SQL,
                game_id,
                state.side_id,
                state.remaining,
                state.has_doubled_in,
                json.dumps(state.marks),
                state.points,
            )

    async def _write_game(self, conn, game: Game) -> None:
        await conn.execute(
            UPDATE_GAME_SQL,
            game.game_id,
            game.status.value,
            game.winning_side_id,
            game.halted,
            json.dumps(game.to_dict()),
        )

    def _row_to_game(self, row: asyncpg.Record) -> Game:
        """Convert a database row to a Game."""
        return Game.from_dict(json.loads(row["data"]))

    def _row_to_turn(self, row: asyncpg.Record) -> TurnRecord:
        """Convert a database row to a TurnRecord."""
        return TurnRecord(
            game_id=row["game_id"],
            turn_number=row["turn_number"],
            round_number=row["round_number"],
            player_id=row["player_id"],
            side_id=row["side_id"],
            darts_thrown=row["darts_thrown"],
            score=row["score"],
            payload=payload_from_dict(json.loads(row["payload"])),
            all_star_tier=row["all_star_tier"],
            created_at=row["created_at"].replace(tzinfo=timezone.utc),
        )


# Global store instance (initialized on first use)
_game_store: Optional[PostgresGameStore] = None


async def get_game_store(postgres_url: str) -> PostgresGameStore:
    """
    Get or create the global PostgreSQL store instance.

    Args:
        postgres_url: PostgreSQL connection URL.

    Returns:
        PostgresGameStore instance.
    """
    global _game_store
    if _game_store is None:
        _game_store = await PostgresGameStore.create(postgres_url)
    return _game_store


async def close_game_store() -> None:
    """Close the global store connection pool."""
    global _game_store
    if _game_store is not None:
        await _game_store.close()
        _game_store = None
