"""
Game service: the operations exposed to the API.

Each game has its own asyncio.Lock, kept only while a write holds or awaits
it. Every write (turn, undo, cork) runs under it, so turn numbers are
assigned from the log without races inside one process. The store's unique
(game_id, turn_number) constraint catches writers in other processes.

Flow of a turn:
    1. Confirm the game accepts writes and the player is the scheduled thrower
    2. Fold the turn log into derived state
    3. Score the candidate turn against that state (variant engine)
    4. Check the win condition
    5. Persist turn + side-state projection (+ status) atomically
    6. Refresh the derived state cache

Usage:
    service = GameService(InMemoryGameStore())
    game = await service.create_game(options, "home", "away", players)
    result = await service.submit_turn(game.game_id, "p1", "home", DartsInput([...]))
"""

import asyncio
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from checkout import suggest_checkout
from game import (
    Game,
    GameCompletedError,
    GameHaltedError,
    GameNotFoundError,
    GameOptions,
    GamePlayer,
    GameStatus,
    GameVariant,
    InconsistentStateError,
    OrderSource,
    TurnValidationError,
)
from logging_config import get_logger
from models.game_state import DerivedGameState, rebuild_state
from models.turns import TurnInput, TurnRecord
from round_the_world import build_sequence, validate_sequence
from scoring import replay_turns, score_turn
from stores.base import GameStore
from stores.state_cache import StateCache
from turn_order import (
    CurrentThrower,
    cork_order,
    current_thrower,
    derive_rematch_order,
    is_cork_game,
    requires_cork,
)
from undo import NOTHING_TO_UNDO, UndoResult, plan_undo

logger = get_logger(__name__)


@dataclass
class SubmitResult:
    """Outcome of a submitted turn."""
    turn: TurnRecord
    state: DerivedGameState
    bust: bool = False
    win: bool = False
    all_star_tier: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "turn": self.turn.to_dict(),
            "bust": self.bust,
            "win": self.win,
            "all_star_tier": self.all_star_tier,
            "state": self.state.to_dict(),
        }


@dataclass
class _GameLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class GameService:
    """
    Darts game operations over a GameStore.

    Args:
        store: Authoritative game/turn store.
        state_cache: Optional Redis cache of derived state.
        enforce_cork: Refuse turns in odd-numbered games until the cork is set.
    """

    def __init__(
        self,
        store: GameStore,
        state_cache: Optional[StateCache] = None,
        enforce_cork: bool = False,
    ):
        self.store = store
        self.state_cache = state_cache
        self.enforce_cork = enforce_cork
        self._locks: dict[str, _GameLock] = {}

    @asynccontextmanager
    async def _lock(self, game_id: str):
        """Hold the game's lock. The entry is dropped once nobody holds or waits on it."""
        entry = self._locks.get(game_id)
        if entry is None:
            entry = self._locks[game_id] = _GameLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(game_id) is entry:
                del self._locks[game_id]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _require_game(self, game_id: str) -> Game:
        game = await self.store.get_game(game_id)
        if game is None:
            raise GameNotFoundError(f"Game {game_id} not found")
        return game

    def _check_writable(self, game: Game) -> None:
        if game.halted:
            raise GameHaltedError(
                f"Game {game.game_id} is halted pending manual reconciliation"
            )

    async def _halt(self, game: Game, reason: str) -> None:
        game.halted = True
        await self.store.update_game(game)
        if self.state_cache:
            await self.state_cache.delete_state(game.game_id)
        logger.with_context(game_id=game.game_id).error(f"Game halted: {reason}")

    async def _fold(self, game: Game, turns: list[TurnRecord]) -> DerivedGameState:
        """Fold turns, halting the game if the log itself is broken."""
        try:
            return rebuild_state(game, turns)
        except (ValueError, InconsistentStateError) as e:
            await self._halt(game, str(e))
            raise InconsistentStateError(str(e))

    async def _cache_state(self, state: DerivedGameState) -> None:
        if self.state_cache:
            await self.state_cache.save_state(state.game_id, state.to_dict())

    # -------------------------------------------------------------------------
    # Game lifecycle
    # -------------------------------------------------------------------------

    async def create_game(
        self,
        options: GameOptions,
        home_side_id: str,
        away_side_id: Optional[str],
        players: list[GamePlayer],
        match_id: Optional[str] = None,
        game_number: int = 1,
        rtw_sequence: Optional[list[int]] = None,
        rng: Optional[random.Random] = None,
    ) -> Game:
        """
        Create a game.

        Round the World sequences are generated here, once. Even-numbered
        games of a match whose previous game was corked get their order from
        the auto-rematch policy.

        Args:
            options: Variant and rules.
            home_side_id: Home side.
            away_side_id: Away side (None for solo).
            players: Roster.
            match_id: Match grouping for cork/rematch rules.
            game_number: Position within the match.
            rtw_sequence: Explicit Round the World sequence.
            rng: Random source for the Random sequence mode.

        Returns:
            The stored game.

        Raises:
            TurnValidationError: On invalid options or roster.
        """
        options.validate()
        if game_number < 1:
            raise TurnValidationError(f"Game number must be at least 1, got {game_number}")

        game = Game(
            options=options,
            home_side_id=home_side_id,
            away_side_id=away_side_id,
            players=list(players),
            match_id=match_id,
            game_number=game_number,
        )
        game.validate_roster()

        if options.variant == GameVariant.ROUND_THE_WORLD:
            if rtw_sequence is not None:
                validate_sequence(rtw_sequence)
                game.rtw_sequence = list(rtw_sequence)
            else:
                game.rtw_sequence = build_sequence(options.rtw_mode, rng)

        if match_id and not is_cork_game(game_number):
            previous = next(
                (g for g in await self.store.get_match_games(match_id)
                 if g.game_number == game_number - 1),
                None,
            )
            if previous and previous.order_source == OrderSource.CORK and previous.throw_order:
                order = derive_rematch_order(game, previous.throw_order)
                if order is None:
                    logger.with_context(game_id=game.game_id).warning(
                        f"Previous cork winner {previous.throw_order[0]} not in game "
                        f"{game_number} of match {match_id}; keeping natural order"
                    )
                else:
                    game.throw_order = order
                    game.order_source = OrderSource.AUTO_REMATCH

        initial = DerivedGameState.initial(game)
        await self.store.create_game(game, list(initial.sides.values()))
        await self._cache_state(initial)

        logger.with_context(game_id=game.game_id).info(
            f"Created {options.variant.value} game {game.game_id} "
            f"(match={match_id}, game_number={game_number}, order={game.order_source.value})"
        )
        return game

    async def get_game(self, game_id: str) -> Game:
        return await self._require_game(game_id)

    async def delete_game(self, game_id: str) -> bool:
        async with self._lock(game_id):
            deleted = await self.store.delete_game(game_id)
            if deleted and self.state_cache:
                await self.state_cache.delete_state(game_id)
        return deleted

    async def set_cork_order(
        self,
        game_id: str,
        cork_winner_id: str,
        second_thrower_id: Optional[str] = None,
    ) -> Game:
        """
        Fix the throw order from a cork.

        Raises:
            TurnValidationError: If turns exist or the players are invalid.
        """
        async with self._lock(game_id):
            game = await self._require_game(game_id)
            self._check_writable(game)
            if await self.store.get_last_turn_number(game_id) > 0:
                raise TurnValidationError("Throw order cannot change once turns are recorded")

            game.throw_order = cork_order(game, cork_winner_id, second_thrower_id)
            game.order_source = OrderSource.CORK
            await self.store.update_game(game)

        logger.with_context(game_id=game_id).info(
            f"Cork order set for game {game_id}: {game.throw_order}"
        )
        return game

    async def create_rematch(self, game_id: str, rng: Optional[random.Random] = None) -> Game:
        """
        Start a new game with the same settings where the loser throws first.

        The losing side becomes the home side, so natural order starts with it.

        Raises:
            TurnValidationError: If the game is not completed or has one side.
        """
        game = await self._require_game(game_id)
        if game.status != GameStatus.COMPLETED or game.winning_side_id is None:
            raise TurnValidationError("Only completed games can be rematched")
        loser = game.opponent_of(game.winning_side_id)
        if loser is None:
            return await self.create_game(
                GameOptions.from_dict(game.options.to_dict()),
                game.home_side_id,
                game.away_side_id,
                game.players,
                rng=rng,
            )
        return await self.create_game(
            GameOptions.from_dict(game.options.to_dict()),
            loser,
            game.winning_side_id,
            game.players,
            rng=rng,
        )

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def get_current_thrower(self, game_id: str) -> CurrentThrower:
        game = await self._require_game(game_id)
        turns_taken = await self.store.get_last_turn_number(game_id)
        return current_thrower(game, turns_taken)

    async def get_turns(self, game_id: str) -> list[TurnRecord]:
        await self._require_game(game_id)
        return await self.store.get_turns(game_id)

    async def submit_turn(
        self,
        game_id: str,
        player_id: str,
        side_id: str,
        turn_input: TurnInput,
    ) -> SubmitResult:
        """
        Score and record a turn.

        Args:
            game_id: Game.
            player_id: Thrower; must be the scheduled thrower.
            side_id: Thrower's side.
            turn_input: Darts, total, marks, bonus or hit/miss.

        Returns:
            SubmitResult with the stored turn and bust/win flags.

        Raises:
            GameNotFoundError: Unknown game.
            GameHaltedError: Game halted for reconciliation.
            GameCompletedError: Game already won.
            TurnValidationError: Out-of-turn player or invalid input.
            ConcurrencyError: Another writer took the turn number.
        """
        async with self._lock(game_id):
            game = await self._require_game(game_id)
            self._check_writable(game)
            if game.status == GameStatus.COMPLETED:
                raise GameCompletedError(f"Game {game_id} is already completed")

            turns = await self.store.get_turns(game_id)
            if self.enforce_cork and requires_cork(game, len(turns)):
                raise TurnValidationError("Throw order must be set by a cork first")

            expected = current_thrower(game, len(turns))
            if player_id != expected.player_id:
                raise TurnValidationError(
                    f"Turn {expected.turn_number} belongs to {expected.player_id}, not {player_id}"
                )

            state = await self._fold(game, turns)
            scored = score_turn(game, state, player_id, side_id, turn_input)

            game_changed = False
            if scored.is_win:
                game.status = GameStatus.COMPLETED
                game.winning_side_id = side_id
                game_changed = True
            elif game.status == GameStatus.NOT_STARTED:
                game.status = GameStatus.IN_PROGRESS
                game_changed = True

            await self.store.append_turn(
                scored.turn,
                list(scored.state_after.sides.values()),
                game if game_changed else None,
            )
            await self._cache_state(scored.state_after)

        log = logger.with_context(game_id=game_id, player_id=player_id)
        log.info(
            f"Turn {scored.turn.turn_number}: {player_id} scored {scored.turn.score}"
            + (" (bust)" if scored.is_bust else "")
            + (f" [{scored.all_star_tier}]" if scored.all_star_tier else "")
        )
        if scored.is_win:
            log.info(f"Game {game_id} won by side {side_id}")

        return SubmitResult(
            turn=scored.turn,
            state=scored.state_after,
            bust=scored.is_bust,
            win=scored.is_win,
            all_star_tier=scored.all_star_tier,
        )

    async def undo_last_turn(self, game_id: str) -> UndoResult:
        """
        Delete the most recent turn.

        Returns:
            UndoResult; success is False only when there were no turns.

        Raises:
            GameNotFoundError: Unknown game.
            GameHaltedError: Game halted for reconciliation.
            InconsistentStateError: Stored state disagrees with history. The
                game is halted before this is raised.
        """
        async with self._lock(game_id):
            game = await self._require_game(game_id)
            self._check_writable(game)

            turns = await self.store.get_turns(game_id)
            if not turns:
                return UndoResult(success=False, message=NOTHING_TO_UNDO)

            projection = await self.store.get_side_states(game_id)
            try:
                last, state = plan_undo(game, turns, projection)
            except InconsistentStateError as e:
                await self._halt(game, str(e))
                raise

            reopened = game.status == GameStatus.COMPLETED
            game.winning_side_id = None
            game.status = GameStatus.IN_PROGRESS if len(turns) > 1 else GameStatus.NOT_STARTED

            await self.store.delete_turn(last, list(state.sides.values()), game)
            await self._cache_state(state)

        logger.with_context(game_id=game_id).info(
            f"Undid turn {last.turn_number} ({last.player_id}, score {last.score})"
            + (" and reopened the game" if reopened else "")
        )
        return UndoResult(
            success=True,
            turn=last,
            state=state,
            message=f"Undid turn {last.turn_number}",
            reopened=reopened,
        )

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    async def get_derived_state(self, game_id: str) -> DerivedGameState:
        """
        Current derived state, from cache when it is up to date.
        """
        game = await self._require_game(game_id)
        last_turn = await self.store.get_last_turn_number(game_id)

        if self.state_cache:
            cached = await self.state_cache.get_state(game_id)
            if cached and cached.get("last_turn_number") == last_turn:
                return DerivedGameState.from_dict(cached)

        state = await self._fold(game, await self.store.get_turns(game_id))
        await self._cache_state(state)
        return state

    async def get_scoreboard(self, game_id: str) -> dict:
        """Game, thrower, derived state and per-player stats in one view."""
        game = await self._require_game(game_id)
        state = await self.get_derived_state(game_id)

        thrower = None
        if game.status != GameStatus.COMPLETED:
            thrower = current_thrower(game, state.turns_taken).to_dict()

        checkouts = {}
        if game.variant == GameVariant.X01 and game.options.double_out_required:
            for side_id, side in state.sides.items():
                checkouts[side_id] = suggest_checkout(side.remaining)

        players = {
            pid: {**tally.to_dict(), "ppd": round(tally.ppd, 2),
                  "average": round(tally.average, 2), "mpr": round(tally.mpr, 2)}
            for pid, tally in state.players.items()
        }

        return {
            "game": game.to_dict(),
            "current_thrower": thrower,
            "requires_cork": requires_cork(game, state.turns_taken),
            "state": state.to_dict(),
            "players": players,
            "checkouts": checkouts,
        }

    async def verify_game(self, game_id: str) -> DerivedGameState:
        """
        Re-score the full history and compare it with the stored projection.

        Raises:
            InconsistentStateError: On any disagreement; the game is halted.
        """
        async with self._lock(game_id):
            game = await self._require_game(game_id)
            turns = await self.store.get_turns(game_id)
            try:
                state = replay_turns(game, turns)
            except InconsistentStateError as e:
                await self._halt(game, str(e))
                raise

            projection = await self.store.get_side_states(game_id)
            stored = {sid: s.to_dict() for sid, s in projection.items()}
            replayed = {sid: s.to_dict() for sid, s in state.sides.items()}
            if stored != replayed:
                await self._halt(game, "stored side state disagrees with replay")
                raise InconsistentStateError(
                    f"Stored state for game {game_id} disagrees with its turn history"
                )
        return state


# Global game service instance
_game_service: Optional[GameService] = None


def get_game_service() -> Optional[GameService]:
    """Get the global game service instance."""
    return _game_service


def set_game_service(service: Optional[GameService]) -> None:
    """Set the global game service instance."""
    global _game_service
    _game_service = service
