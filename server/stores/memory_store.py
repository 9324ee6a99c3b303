"""
In-process game store.

Used when POSTGRES_URL is not configured and in tests. Records are copied
in and out through their dict form so callers never share objects with the
store.
"""

from typing import Optional

from game import Game
from models.game_state import SideState
from models.turns import TurnRecord
from stores.base import ConcurrencyError, GameStore


class InMemoryGameStore(GameStore):
    """Dict-backed GameStore."""

    def __init__(self):
        self._games: dict[str, dict] = {}
        self._turns: dict[str, list[dict]] = {}
        self._sides: dict[str, dict[str, dict]] = {}

    async def create_game(self, game: Game, side_states: list[SideState]) -> None:
        if game.game_id in self._games:
            raise ConcurrencyError(f"Game {game.game_id} already exists")
        self._games[game.game_id] = game.to_dict()
        self._turns[game.game_id] = []
        self._sides[game.game_id] = {s.side_id: s.to_dict() for s in side_states}

    async def get_game(self, game_id: str) -> Optional[Game]:
        data = self._games.get(game_id)
        return Game.from_dict(data) if data else None

    async def update_game(self, game: Game) -> None:
        if game.game_id not in self._games:
            raise KeyError(game.game_id)
        self._games[game.game_id] = game.to_dict()

    async def get_match_games(self, match_id: str) -> list[Game]:
        games = [Game.from_dict(d) for d in self._games.values() if d.get("match_id") == match_id]
        return sorted(games, key=lambda g: g.game_number)

    async def delete_game(self, game_id: str) -> bool:
        if game_id not in self._games:
            return False
        del self._games[game_id]
        self._turns.pop(game_id, None)
        self._sides.pop(game_id, None)
        return True

    async def get_turns(self, game_id: str) -> list[TurnRecord]:
        return [TurnRecord.from_dict(d) for d in self._turns.get(game_id, [])]

    async def get_last_turn_number(self, game_id: str) -> int:
        turns = self._turns.get(game_id, [])
        return turns[-1]["turn_number"] if turns else 0

    async def append_turn(
        self,
        turn: TurnRecord,
        side_states: list[SideState],
        game: Optional[Game] = None,
    ) -> None:
        turns = self._turns.setdefault(turn.game_id, [])
        if any(t["turn_number"] == turn.turn_number for t in turns):
            raise ConcurrencyError(
                f"Turn {turn.turn_number} already exists for game {turn.game_id}"
            )
        turns.append(turn.to_dict())
        sides = self._sides.setdefault(turn.game_id, {})
        for state in side_states:
            sides[state.side_id] = state.to_dict()
        if game is not None:
            self._games[game.game_id] = game.to_dict()

    async def delete_turn(
        self,
        turn: TurnRecord,
        side_states: list[SideState],
        game: Optional[Game] = None,
    ) -> None:
        turns = self._turns.get(turn.game_id, [])
        if not turns or turns[-1]["turn_number"] != turn.turn_number:
            raise ConcurrencyError(
                f"Turn {turn.turn_number} is not the latest turn of game {turn.game_id}"
            )
        turns.pop()
        sides = self._sides.setdefault(turn.game_id, {})
        for state in side_states:
            sides[state.side_id] = state.to_dict()
        if game is not None:
            self._games[game.game_id] = game.to_dict()

    async def get_side_states(self, game_id: str) -> dict[str, SideState]:
        return {
            side_id: SideState.from_dict(d)
            for side_id, d in self._sides.get(game_id, {}).items()
        }

    @property
    def game_count(self) -> int:
        return len(self._games)
