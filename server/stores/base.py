"""
Storage interface shared by the in-memory and PostgreSQL game stores.

A store keeps three things per game:
    - the game record (options, roster, status, throw order)
    - the append-only turn log, unique on (game_id, turn_number)
    - one side-state row per side, a memoized projection of the turn log

append_turn and delete_turn write the turn and the side-state rows (and,
when given, the game record) atomically: all succeed or none do.
"""

from abc import ABC, abstractmethod
from typing import Optional

from game import Game
from models.game_state import SideState
from models.turns import TurnRecord


class ConcurrencyError(Exception):
    """Raised when a turn number is already taken or is no longer the latest."""
    pass


class GameStore(ABC):
    """Persistence collaborator for the game service."""

    # ----- Games -----

    @abstractmethod
    async def create_game(self, game: Game, side_states: list[SideState]) -> None:
        """Insert a new game with its initial side state."""

    @abstractmethod
    async def get_game(self, game_id: str) -> Optional[Game]:
        """Load a game, or None if unknown."""

    @abstractmethod
    async def update_game(self, game: Game) -> None:
        """Persist status, winner, throw order and halted flag."""

    @abstractmethod
    async def get_match_games(self, match_id: str) -> list[Game]:
        """Games of a match ordered by game_number."""

    @abstractmethod
    async def delete_game(self, game_id: str) -> bool:
        """Delete a game with its turns and side state. Returns False if unknown."""

    # ----- Turns -----

    @abstractmethod
    async def get_turns(self, game_id: str) -> list[TurnRecord]:
        """All turns of a game in turn_number order."""

    @abstractmethod
    async def get_last_turn_number(self, game_id: str) -> int:
        """Highest turn_number for a game, or 0 if none."""

    @abstractmethod
    async def append_turn(
        self,
        turn: TurnRecord,
        side_states: list[SideState],
        game: Optional[Game] = None,
    ) -> None:
        """
        Insert a turn and its side-state rows atomically.

        Raises:
            ConcurrencyError: If turn.turn_number already exists for the game.
        """

    @abstractmethod
    async def delete_turn(
        self,
        turn: TurnRecord,
        side_states: list[SideState],
        game: Optional[Game] = None,
    ) -> None:
        """
        Delete the latest turn and rewrite side-state rows atomically.

        Raises:
            ConcurrencyError: If turn is not the game's latest turn.
        """

    # ----- Side state -----

    @abstractmethod
    async def get_side_states(self, game_id: str) -> dict[str, SideState]:
        """Stored per-side projection keyed by side_id."""

    async def close(self) -> None:
        """Release resources."""
