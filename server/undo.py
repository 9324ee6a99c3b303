"""
Undo of the most recent turn.

Only the turn with the highest turn_number can be undone. The stored side
state is rolled back by exactly the deltas the turn recorded, then compared
with a fresh fold of the remaining history. If the two disagree, the stored
state has drifted and InconsistentStateError is raised; the caller must halt
writes to the game until it is reconciled by hand.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from game import Game, InconsistentStateError
from models.game_state import DerivedGameState, SideState, rebuild_state
from models.turns import TurnRecord

logger = logging.getLogger(__name__)

NOTHING_TO_UNDO = "nothing to undo"


@dataclass
class UndoResult:
    """
    Outcome of an undo request.

    Attributes:
        success: False only when there was nothing to undo.
        turn: The deleted turn.
        state: State after the undo.
        message: Human-readable summary.
        reopened: The undone turn had completed the game.
    """
    success: bool
    turn: Optional[TurnRecord] = None
    state: Optional[DerivedGameState] = None
    message: str = ""
    reopened: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "reopened": self.reopened,
            "turn": self.turn.to_dict() if self.turn else None,
            "state": self.state.to_dict() if self.state else None,
        }


def _fold(game: Game, turns: list[TurnRecord]) -> DerivedGameState:
    try:
        return rebuild_state(game, turns)
    except ValueError as e:
        raise InconsistentStateError(f"Turn history of game {game.game_id} is broken: {e}")


def plan_undo(
    game: Game,
    turns: list[TurnRecord],
    projection: Optional[dict[str, SideState]] = None,
) -> tuple[TurnRecord, DerivedGameState]:
    """
    Work out the state after undoing the last turn, without writing anything.

    Args:
        game: The game.
        turns: Full turn history in turn_number order (must not be empty).
        projection: Stored per-side state, if the store keeps one. When
            omitted the fold of the full history stands in for it.

    Returns:
        (turn to delete, state after deleting it)

    Raises:
        InconsistentStateError: If rolling back the stored state does not
            land on the fold of the remaining turns.
    """
    last = turns[-1]
    current = _fold(game, turns)
    if projection is not None:
        if set(projection) != set(current.sides):
            raise InconsistentStateError(
                f"Stored sides {sorted(projection)} do not match game sides {sorted(current.sides)}"
            )
        current.sides = {sid: SideState.from_dict(s.to_dict()) for sid, s in projection.items()}

    rolled_back = current.revert(last)
    truth = _fold(game, turns[:-1])

    if rolled_back.to_dict() != truth.to_dict():
        logger.error(
            f"Undo of turn {last.turn_number} in game {game.game_id} disagrees with replay: "
            f"rolled back {rolled_back.to_dict()['sides']}, replay {truth.to_dict()['sides']}"
        )
        raise InconsistentStateError(
            f"Stored state for game {game.game_id} disagrees with its turn history"
        )
    return last, truth
