"""
Derived game state for darts scoring.

Turns are the source of truth. DerivedGameState is what you get by folding
a game's turns in turn_number order; the per-side rows kept by the stores
are a memoized projection of it and must always compare equal to a fresh
fold.

Usage:
    turns = await store.get_turns(game_id)
    state = rebuild_state(game, turns)
    print(state.sides[side_id].remaining)

Every payload kind has an _apply_<kind> handler and a matching
_revert_<kind> handler. Revert only undoes the most recent turn and uses
nothing but that turn's recorded payload.
"""

import copy
from dataclasses import dataclass, field
from typing import Optional

from constants import MARKS_TO_CLOSE, MAX_DARTS_PER_TURN
from game import Game, GameVariant, InconsistentStateError
from models.turns import MarksPayload, TurnRecord


@dataclass
class SideState:
    """
    One side's running state.

    Attributes:
        side_id: Side identifier.
        remaining: X01 score left (unused by other variants).
        has_doubled_in: X01 double-in reached.
        marks: Cricket/Shanghai marks per segment (display cap 9).
        points: Cricket/Shanghai points.
    """
    side_id: str
    remaining: int = 0
    has_doubled_in: bool = False
    marks: dict[str, int] = field(default_factory=dict)
    points: int = 0

    def to_dict(self) -> dict:
        return {
            "side_id": self.side_id,
            "remaining": self.remaining,
            "has_doubled_in": self.has_doubled_in,
            "marks": dict(self.marks),
            "points": self.points,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SideState":
        return cls(
            side_id=d["side_id"],
            remaining=d.get("remaining", 0),
            has_doubled_in=d.get("has_doubled_in", False),
            marks=dict(d.get("marks", {})),
            points=d.get("points", 0),
        )


@dataclass
class PlayerTally:
    """Per-player facts for the current game."""
    player_id: str
    side_id: str
    turns: int = 0
    darts: int = 0
    score: int = 0
    marks: int = 0
    mark_turns: int = 0
    rtw_index: int = 0

    @property
    def ppd(self) -> float:
        """Points per dart."""
        if self.darts == 0:
            return 0.0
        return self.score / self.darts

    @property
    def average(self) -> float:
        """Three-dart average."""
        return self.ppd * MAX_DARTS_PER_TURN

    @property
    def mpr(self) -> float:
        """Marks per round (per segment turn)."""
        if self.mark_turns == 0:
            return 0.0
        return self.marks / self.mark_turns

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "side_id": self.side_id,
            "turns": self.turns,
            "darts": self.darts,
            "score": self.score,
            "marks": self.marks,
            "mark_turns": self.mark_turns,
            "rtw_index": self.rtw_index,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "PlayerTally":
        return cls(**d)


class MarkBoard:
    """
    Read-only view of Cricket/Shanghai marks across both sides.

    A segment is closed for a side at 3 marks. In solo play there is no
    opponent, so nothing is ever closed by both.
    """

    def __init__(self, sides: dict[str, SideState], segments: tuple[str, ...]):
        self.sides = sides
        self.segments = segments

    def marks(self, side_id: str, segment: str) -> int:
        return self.sides[side_id].marks.get(segment, 0)

    def is_closed(self, side_id: Optional[str], segment: str) -> bool:
        if side_id is None or side_id not in self.sides:
            return False
        return self.marks(side_id, segment) >= MARKS_TO_CLOSE

    def is_closed_by_both(self, segment: str) -> bool:
        if len(self.sides) < 2:
            return False
        return all(self.is_closed(side_id, segment) for side_id in self.sides)

    def all_closed(self, side_id: str) -> bool:
        return all(self.is_closed(side_id, seg) for seg in self.segments)

    def points(self, side_id: Optional[str]) -> int:
        if side_id is None or side_id not in self.sides:
            return 0
        return self.sides[side_id].points


@dataclass
class DerivedGameState:
    """
    Game state folded from turns.

    Attributes:
        game_id: Game identifier.
        variant: Game variant.
        sides: side_id -> SideState.
        players: player_id -> PlayerTally.
        segments: Segments in play for mark variants.
        last_turn_number: turn_number of the last applied turn (0 if none).
    """
    game_id: str
    variant: GameVariant
    sides: dict[str, SideState] = field(default_factory=dict)
    players: dict[str, PlayerTally] = field(default_factory=dict)
    segments: tuple[str, ...] = ()
    last_turn_number: int = 0

    @classmethod
    def initial(cls, game: Game) -> "DerivedGameState":
        """State of a game before any turn."""
        segments = game.variant.segments
        state = cls(game_id=game.game_id, variant=game.variant, segments=segments)
        for side_id in game.side_ids:
            state.sides[side_id] = SideState(
                side_id=side_id,
                remaining=game.options.x01_target if game.variant == GameVariant.X01 else 0,
                marks={seg: 0 for seg in segments},
            )
        for player in game.players:
            state.players[player.player_id] = PlayerTally(
                player_id=player.player_id,
                side_id=player.side_id,
            )
        return state

    @property
    def turns_taken(self) -> int:
        return self.last_turn_number

    @property
    def mark_board(self) -> MarkBoard:
        return MarkBoard(self.sides, self.segments)

    def copy(self) -> "DerivedGameState":
        return copy.deepcopy(self)

    # -------------------------------------------------------------------------
    # Fold
    # -------------------------------------------------------------------------

    def apply(self, turn: TurnRecord) -> "DerivedGameState":
        """
        Apply a turn to produce new state.

        Turns must be applied in turn_number order.

        Args:
            turn: The turn to apply.

        Returns:
            self for chaining.

        Raises:
            ValueError: If the turn is out of sequence or of an unknown kind.
            InconsistentStateError: If the turn's recorded facts disagree
                with the state it is applied to.
        """
        expected = self.last_turn_number + 1
        if turn.turn_number != expected:
            raise ValueError(f"Expected turn {expected}, got {turn.turn_number}")

        handler = getattr(self, f"_apply_{turn.kind.value}", None)
        if handler is None:
            raise ValueError(f"Unknown turn kind: {turn.kind}")

        tally = self._tally(turn)
        handler(turn)
        tally.turns += 1
        tally.darts += turn.darts_thrown
        tally.score += turn.score
        if isinstance(turn.payload, MarksPayload):
            tally.marks += turn.payload.total_marks
            tally.mark_turns += 1

        self.last_turn_number = turn.turn_number
        return self

    def revert(self, turn: TurnRecord) -> "DerivedGameState":
        """
        Roll back the most recent turn using only its recorded payload.

        Args:
            turn: The turn being undone; must be the last one applied.

        Returns:
            self for chaining.

        Raises:
            ValueError: If the turn is not the most recent one.
            InconsistentStateError: If rolling back would drive state negative.
        """
        if turn.turn_number != self.last_turn_number:
            raise ValueError(
                f"Can only revert turn {self.last_turn_number}, got {turn.turn_number}"
            )

        handler = getattr(self, f"_revert_{turn.kind.value}", None)
        if handler is None:
            raise ValueError(f"Unknown turn kind: {turn.kind}")

        tally = self._tally(turn)
        handler(turn)
        tally.turns -= 1
        tally.darts -= turn.darts_thrown
        tally.score -= turn.score
        if isinstance(turn.payload, MarksPayload):
            tally.marks -= turn.payload.total_marks
            tally.mark_turns -= 1

        self.last_turn_number = turn.turn_number - 1
        return self

    def _tally(self, turn: TurnRecord) -> PlayerTally:
        tally = self.players.get(turn.player_id)
        if tally is None:
            raise InconsistentStateError(
                f"Turn {turn.turn_number} names unknown player {turn.player_id}"
            )
        return tally

    def _side(self, turn: TurnRecord) -> SideState:
        side = self.sides.get(turn.side_id)
        if side is None:
            raise InconsistentStateError(
                f"Turn {turn.turn_number} names unknown side {turn.side_id}"
            )
        return side

    # -------------------------------------------------------------------------
    # X01
    # -------------------------------------------------------------------------

    def _apply_x01(self, turn: TurnRecord) -> None:
        side = self._side(turn)
        payload = turn.payload
        if side.remaining != payload.remaining_before:
            raise InconsistentStateError(
                f"Turn {turn.turn_number} expected remaining {payload.remaining_before}, "
                f"side {side.side_id} has {side.remaining}"
            )
        side.remaining -= turn.score
        if payload.is_double_in:
            side.has_doubled_in = True

    def _revert_x01(self, turn: TurnRecord) -> None:
        side = self._side(turn)
        side.remaining += turn.score
        if turn.payload.is_double_in:
            side.has_doubled_in = False

    # -------------------------------------------------------------------------
    # Cricket / Shanghai
    # -------------------------------------------------------------------------

    def _apply_marks(self, turn: TurnRecord) -> None:
        side = self._side(turn)
        for segment, added in turn.payload.applied_marks.items():
            side.marks[segment] = side.marks.get(segment, 0) + added
        side.points += turn.payload.points

    def _revert_marks(self, turn: TurnRecord) -> None:
        side = self._side(turn)
        for segment, added in turn.payload.applied_marks.items():
            current = side.marks.get(segment, 0)
            if current < added:
                raise InconsistentStateError(
                    f"Undo of turn {turn.turn_number} would leave {segment} below zero"
                )
            side.marks[segment] = current - added
        if side.points < turn.payload.points:
            raise InconsistentStateError(
                f"Undo of turn {turn.turn_number} would leave points below zero"
            )
        side.points -= turn.payload.points

    def _apply_shanghai_bonus(self, turn: TurnRecord) -> None:
        self._side(turn).points += turn.payload.points

    def _revert_shanghai_bonus(self, turn: TurnRecord) -> None:
        side = self._side(turn)
        if side.points < turn.payload.points:
            raise InconsistentStateError(
                f"Undo of turn {turn.turn_number} would leave points below zero"
            )
        side.points -= turn.payload.points

    # -------------------------------------------------------------------------
    # Round the World
    # -------------------------------------------------------------------------

    def _apply_rtw(self, turn: TurnRecord) -> None:
        tally = self._tally(turn)
        if tally.rtw_index != turn.payload.index_before:
            raise InconsistentStateError(
                f"Turn {turn.turn_number} expected index {turn.payload.index_before}, "
                f"player {tally.player_id} is at {tally.rtw_index}"
            )
        if turn.payload.hit:
            tally.rtw_index += 1

    def _revert_rtw(self, turn: TurnRecord) -> None:
        self._tally(turn).rtw_index = turn.payload.index_before

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Snapshot for comparison, caching and API responses."""
        return {
            "game_id": self.game_id,
            "variant": self.variant.value,
            "segments": list(self.segments),
            "last_turn_number": self.last_turn_number,
            "sides": {sid: s.to_dict() for sid, s in self.sides.items()},
            "players": {pid: p.to_dict() for pid, p in self.players.items()},
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DerivedGameState":
        return cls(
            game_id=d["game_id"],
            variant=GameVariant(d["variant"]),
            segments=tuple(d.get("segments", [])),
            last_turn_number=d.get("last_turn_number", 0),
            sides={sid: SideState.from_dict(s) for sid, s in d.get("sides", {}).items()},
            players={pid: PlayerTally.from_dict(p) for pid, p in d.get("players", {}).items()},
        )


def rebuild_state(game: Game, turns: list[TurnRecord]) -> DerivedGameState:
    """
    Fold a game's turns into derived state.

    Args:
        game: The game the turns belong to.
        turns: Turns in turn_number order (may be empty).

    Returns:
        Derived state after the last turn.

    Raises:
        ValueError: If the turns have gaps or are out of order.
        InconsistentStateError: If a turn's facts contradict earlier turns.
    """
    state = DerivedGameState.initial(game)
    for turn in turns:
        state.apply(turn)
    return state
