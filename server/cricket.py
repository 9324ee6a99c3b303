"""
Cricket and Shanghai scoring engine.

Both variants play on the mark board: three marks close a segment for a
side. Marks beyond the third score points on that segment as long as the
opponent has not closed it.

Per segment tapped n times in a turn:
    marks_to_close = max(0, 3 - current marks)
    opponent open and n > marks_to_close -> score (n - marks_to_close) x value
    opponent closed -> at most 3 - current marks more, no points
    both closed -> no further marks allowed

Shanghai adds three category segments (T, D, 3B). Their overflow scores the
value the operator enters for the turn instead of a computed one. Shanghai
also has a +200 bonus turn that carries no marks and no darts.
"""

from dataclasses import dataclass, field
from typing import Optional

from constants import (
    EXTRA_SEGMENTS,
    MARKS_PER_DART,
    MARKS_TO_CLOSE,
    MAX_DISPLAY_MARKS,
    MAX_TAPS_PER_TURN,
    SHANGHAI_BONUS,
    segment_value,
)
from game import GameVariant, TurnValidationError
from models.game_state import MarkBoard


@dataclass
class MarksOutcome:
    """
    Result of scoring one Cricket/Shanghai turn.

    Attributes:
        taps: Marks entered per segment (zero entries dropped).
        applied_marks: Marks added to the board per segment after the cap.
        extra_scores: Entered T/D/3B values.
        points: Points scored.
        bull_marks: Marks on the bull.
    """
    taps: dict[str, int] = field(default_factory=dict)
    applied_marks: dict[str, int] = field(default_factory=dict)
    extra_scores: dict[str, int] = field(default_factory=dict)
    points: int = 0
    bull_marks: int = 0

    @property
    def total_marks(self) -> int:
        return sum(self.taps.values())


def max_taps_for_segment(
    board: MarkBoard,
    side_id: str,
    opponent_id: Optional[str],
    segment: str,
    taps_on_segment: int = 0,
    taps_in_turn: int = 0,
) -> int:
    """
    How many more taps a segment accepts in the current turn.

    Args:
        board: Current mark board.
        side_id: Acting side.
        opponent_id: Opposing side (None in solo play).
        segment: Segment key.
        taps_on_segment: Taps already entered on this segment this turn.
        taps_in_turn: Taps already entered on any segment this turn.
    """
    mine = board.marks(side_id, segment)
    if board.is_closed(opponent_id, segment):
        if mine >= MARKS_TO_CLOSE:
            return 0
        return max(0, MARKS_TO_CLOSE - mine - taps_on_segment)
    return max(0, MAX_TAPS_PER_TURN - taps_in_turn)


def _validate_count(name: str, value, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise TurnValidationError(f"{label} for {name} must be a non-negative integer")


def score_marks(
    board: MarkBoard,
    variant: GameVariant,
    side_id: str,
    opponent_id: Optional[str],
    taps: dict[str, int],
    extra_scores: Optional[dict[str, int]] = None,
    darts_thrown: int = 3,
) -> MarksOutcome:
    """
    Score a Cricket/Shanghai turn.

    Args:
        board: Mark board before the turn.
        variant: CRICKET or SHANGHAI.
        side_id: Acting side.
        opponent_id: Opposing side (None in solo play).
        taps: Marks per segment.
        extra_scores: Entered values for Shanghai T/D/3B.
        darts_thrown: Darts used; each dart is worth at most a triple.

    Returns:
        MarksOutcome for the turn.

    Raises:
        TurnValidationError: On unknown segments, negative counts, more taps
            than the darts thrown allow, taps past a closed segment, or stray
            extra scores.
    """
    if not variant.uses_marks:
        raise TurnValidationError(f"{variant.value} does not use marks")
    extra_scores = extra_scores or {}
    segments = variant.segments

    cleaned: dict[str, int] = {}
    for segment, count in taps.items():
        if segment not in segments:
            raise TurnValidationError(f"Unknown segment for {variant.value}: {segment}")
        _validate_count(segment, count, "Taps")
        if count:
            cleaned[segment] = count

    total = sum(cleaned.values())
    limit = min(MAX_TAPS_PER_TURN, MARKS_PER_DART * darts_thrown)
    if total > limit:
        raise TurnValidationError(
            f"At most {limit} marks with {darts_thrown} dart(s), got {total}"
        )

    for segment, value in extra_scores.items():
        if segment not in EXTRA_SEGMENTS or variant != GameVariant.SHANGHAI:
            raise TurnValidationError(f"No entered score allowed for segment {segment}")
        _validate_count(segment, value, "Entered score")
        if segment not in cleaned:
            raise TurnValidationError(f"Entered score for {segment} without marks on it")

    outcome = MarksOutcome(taps=cleaned, extra_scores=dict(extra_scores))
    taps_in_turn = 0
    for segment, count in cleaned.items():
        allowed = max_taps_for_segment(
            board, side_id, opponent_id, segment, taps_in_turn=taps_in_turn
        )
        if count > allowed:
            if board.is_closed_by_both(segment):
                raise TurnValidationError(f"{segment} is closed by both sides")
            raise TurnValidationError(
                f"{segment} accepts {allowed} more mark(s); opponent has closed it"
            )
        taps_in_turn += count

        mine = board.marks(side_id, segment)
        marks_to_close = max(0, MARKS_TO_CLOSE - mine)
        if not board.is_closed(opponent_id, segment) and count > marks_to_close:
            if segment in EXTRA_SEGMENTS:
                outcome.points += extra_scores.get(segment, 0)
            else:
                outcome.points += (count - marks_to_close) * segment_value(segment)

        outcome.applied_marks[segment] = min(mine + count, MAX_DISPLAY_MARKS) - mine

    outcome.bull_marks = cleaned.get("Bull", 0)
    return outcome


def shanghai_bonus_points(variant: GameVariant) -> int:
    """
    Points for a confirmed Shanghai.

    Raises:
        TurnValidationError: Outside a Shanghai game.
    """
    if variant != GameVariant.SHANGHAI:
        raise TurnValidationError("The Shanghai bonus only exists in Shanghai games")
    return SHANGHAI_BONUS


def has_won(board: MarkBoard, side_id: str, opponent_id: Optional[str]) -> bool:
    """All segments closed and at least as many points as the opponent."""
    if not board.all_closed(side_id):
        return False
    return board.points(side_id) >= board.points(opponent_id)
