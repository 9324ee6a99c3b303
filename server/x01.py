"""
X01 scoring engine.

Pure functions that score one X01 turn against a side's remaining score.
No I/O and no mutation; the caller turns the outcome into a TurnRecord.

Rules:
    - A dart scores segment x multiplier; the bull is 25, the double bull 50.
    - Double-in: until a side has doubled in, only the darts from the first
      double of the turn onward count.
    - Bust (turn scores 0, remaining unchanged): remaining would go below
      zero, would be left on 1, or would reach zero on a non-double dart.
      The last two only apply with double-out. Evaluation stops at the
      busting dart.
    - Game out: remaining reaches exactly zero on a double (or on any dart
      when double-out is off).

A turn can be entered dart by dart (score_darts) or as a pre-summed total
(score_total); both produce the same outcome for equivalent input.
"""

from dataclasses import dataclass, field
from typing import Optional

from constants import MAX_DARTS_PER_TURN, MAX_TURN_SCORE
from game import Dart, GameOptions, TurnValidationError


BUST_BELOW_ZERO = "below_zero"
BUST_LEFT_ON_ONE = "left_on_one"
BUST_NO_DOUBLE_FINISH = "no_double_finish"


@dataclass
class X01Outcome:
    """
    Result of scoring one X01 turn.

    Attributes:
        score: Points credited to the side (0 on a bust).
        remaining_before: Side's remaining score before the turn.
        remaining_after: Side's remaining score after the turn.
        darts_thrown: Darts counted for the turn.
        darts: Darts actually evaluated (stops at a bust or finish).
        is_bust: The turn busted.
        bust_reason: Which bust rule fired.
        is_double_in: This turn opened scoring for the side.
        is_game_out: This turn finished the game.
    """
    score: int
    remaining_before: int
    remaining_after: int
    darts_thrown: int
    darts: list[Dart] = field(default_factory=list)
    is_bust: bool = False
    bust_reason: Optional[str] = None
    is_double_in: bool = False
    is_game_out: bool = False


def effective_turn_score(
    darts: list[Dart],
    double_in_required: bool,
    has_doubled_in: bool,
) -> int:
    """
    Sum of the darts that count toward remaining.

    With double-in required and not yet reached, only the suffix of the turn
    starting at the first double counts.

    Example:
        >>> effective_turn_score([Dart(20), Dart(16, 2), Dart(20)], True, False)
        52
    """
    if not double_in_required or has_doubled_in:
        return sum(d.score for d in darts)
    for i, dart in enumerate(darts):
        if dart.is_double:
            return sum(d.score for d in darts[i:])
    return 0


def bust_reason(remaining_after: int, finished_on_double: bool, double_out: bool) -> Optional[str]:
    """Return the bust rule a resulting remaining score violates, if any."""
    if remaining_after < 0:
        return BUST_BELOW_ZERO
    if double_out and remaining_after == 1:
        return BUST_LEFT_ON_ONE
    if double_out and remaining_after == 0 and not finished_on_double:
        return BUST_NO_DOUBLE_FINISH
    return None


def score_darts(
    remaining: int,
    has_doubled_in: bool,
    darts: list[Dart],
    options: GameOptions,
) -> X01Outcome:
    """
    Score a turn entered dart by dart.

    Args:
        remaining: Side's remaining score.
        has_doubled_in: Whether the side has already doubled in.
        darts: 1-3 darts in throwing order.
        options: Game options (double-in/out).

    Returns:
        X01Outcome for the turn.

    Raises:
        TurnValidationError: On an empty/oversized turn or an invalid dart.
    """
    if not 1 <= len(darts) <= MAX_DARTS_PER_TURN:
        raise TurnValidationError(
            f"A turn has 1-{MAX_DARTS_PER_TURN} darts, got {len(darts)}"
        )
    for dart in darts:
        dart.validate()

    evaluated: list[Dart] = []
    score = 0
    game_out = False
    for dart in darts:
        evaluated.append(dart)
        score = effective_turn_score(evaluated, options.double_in_required, has_doubled_in)
        after = remaining - score
        reason = bust_reason(after, dart.is_double, options.double_out_required)
        if reason:
            return X01Outcome(
                score=0,
                remaining_before=remaining,
                remaining_after=remaining,
                darts_thrown=len(evaluated),
                darts=evaluated,
                is_bust=True,
                bust_reason=reason,
            )
        if after == 0:
            game_out = True
            break

    is_double_in = (
        options.double_in_required
        and not has_doubled_in
        and any(d.is_double for d in evaluated)
    )
    return X01Outcome(
        score=score,
        remaining_before=remaining,
        remaining_after=remaining - score,
        darts_thrown=len(evaluated),
        darts=evaluated,
        is_double_in=is_double_in,
        is_game_out=game_out,
    )


def score_total(
    remaining: int,
    has_doubled_in: bool,
    total: int,
    options: GameOptions,
    darts_thrown: int = MAX_DARTS_PER_TURN,
    finished_on_double: bool = True,
) -> X01Outcome:
    """
    Score a turn entered as a pre-summed total.

    The total is the effective score: with double-in pending, any score above
    zero means the side doubled in this turn. A total that reaches zero is a
    game out when the operator confirms a double finish.

    Args:
        remaining: Side's remaining score.
        has_doubled_in: Whether the side has already doubled in.
        total: Points scored, 0-180.
        options: Game options.
        darts_thrown: Darts used, 1-3.
        finished_on_double: Whether the last dart was a double.

    Returns:
        X01Outcome for the turn.

    Raises:
        TurnValidationError: If total or darts_thrown is out of range.
    """
    if isinstance(total, bool) or not isinstance(total, int):
        raise TurnValidationError(f"Turn total must be an integer, got {total!r}")
    if not 0 <= total <= MAX_TURN_SCORE:
        raise TurnValidationError(f"Turn total must be 0-{MAX_TURN_SCORE}, got {total}")
    if not 1 <= darts_thrown <= MAX_DARTS_PER_TURN:
        raise TurnValidationError(
            f"Darts thrown must be 1-{MAX_DARTS_PER_TURN}, got {darts_thrown}"
        )

    after = remaining - total
    reason = bust_reason(after, finished_on_double, options.double_out_required)
    if reason:
        return X01Outcome(
            score=0,
            remaining_before=remaining,
            remaining_after=remaining,
            darts_thrown=darts_thrown,
            is_bust=True,
            bust_reason=reason,
        )

    return X01Outcome(
        score=total,
        remaining_before=remaining,
        remaining_after=after,
        darts_thrown=darts_thrown,
        is_double_in=options.double_in_required and not has_doubled_in and total > 0,
        is_game_out=after == 0,
    )
