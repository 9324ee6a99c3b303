"""
Round the World scoring engine.

Every player works through the same ordered sequence of targets at their
own pace. A hit on the current target scores the target's value and moves
the player to the next one. The first player past the last target wins the
game for their side. Scores are per player; sides are only a label here.
"""

import random
from dataclasses import dataclass
from typing import Optional

from constants import RTW_NUMBERS
from game import RtwMode, TurnValidationError


def build_sequence(mode: RtwMode, rng: Optional[random.Random] = None) -> list[int]:
    """
    Build the target sequence for a new game.

    Random mode shuffles 1-20 plus the bull once (Fisher-Yates); the result
    is stored on the game and never regenerated.

    Args:
        mode: Sequence mode.
        rng: Random source (for reproducible tests).

    Returns:
        21 targets, each of 1-20 and 25 exactly once.
    """
    if mode == RtwMode.ONE_TO_TWENTY:
        return list(RTW_NUMBERS)
    if mode == RtwMode.TWENTY_TO_ONE:
        return list(reversed(RTW_NUMBERS[:-1])) + [RTW_NUMBERS[-1]]

    rng = rng or random.Random()
    numbers = list(RTW_NUMBERS)
    for i in range(len(numbers) - 1, 0, -1):
        j = rng.randint(0, i)
        numbers[i], numbers[j] = numbers[j], numbers[i]
    return numbers


def validate_sequence(sequence: list[int]) -> None:
    """
    Raises:
        TurnValidationError: Unless the sequence is a permutation of 1-20 and 25.
    """
    if sorted(sequence) != sorted(RTW_NUMBERS):
        raise TurnValidationError("Sequence must contain 1-20 and 25 exactly once each")


@dataclass
class RtwOutcome:
    """
    Result of one Round the World attempt.

    Attributes:
        target: Target thrown at.
        hit: Whether it was hit.
        score: Target value on a hit, else 0.
        index_before: Player's progress before the attempt.
        index_after: Player's progress after the attempt.
        finished: The player has hit every target.
    """
    target: int
    hit: bool
    score: int
    index_before: int
    index_after: int
    finished: bool


def current_target(sequence: list[int], index: int) -> Optional[int]:
    """The player's next target, or None once they have finished."""
    if index >= len(sequence):
        return None
    return sequence[index]


def score_attempt(sequence: list[int], index: int, hit: bool) -> RtwOutcome:
    """
    Score a Round the World attempt.

    Args:
        sequence: The game's targets.
        index: Player's current progress.
        hit: Whether the current target was hit.

    Returns:
        RtwOutcome for the attempt.

    Raises:
        TurnValidationError: If the player has already finished.
    """
    target = current_target(sequence, index)
    if target is None:
        raise TurnValidationError("Player has already completed the sequence")

    index_after = index + 1 if hit else index
    return RtwOutcome(
        target=target,
        hit=hit,
        score=target if hit else 0,
        index_before=index,
        index_after=index_after,
        finished=index_after >= len(sequence),
    )
