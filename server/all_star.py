"""
All-Star classification.

Tags exceptional turns with a bonus tier for later statistics. The tier is
cosmetic: it never affects scoring or win detection.

X01: the turn score is doubled when the turn doubled in or finished the
game, then compared against 95 / 126 / 171 for single / double / triple.

Cricket and Shanghai: 5 / 7 / 9 marks in a turn for single / double /
triple, except that three or more bull marks always classify as a single.
"""

from enum import Enum
from typing import Optional

from constants import (
    BULL_MARKS_ALL_STAR,
    MARKS_ALL_STAR_THRESHOLDS,
    X01_ALL_STAR_THRESHOLDS,
)


class AllStarTier(str, Enum):
    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"


def _tier_for(value: int, thresholds: tuple[tuple[int, str], ...]) -> Optional[AllStarTier]:
    for minimum, tier in thresholds:
        if value >= minimum:
            return AllStarTier(tier)
    return None


def classify_x01(
    score: int,
    is_double_in: bool = False,
    is_game_out: bool = False,
    is_bust: bool = False,
) -> Optional[AllStarTier]:
    """
    Classify an X01 turn.

    Example:
        >>> classify_x01(64, is_game_out=True)
        <AllStarTier.DOUBLE: 'double'>
    """
    if is_bust or score <= 0:
        return None
    qualifying = score * 2 if (is_double_in or is_game_out) else score
    return _tier_for(qualifying, X01_ALL_STAR_THRESHOLDS)


def classify_marks(total_marks: int, bull_marks: int = 0) -> Optional[AllStarTier]:
    """Classify a Cricket/Shanghai segment turn. A bull turn is always a single."""
    if bull_marks >= BULL_MARKS_ALL_STAR:
        return AllStarTier.SINGLE
    return _tier_for(total_marks, MARKS_ALL_STAR_THRESHOLDS)
