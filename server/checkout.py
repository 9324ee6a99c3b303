"""
X01 checkout suggestions.

Suggests a finish for a remaining score under double-out: the fewest darts,
preferring the common finishing doubles (D20, D16, D18, ...). Scores above
170 and the bogey numbers (169, 168, 166, 165, 163, 162, 159) have none.
"""

from functools import lru_cache
from typing import Optional

from constants import BOARD_NUMBERS, BULL, MAX_DARTS_PER_TURN
from game import Dart

MAX_CHECKOUT = 170

_FINISH_PREFERENCE = (20, 16, 18, 12, 10, 8, 14, 6, 4, 2, 19, 17, 15, 13, 11, 9, 7, 5, 3, 1)
FINISHING_DARTS: tuple[Dart, ...] = tuple(Dart(n, 2) for n in _FINISH_PREFERENCE) + (Dart(BULL, 2),)

SETUP_DARTS: tuple[Dart, ...] = tuple(
    sorted(
        [Dart(n, m) for n in BOARD_NUMBERS for m in (3, 1, 2)] + [Dart(BULL, 1), Dart(BULL, 2)],
        key=lambda d: (-d.score, -d.multiplier),
    )
)


def _finish_with(remaining: int, darts_left: int) -> Optional[tuple[Dart, ...]]:
    for finish in FINISHING_DARTS:
        if finish.score == remaining:
            return (finish,)
    if darts_left == 1:
        return None

    for finish in FINISHING_DARTS:
        need = remaining - finish.score
        if need <= 1:
            continue
        for setup in SETUP_DARTS:
            if setup.score == need:
                return (setup, finish)
    if darts_left == 2:
        return None

    for first in SETUP_DARTS:
        rest = remaining - first.score
        if rest <= 1:
            continue
        tail = _finish_with(rest, 2)
        if tail:
            return (first,) + tail
    return None


@lru_cache(maxsize=None)
def suggest_checkout(remaining: int, darts_left: int = MAX_DARTS_PER_TURN) -> Optional[tuple[str, ...]]:
    """
    Suggest a double-out finish.

    Args:
        remaining: Score left.
        darts_left: Darts available this turn.

    Returns:
        Dart labels such as ("T20", "T20", "DBull"), or None if no finish exists.
    """
    if remaining < 2 or remaining > MAX_CHECKOUT or darts_left < 1:
        return None
    darts = _finish_with(remaining, min(darts_left, MAX_DARTS_PER_TURN))
    if darts is None:
        return None
    return tuple(d.label for d in darts)
