"""
Dartboard and scoring constants.

This module is the single source of truth for segment tables, bull values
and bonus thresholds. Every variant engine reads its segments from here.

Cricket segments:
    - 20, 19, 18, 17, 16, 15: face value per overflow mark
    - Bull: 25 per overflow mark

Shanghai adds three category "segments" (T, D, 3B) whose overflow scores
a manually entered value instead of a computed one.
"""

from config import config


# =============================================================================
# Board
# =============================================================================

BULL = 25
DOUBLE_BULL = 50
MISS = 0
BOARD_NUMBERS: tuple[int, ...] = tuple(range(1, 21))
VALID_SEGMENTS: frozenset[int] = frozenset(BOARD_NUMBERS) | {BULL, MISS}

MAX_DARTS_PER_TURN = 3
MAX_TURN_SCORE = 180


# =============================================================================
# Cricket / Shanghai
# =============================================================================

MARKS_TO_CLOSE = 3
MARKS_PER_DART = 3           # a triple
MAX_TAPS_PER_TURN = 9        # 3 darts x triple
MAX_DISPLAY_MARKS = 9

CRICKET_SEGMENTS: tuple[str, ...] = ("20", "19", "18", "17", "16", "15", "Bull")

# Category segments scored by manual entry
TRIPLES = "T"
DOUBLES = "D"
THREE_IN_BED = "3B"
EXTRA_SEGMENTS: tuple[str, ...] = (TRIPLES, DOUBLES, THREE_IN_BED)

SHANGHAI_SEGMENTS: tuple[str, ...] = CRICKET_SEGMENTS + EXTRA_SEGMENTS
SHANGHAI_BONUS = 200


def segment_value(segment: str) -> int:
    """Point value of one overflow mark on a numeric segment or the bull."""
    if segment == "Bull":
        return BULL
    return int(segment)


# =============================================================================
# Round the World
# =============================================================================

RTW_NUMBERS: tuple[int, ...] = BOARD_NUMBERS + (BULL,)


# =============================================================================
# All-Star thresholds
# =============================================================================

X01_ALL_STAR_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (171, "triple"),
    (126, "double"),
    (95, "single"),
)
MARKS_ALL_STAR_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (9, "triple"),
    (7, "double"),
    (5, "single"),
)
BULL_MARKS_ALL_STAR = 3


# =============================================================================
# Game Defaults
# =============================================================================

DEFAULT_X01_TARGET = config.game_defaults.x01_target
DEFAULT_DOUBLE_IN = config.game_defaults.double_in
DEFAULT_DOUBLE_OUT = config.game_defaults.double_out
DEFAULT_RTW_MODE = config.game_defaults.rtw_mode
MAX_PLAYERS_PER_SIDE = config.game_defaults.max_players_per_side
