"""Models package for darts turns and derived state."""

from .turns import (
    TurnKind,
    X01InputMode,
    DartsInput,
    TurnTotalInput,
    MarksInput,
    ShanghaiBonusInput,
    RtwInput,
    X01Payload,
    MarksPayload,
    ShanghaiBonusPayload,
    RtwPayload,
    TurnRecord,
)
from .game_state import DerivedGameState, SideState, PlayerTally, MarkBoard, rebuild_state

__all__ = [
    # Turns
    "TurnKind",
    "X01InputMode",
    "DartsInput",
    "TurnTotalInput",
    "MarksInput",
    "ShanghaiBonusInput",
    "RtwInput",
    "X01Payload",
    "MarksPayload",
    "ShanghaiBonusPayload",
    "RtwPayload",
    "TurnRecord",
    # State
    "DerivedGameState",
    "SideState",
    "PlayerTally",
    "MarkBoard",
    "rebuild_state",
]
