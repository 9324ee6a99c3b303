"""
Turn records and turn inputs.

A turn is an immutable, append-only record keyed by turn_number within a
game. Its payload is a variant-tagged structure carrying exactly the facts
the fold, undo and stats need:

    x01             darts or entered total, remaining before/after, flags
    marks           taps, marks actually applied, points (Cricket/Shanghai)
    shanghai_bonus  the +200 score-only turn
    rtw             target, hit, progress index before the turn

Payloads are decoded once, at the store boundary, via TurnRecord.from_dict.

Inputs (DartsInput, TurnTotalInput, ...) are what an operator submits;
each payload can rebuild its input with to_input() so history can be
re-scored for verification.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional, Union

from constants import SHANGHAI_BONUS
from game import Dart


class TurnKind(str, Enum):
    """Payload tags."""

    X01 = "x01"
    MARKS = "marks"
    SHANGHAI_BONUS = "shanghai_bonus"
    RTW = "rtw"


class X01InputMode(str, Enum):
    DARTS = "darts"
    TOTAL = "total"


# =============================================================================
# Inputs
# =============================================================================


@dataclass
class DartsInput:
    """X01 turn entered dart by dart."""
    darts: list[Dart]


@dataclass
class TurnTotalInput:
    """
    X01 turn entered as a pre-summed total.

    Attributes:
        score: Total scored, 0-180.
        darts_thrown: Darts used (1-3); only less than 3 on a finish.
        finished_on_double: Operator confirms the finishing dart was a double.
    """
    score: int
    darts_thrown: int = 3
    finished_on_double: bool = True


@dataclass
class MarksInput:
    """
    Cricket/Shanghai turn.

    Attributes:
        taps: Marks per segment key ("20", "Bull", "T", ...).
        extra_scores: Entered points for Shanghai T/D/3B segments.
        darts_thrown: Darts used.
    """
    taps: dict[str, int]
    extra_scores: dict[str, int] = field(default_factory=dict)
    darts_thrown: int = 3


@dataclass
class ShanghaiBonusInput:
    """Confirmed Shanghai (single, double and triple of one number in a turn)."""
    pass


@dataclass
class RtwInput:
    """Round the World attempt at the player's current target."""
    hit: bool
    darts_thrown: int = 3


TurnInput = Union[DartsInput, TurnTotalInput, MarksInput, ShanghaiBonusInput, RtwInput]


# =============================================================================
# Payloads
# =============================================================================


@dataclass
class X01Payload:
    """
    Facts of an X01 turn.

    remaining_before/remaining_after are the side's remaining score around
    this turn; on a bust they are equal.
    """
    kind: ClassVar[TurnKind] = TurnKind.X01

    input_mode: X01InputMode
    remaining_before: int
    remaining_after: int
    darts: list[Dart] = field(default_factory=list)
    entered_total: Optional[int] = None
    finished_on_double: bool = True
    is_double_in: bool = False
    is_game_out: bool = False
    is_bust: bool = False

    def to_input(self, darts_thrown: int) -> TurnInput:
        if self.input_mode == X01InputMode.DARTS:
            return DartsInput(darts=list(self.darts))
        return TurnTotalInput(
            score=self.entered_total or 0,
            darts_thrown=darts_thrown,
            finished_on_double=self.finished_on_double,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "input_mode": self.input_mode.value,
            "remaining_before": self.remaining_before,
            "remaining_after": self.remaining_after,
            "darts": [d.to_dict() for d in self.darts],
            "entered_total": self.entered_total,
            "finished_on_double": self.finished_on_double,
            "is_double_in": self.is_double_in,
            "is_game_out": self.is_game_out,
            "is_bust": self.is_bust,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "X01Payload":
        return cls(
            input_mode=X01InputMode(d["input_mode"]),
            remaining_before=d["remaining_before"],
            remaining_after=d["remaining_after"],
            darts=[Dart.from_dict(x) for x in d.get("darts", [])],
            entered_total=d.get("entered_total"),
            finished_on_double=d.get("finished_on_double", True),
            is_double_in=d.get("is_double_in", False),
            is_game_out=d.get("is_game_out", False),
            is_bust=d.get("is_bust", False),
        )


@dataclass
class MarksPayload:
    """
    Facts of a Cricket/Shanghai segment turn.

    Attributes:
        taps: Marks entered per segment.
        applied_marks: Marks actually added to the side's board per segment
            (differs from taps only where the display cap of 9 clipped them).
        extra_scores: Entered values for T/D/3B.
        points: Points scored by this turn.
        bull_marks: Marks on the bull this turn.
    """
    kind: ClassVar[TurnKind] = TurnKind.MARKS

    taps: dict[str, int] = field(default_factory=dict)
    applied_marks: dict[str, int] = field(default_factory=dict)
    extra_scores: dict[str, int] = field(default_factory=dict)
    points: int = 0
    bull_marks: int = 0

    @property
    def total_marks(self) -> int:
        return sum(self.taps.values())

    def to_input(self, darts_thrown: int) -> TurnInput:
        return MarksInput(
            taps=dict(self.taps),
            extra_scores=dict(self.extra_scores),
            darts_thrown=darts_thrown,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "taps": dict(self.taps),
            "applied_marks": dict(self.applied_marks),
            "extra_scores": dict(self.extra_scores),
            "points": self.points,
            "bull_marks": self.bull_marks,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MarksPayload":
        return cls(
            taps=dict(d.get("taps", {})),
            applied_marks=dict(d.get("applied_marks", {})),
            extra_scores=dict(d.get("extra_scores", {})),
            points=d.get("points", 0),
            bull_marks=d.get("bull_marks", 0),
        )


@dataclass
class ShanghaiBonusPayload:
    """The +200 score-only Shanghai turn."""
    kind: ClassVar[TurnKind] = TurnKind.SHANGHAI_BONUS

    points: int = SHANGHAI_BONUS

    def to_input(self, darts_thrown: int) -> TurnInput:
        return ShanghaiBonusInput()

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "points": self.points}

    @classmethod
    def from_dict(cls, d: dict) -> "ShanghaiBonusPayload":
        return cls(points=d.get("points", SHANGHAI_BONUS))


@dataclass
class RtwPayload:
    """Facts of a Round the World attempt."""
    kind: ClassVar[TurnKind] = TurnKind.RTW

    target: int
    hit: bool
    index_before: int

    def to_input(self, darts_thrown: int) -> TurnInput:
        return RtwInput(hit=self.hit, darts_thrown=darts_thrown)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "target": self.target,
            "hit": self.hit,
            "index_before": self.index_before,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RtwPayload":
        return cls(target=d["target"], hit=d["hit"], index_before=d["index_before"])


TurnPayload = Union[X01Payload, MarksPayload, ShanghaiBonusPayload, RtwPayload]

PAYLOAD_TYPES: dict[TurnKind, type] = {
    TurnKind.X01: X01Payload,
    TurnKind.MARKS: MarksPayload,
    TurnKind.SHANGHAI_BONUS: ShanghaiBonusPayload,
    TurnKind.RTW: RtwPayload,
}


def payload_from_dict(d: dict) -> TurnPayload:
    """Decode a tagged payload dict."""
    kind = TurnKind(d["kind"])
    return PAYLOAD_TYPES[kind].from_dict(d)


# =============================================================================
# Turn Record
# =============================================================================


@dataclass
class TurnRecord:
    """
    One recorded turn.

    Attributes:
        game_id: Game the turn belongs to.
        turn_number: 1-indexed, strictly increasing within the game.
        round_number: (turn_number - 1) // roster_size + 1.
        player_id: Thrower.
        side_id: Thrower's side.
        darts_thrown: Darts used (0 for a Shanghai bonus).
        score: Points credited by the turn (0 on a bust).
        payload: Variant-tagged facts.
        all_star_tier: "single", "double", "triple" or None.
        created_at: When the turn was recorded (UTC).
    """

    game_id: str
    turn_number: int
    round_number: int
    player_id: str
    side_id: str
    darts_thrown: int
    score: int
    payload: TurnPayload
    all_star_tier: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> TurnKind:
        return self.payload.kind

    @property
    def is_bust(self) -> bool:
        return isinstance(self.payload, X01Payload) and self.payload.is_bust

    def to_dict(self) -> dict:
        """Serialize to a dict; payload stays nested and tagged."""
        return {
            "game_id": self.game_id,
            "turn_number": self.turn_number,
            "round_number": self.round_number,
            "player_id": self.player_id,
            "side_id": self.side_id,
            "darts_thrown": self.darts_thrown,
            "score": self.score,
            "all_star_tier": self.all_star_tier,
            "created_at": self.created_at.isoformat(),
            "payload": self.payload.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, d: dict) -> "TurnRecord":
        created_at = d.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        return cls(
            game_id=d["game_id"],
            turn_number=d["turn_number"],
            round_number=d["round_number"],
            player_id=d["player_id"],
            side_id=d["side_id"],
            darts_thrown=d["darts_thrown"],
            score=d["score"],
            payload=payload_from_dict(d["payload"]),
            all_star_tier=d.get("all_star_tier"),
            created_at=created_at or datetime.now(timezone.utc),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "TurnRecord":
        return cls.from_dict(json.loads(json_str))
