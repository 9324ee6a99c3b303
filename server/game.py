"""
Core game model for darts scoring.

This module defines the tagged game variant, the per-variant options, the
roster and the game record that every engine and store works against.

Variants:
    - X01: count down from a target (301, 501, ...) to exactly zero
    - Cricket: close 20-15 and Bull, score on segments the opponent left open
    - Shanghai: Cricket plus Triples/Doubles/Three-in-Bed and a +200 bonus
    - RoundTheWorld: hit every number in a fixed sequence, Bull last

Sides:
    Every game has a home side and an away side. A side holds 1-4 players.
    Solo practice games leave the away side empty.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from constants import (
    BULL,
    CRICKET_SEGMENTS,
    DEFAULT_DOUBLE_IN,
    DEFAULT_DOUBLE_OUT,
    DEFAULT_RTW_MODE,
    DEFAULT_X01_TARGET,
    DOUBLE_BULL,
    MAX_PLAYERS_PER_SIDE,
    MISS,
    SHANGHAI_SEGMENTS,
    VALID_SEGMENTS,
)


# =============================================================================
# Errors
# =============================================================================


class TurnValidationError(ValueError):
    """Raised for malformed input. Nothing has been mutated when this is raised."""
    pass


class InconsistentStateError(Exception):
    """Raised when the stored side state disagrees with the turn history."""
    pass


class GameNotFoundError(LookupError):
    """Raised when a game ID does not exist."""
    pass


class GameCompletedError(Exception):
    """Raised when a turn is submitted to a finished game."""
    pass


class GameHaltedError(Exception):
    """Raised when writing to a game halted for manual reconciliation."""
    pass


# =============================================================================
# Enums
# =============================================================================


class GameVariant(str, Enum):
    """The four supported game variants."""

    X01 = "X01"
    CRICKET = "Cricket"
    SHANGHAI = "Shanghai"
    ROUND_THE_WORLD = "RoundTheWorld"

    @property
    def uses_marks(self) -> bool:
        """Cricket and Shanghai share the mark board."""
        return self in (GameVariant.CRICKET, GameVariant.SHANGHAI)

    @property
    def segments(self) -> tuple[str, ...]:
        """Segments that must be closed to win (empty for non-mark variants)."""
        if self == GameVariant.CRICKET:
            return CRICKET_SEGMENTS
        if self == GameVariant.SHANGHAI:
            return SHANGHAI_SEGMENTS
        return ()


class GameStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


class RtwMode(str, Enum):
    """Round the World target sequence modes."""

    ONE_TO_TWENTY = "1to20"
    TWENTY_TO_ONE = "20to1"
    RANDOM = "Random"


class OrderSource(str, Enum):
    """
    Where a game's throw order came from.

    NATURAL: home/away positional interleave
    CORK: fixed by the pre-game cork ceremony
    AUTO_REMATCH: derived from the previous game's cork (even-numbered games)
    """

    NATURAL = "natural"
    CORK = "cork"
    AUTO_REMATCH = "auto-rematch"


# =============================================================================
# Darts
# =============================================================================


@dataclass(frozen=True)
class Dart:
    """
    A single dart throw.

    Attributes:
        segment: 1-20, 25 for the bull, or 0 for a miss.
        multiplier: 1 (single), 2 (double) or 3 (triple). Ignored for a miss.
    """

    segment: int
    multiplier: int = 1

    def validate(self) -> None:
        """
        Check the dart names a real board position.

        Raises:
            TurnValidationError: If the segment or multiplier is invalid.
        """
        if self.segment not in VALID_SEGMENTS:
            raise TurnValidationError(f"Unknown segment: {self.segment}")
        if self.segment == MISS:
            return
        if self.multiplier not in (1, 2, 3):
            raise TurnValidationError(f"Invalid multiplier: {self.multiplier}")
        if self.segment == BULL and self.multiplier == 3:
            raise TurnValidationError("The bull has no triple ring")

    @property
    def score(self) -> int:
        if self.segment == MISS:
            return 0
        if self.segment == BULL:
            return DOUBLE_BULL if self.multiplier == 2 else BULL
        return self.segment * self.multiplier

    @property
    def is_double(self) -> bool:
        return self.segment != MISS and self.multiplier == 2

    @property
    def label(self) -> str:
        """Short board notation, e.g. T20, D16, Bull, DBull, Miss."""
        if self.segment == MISS:
            return "Miss"
        if self.segment == BULL:
            return "DBull" if self.multiplier == 2 else "Bull"
        prefix = {1: "S", 2: "D", 3: "T"}[self.multiplier]
        return f"{prefix}{self.segment}"

    def to_dict(self) -> dict:
        return {"segment": self.segment, "multiplier": self.multiplier}

    @classmethod
    def from_dict(cls, d: dict) -> "Dart":
        return cls(segment=d["segment"], multiplier=d.get("multiplier", 1))


# =============================================================================
# Options and Roster
# =============================================================================


@dataclass
class GameOptions:
    """
    Per-variant rule settings for a game.

    Only the fields relevant to the chosen variant are consulted; the rest
    keep their defaults and are carried for display.
    """

    variant: GameVariant = GameVariant.X01

    # --- X01 ---
    x01_target: int = DEFAULT_X01_TARGET
    """Starting score for X01 (301, 501, ...)."""

    double_in_required: bool = DEFAULT_DOUBLE_IN
    """Scoring starts only from the first double a side throws."""

    double_out_required: bool = DEFAULT_DOUBLE_OUT
    """The finishing dart must be a double (or the double bull)."""

    # --- Round the World ---
    rtw_mode: RtwMode = RtwMode(DEFAULT_RTW_MODE)
    """Order of targets for Round the World."""

    def validate(self) -> None:
        """
        Raises:
            TurnValidationError: If the options cannot describe a playable game.
        """
        if self.variant == GameVariant.X01 and self.x01_target < 2:
            raise TurnValidationError(f"X01 target must be at least 2, got {self.x01_target}")

    def to_dict(self) -> dict:
        return {
            "variant": self.variant.value,
            "x01_target": self.x01_target,
            "double_in_required": self.double_in_required,
            "double_out_required": self.double_out_required,
            "rtw_mode": self.rtw_mode.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GameOptions":
        return cls(
            variant=GameVariant(data.get("variant", GameVariant.X01.value)),
            x01_target=data.get("x01_target", DEFAULT_X01_TARGET),
            double_in_required=data.get("double_in_required", DEFAULT_DOUBLE_IN),
            double_out_required=data.get("double_out_required", DEFAULT_DOUBLE_OUT),
            rtw_mode=RtwMode(data.get("rtw_mode", DEFAULT_RTW_MODE)),
        )


@dataclass(frozen=True)
class GamePlayer:
    """
    Assignment of a player to a side.

    Attributes:
        player_id: Player identifier.
        side_id: Side (team-season) identifier.
        order: Position within the side; lower throws earlier in natural order.
    """

    player_id: str
    side_id: str
    order: int = 0

    def to_dict(self) -> dict:
        return {"player_id": self.player_id, "side_id": self.side_id, "order": self.order}

    @classmethod
    def from_dict(cls, d: dict) -> "GamePlayer":
        return cls(player_id=d["player_id"], side_id=d["side_id"], order=d.get("order", 0))


# =============================================================================
# Game
# =============================================================================


@dataclass
class Game:
    """
    A single game (leg) between two sides.

    The game record is immutable except for status, winner, the halted flag,
    and the throw order (which may only change before the first turn).

    Attributes:
        game_id: Unique identifier.
        options: Variant and rule settings.
        home_side_id: Side that throws first in natural order.
        away_side_id: Opposing side, or None for solo play.
        players: Roster across both sides.
        rtw_sequence: Round the World targets, generated once at creation.
        status: NotStarted, InProgress or Completed.
        winning_side_id: Set when the game completes.
        match_id: Groups games of one match for cork/rematch rules.
        game_number: 1-indexed position within the match.
        order_source: Where throw_order came from.
        throw_order: Player IDs in throwing order.
        halted: Set when history and stored state disagree.
    """

    options: GameOptions
    home_side_id: str
    away_side_id: Optional[str] = None
    players: list[GamePlayer] = field(default_factory=list)
    rtw_sequence: list[int] = field(default_factory=list)
    status: GameStatus = GameStatus.NOT_STARTED
    winning_side_id: Optional[str] = None
    match_id: Optional[str] = None
    game_number: int = 1
    order_source: OrderSource = OrderSource.NATURAL
    throw_order: list[str] = field(default_factory=list)
    halted: bool = False
    game_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def variant(self) -> GameVariant:
        return self.options.variant

    @property
    def side_ids(self) -> list[str]:
        """Populated side IDs, home first."""
        sides = [self.home_side_id]
        if self.away_side_id and self.side_players(self.away_side_id):
            sides.append(self.away_side_id)
        return sides

    @property
    def roster_size(self) -> int:
        return len(self.players)

    def side_players(self, side_id: str) -> list[GamePlayer]:
        """Players of a side sorted by their order index."""
        return sorted(
            (p for p in self.players if p.side_id == side_id),
            key=lambda p: p.order,
        )

    def get_player(self, player_id: str) -> Optional[GamePlayer]:
        for player in self.players:
            if player.player_id == player_id:
                return player
        return None

    def opponent_of(self, side_id: str) -> Optional[str]:
        """The other side's ID, or None in solo play."""
        if side_id == self.home_side_id:
            if self.away_side_id and self.side_players(self.away_side_id):
                return self.away_side_id
            return None
        return self.home_side_id

    def validate_roster(self, max_per_side: int = MAX_PLAYERS_PER_SIDE) -> None:
        """
        Check the roster can be played.

        Raises:
            TurnValidationError: On an empty home side, an oversized side,
                a player listed twice, or a player on an unknown side.
        """
        if self.away_side_id == self.home_side_id:
            raise TurnValidationError("Home and away sides must differ")

        seen: set[str] = set()
        for player in self.players:
            if player.player_id in seen:
                raise TurnValidationError(f"Player {player.player_id} is listed twice")
            seen.add(player.player_id)
            if player.side_id not in (self.home_side_id, self.away_side_id):
                raise TurnValidationError(
                    f"Player {player.player_id} is not on side {self.home_side_id} "
                    f"or {self.away_side_id}"
                )

        home = self.side_players(self.home_side_id)
        if not home:
            raise TurnValidationError("Home side needs at least one player")

        for side_id in (self.home_side_id, self.away_side_id):
            if side_id is None:
                continue
            members = self.side_players(side_id)
            if len(members) > max_per_side:
                raise TurnValidationError(
                    f"Side {side_id} has {len(members)} players (max {max_per_side})"
                )
            orders = [p.order for p in members]
            if len(set(orders)) != len(orders):
                raise TurnValidationError(f"Side {side_id} has duplicate order indexes")

    def to_dict(self) -> dict:
        """Serialize for storage and API responses."""
        return {
            "game_id": self.game_id,
            "options": self.options.to_dict(),
            "home_side_id": self.home_side_id,
            "away_side_id": self.away_side_id,
            "players": [p.to_dict() for p in self.players],
            "rtw_sequence": list(self.rtw_sequence),
            "status": self.status.value,
            "winning_side_id": self.winning_side_id,
            "match_id": self.match_id,
            "game_number": self.game_number,
            "order_source": self.order_source.value,
            "throw_order": list(self.throw_order),
            "halted": self.halted,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Game":
        created_at = d.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        return cls(
            game_id=d["game_id"],
            options=GameOptions.from_dict(d.get("options", {})),
            home_side_id=d["home_side_id"],
            away_side_id=d.get("away_side_id"),
            players=[GamePlayer.from_dict(p) for p in d.get("players", [])],
            rtw_sequence=list(d.get("rtw_sequence", [])),
            status=GameStatus(d.get("status", GameStatus.NOT_STARTED.value)),
            winning_side_id=d.get("winning_side_id"),
            match_id=d.get("match_id"),
            game_number=d.get("game_number", 1),
            order_source=OrderSource(d.get("order_source", OrderSource.NATURAL.value)),
            throw_order=list(d.get("throw_order", [])),
            halted=d.get("halted", False),
            created_at=created_at or datetime.now(timezone.utc),
        )
