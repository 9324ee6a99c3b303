"""
Games API router.

Create games, record and undo turns, and read derived state. Domain errors
are mapped to HTTP status codes by the handlers registered in main.py.
"""

import logging
from typing import Annotated, Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from game import Dart, GameOptions, GamePlayer, GameVariant, RtwMode
from models.turns import (
    DartsInput,
    MarksInput,
    RtwInput,
    ShanghaiBonusInput,
    TurnInput,
    TurnTotalInput,
)
from services.game_service import GameService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/games", tags=["games"])


# =============================================================================
# Request Models
# =============================================================================


class OptionsRequest(BaseModel):
    """Game rules."""
    variant: GameVariant = GameVariant.X01
    x01_target: Optional[int] = None
    double_in_required: Optional[bool] = None
    double_out_required: Optional[bool] = None
    rtw_mode: Optional[RtwMode] = None

    def to_options(self) -> GameOptions:
        # Unset fields fall back to the configured defaults
        return GameOptions.from_dict(self.model_dump(mode="json", exclude_none=True))


class PlayerRequest(BaseModel):
    player_id: str
    side_id: str
    order: int = 0


class CreateGameRequest(BaseModel):
    """New game request."""
    options: OptionsRequest = Field(default_factory=OptionsRequest)
    home_side_id: str
    away_side_id: Optional[str] = None
    players: list[PlayerRequest]
    match_id: Optional[str] = None
    game_number: int = 1
    rtw_sequence: Optional[list[int]] = None


class CorkRequest(BaseModel):
    cork_winner_id: str
    second_thrower_id: Optional[str] = None


class DartRequest(BaseModel):
    segment: int
    multiplier: int = 1


class DartsTurn(BaseModel):
    kind: Literal["darts"]
    darts: list[DartRequest]


class TotalTurn(BaseModel):
    kind: Literal["total"]
    score: int
    darts_thrown: int = 3
    finished_on_double: bool = True


class MarksTurn(BaseModel):
    kind: Literal["marks"]
    taps: dict[str, int] = Field(default_factory=dict)
    extra_scores: dict[str, int] = Field(default_factory=dict)
    darts_thrown: int = 3


class ShanghaiBonusTurn(BaseModel):
    kind: Literal["shanghai_bonus"]


class RtwTurn(BaseModel):
    kind: Literal["rtw"]
    hit: bool
    darts_thrown: int = 3


TurnBody = Annotated[
    Union[DartsTurn, TotalTurn, MarksTurn, ShanghaiBonusTurn, RtwTurn],
    Field(discriminator="kind"),
]


class SubmitTurnRequest(BaseModel):
    """A turn for the scheduled thrower."""
    player_id: str
    side_id: str
    input: TurnBody


def to_turn_input(body: BaseModel) -> TurnInput:
    """Convert a request body into the engine's input type."""
    if isinstance(body, DartsTurn):
        return DartsInput(darts=[Dart(d.segment, d.multiplier) for d in body.darts])
    if isinstance(body, TotalTurn):
        return TurnTotalInput(
            score=body.score,
            darts_thrown=body.darts_thrown,
            finished_on_double=body.finished_on_double,
        )
    if isinstance(body, MarksTurn):
        return MarksInput(
            taps=dict(body.taps),
            extra_scores=dict(body.extra_scores),
            darts_thrown=body.darts_thrown,
        )
    if isinstance(body, ShanghaiBonusTurn):
        return ShanghaiBonusInput()
    return RtwInput(hit=body.hit, darts_thrown=body.darts_thrown)


# =============================================================================
# Dependencies
# =============================================================================

# Set by main.py during startup
_game_service: Optional[GameService] = None


def set_game_service(service: Optional[GameService]) -> None:
    """Set the game service instance (called from main.py)."""
    global _game_service
    _game_service = service


def get_game_service_dep() -> GameService:
    """Dependency to get game service."""
    if _game_service is None:
        raise HTTPException(status_code=503, detail="Game service not initialized")
    return _game_service


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", status_code=201)
async def create_game(
    request: CreateGameRequest,
    service: GameService = Depends(get_game_service_dep),
):
    """Create a game."""
    game = await service.create_game(
        request.options.to_options(),
        request.home_side_id,
        request.away_side_id,
        [GamePlayer(p.player_id, p.side_id, p.order) for p in request.players],
        match_id=request.match_id,
        game_number=request.game_number,
        rtw_sequence=request.rtw_sequence,
    )
    return game.to_dict()


@router.get("/{game_id}")
async def get_game(game_id: str, service: GameService = Depends(get_game_service_dep)):
    """Scoreboard: game, current thrower, derived state and player stats."""
    return await service.get_scoreboard(game_id)


@router.delete("/{game_id}")
async def delete_game(game_id: str, service: GameService = Depends(get_game_service_dep)):
    if not await service.delete_game(game_id):
        raise HTTPException(status_code=404, detail="Game not found")
    logger.info(f"Deleted game {game_id}")
    return {"deleted": game_id}


@router.post("/{game_id}/cork")
async def set_cork(
    game_id: str,
    request: CorkRequest,
    service: GameService = Depends(get_game_service_dep),
):
    """Fix the throw order from the cork result."""
    game = await service.set_cork_order(game_id, request.cork_winner_id, request.second_thrower_id)
    return {"throw_order": game.throw_order, "order_source": game.order_source.value}


@router.post("/{game_id}/turns", status_code=201)
async def submit_turn(
    game_id: str,
    request: SubmitTurnRequest,
    service: GameService = Depends(get_game_service_dep),
):
    result = await service.submit_turn(
        game_id, request.player_id, request.side_id, to_turn_input(request.input)
    )
    return result.to_dict()


@router.get("/{game_id}/turns")
async def list_turns(game_id: str, service: GameService = Depends(get_game_service_dep)):
    turns = await service.get_turns(game_id)
    return {"game_id": game_id, "turns": [t.to_dict() for t in turns]}


@router.delete("/{game_id}/turns/last")
async def undo_last_turn(game_id: str, service: GameService = Depends(get_game_service_dep)):
    """Undo the most recent turn. Returns success=false when there is none."""
    result = await service.undo_last_turn(game_id)
    return result.to_dict()


@router.get("/{game_id}/thrower")
async def get_thrower(game_id: str, service: GameService = Depends(get_game_service_dep)):
    thrower = await service.get_current_thrower(game_id)
    return thrower.to_dict()


@router.get("/{game_id}/state")
async def get_state(game_id: str, service: GameService = Depends(get_game_service_dep)):
    state = await service.get_derived_state(game_id)
    return state.to_dict()


@router.post("/{game_id}/rematch", status_code=201)
async def rematch(game_id: str, service: GameService = Depends(get_game_service_dep)):
    """Start a new game with the same rules; the losing side throws first."""
    game = await service.create_rematch(game_id)
    return game.to_dict()


@router.post("/{game_id}/verify")
async def verify(game_id: str, service: GameService = Depends(get_game_service_dep)):
    """Re-score the full turn history against the stored state."""
    state = await service.verify_game(game_id)
    return {"game_id": game_id, "consistent": True, "state": state.to_dict()}
