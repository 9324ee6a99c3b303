"""
Turn scoring dispatch and win detection.

score_turn() routes a candidate turn to the variant engine, builds the
TurnRecord with its tagged payload, checks the win condition against the
state the turn produces, and attaches the All-Star tier. It never mutates
the state it is given.

replay_turns() re-scores a stored history from each turn's recorded input
and checks every recorded outcome, which is how a game's history is
verified end to end.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import cricket
import round_the_world
import x01
from all_star import AllStarTier, classify_marks, classify_x01
from constants import MAX_DARTS_PER_TURN
from game import Game, GameVariant, InconsistentStateError, TurnValidationError
from models.game_state import DerivedGameState
from models.turns import (
    DartsInput,
    MarksInput,
    MarksPayload,
    RtwInput,
    RtwPayload,
    ShanghaiBonusInput,
    ShanghaiBonusPayload,
    TurnInput,
    TurnRecord,
    TurnTotalInput,
    X01InputMode,
    X01Payload,
)
from turn_order import current_thrower, round_for_turn

logger = logging.getLogger(__name__)


@dataclass
class ScoredTurn:
    """A scored, not yet persisted, turn."""
    turn: TurnRecord
    state_after: DerivedGameState
    is_bust: bool = False
    is_win: bool = False

    @property
    def all_star_tier(self) -> Optional[str]:
        return self.turn.all_star_tier


def _check_darts_thrown(darts_thrown: int) -> None:
    if isinstance(darts_thrown, bool) or not isinstance(darts_thrown, int):
        raise TurnValidationError("Darts thrown must be an integer")
    if not 1 <= darts_thrown <= MAX_DARTS_PER_TURN:
        raise TurnValidationError(
            f"Darts thrown must be 1-{MAX_DARTS_PER_TURN}, got {darts_thrown}"
        )


def _tier_value(tier: Optional[AllStarTier]) -> Optional[str]:
    return tier.value if tier else None


# =============================================================================
# Per-variant builders
# =============================================================================


def _score_x01(game, state, side_id, turn_input) -> tuple[int, int, X01Payload, Optional[AllStarTier]]:
    side = state.sides[side_id]
    if isinstance(turn_input, DartsInput):
        outcome = x01.score_darts(
            side.remaining, side.has_doubled_in, list(turn_input.darts), game.options
        )
        payload = X01Payload(
            input_mode=X01InputMode.DARTS,
            remaining_before=outcome.remaining_before,
            remaining_after=outcome.remaining_after,
            darts=outcome.darts,
        )
    elif isinstance(turn_input, TurnTotalInput):
        outcome = x01.score_total(
            side.remaining,
            side.has_doubled_in,
            turn_input.score,
            game.options,
            darts_thrown=turn_input.darts_thrown,
            finished_on_double=turn_input.finished_on_double,
        )
        payload = X01Payload(
            input_mode=X01InputMode.TOTAL,
            remaining_before=outcome.remaining_before,
            remaining_after=outcome.remaining_after,
            entered_total=turn_input.score,
            finished_on_double=turn_input.finished_on_double,
        )
    else:
        raise TurnValidationError("X01 turns take darts or a turn total")

    payload.is_double_in = outcome.is_double_in
    payload.is_game_out = outcome.is_game_out
    payload.is_bust = outcome.is_bust
    tier = classify_x01(
        outcome.score,
        is_double_in=outcome.is_double_in,
        is_game_out=outcome.is_game_out,
        is_bust=outcome.is_bust,
    )
    return outcome.score, outcome.darts_thrown, payload, tier


def _score_marks(game, state, side_id, turn_input) -> tuple[int, int, MarksPayload, Optional[AllStarTier]]:
    if not isinstance(turn_input, MarksInput):
        raise TurnValidationError(f"{game.variant.value} turns take segment marks")
    _check_darts_thrown(turn_input.darts_thrown)

    outcome = cricket.score_marks(
        state.mark_board,
        game.variant,
        side_id,
        game.opponent_of(side_id),
        turn_input.taps,
        turn_input.extra_scores,
        turn_input.darts_thrown,
    )
    payload = MarksPayload(
        taps=outcome.taps,
        applied_marks=outcome.applied_marks,
        extra_scores=outcome.extra_scores,
        points=outcome.points,
        bull_marks=outcome.bull_marks,
    )
    tier = classify_marks(outcome.total_marks, outcome.bull_marks)
    return outcome.points, turn_input.darts_thrown, payload, tier


def _score_shanghai_bonus(game, state, side_id, turn_input) -> tuple[int, int, ShanghaiBonusPayload, None]:
    points = cricket.shanghai_bonus_points(game.variant)
    return points, 0, ShanghaiBonusPayload(points=points), None


def _score_rtw(game, state, player_id, turn_input) -> tuple[int, int, RtwPayload, None]:
    if not isinstance(turn_input, RtwInput):
        raise TurnValidationError("Round the World turns take a hit/miss")
    _check_darts_thrown(turn_input.darts_thrown)

    tally = state.players[player_id]
    outcome = round_the_world.score_attempt(game.rtw_sequence, tally.rtw_index, turn_input.hit)
    payload = RtwPayload(target=outcome.target, hit=outcome.hit, index_before=outcome.index_before)
    return outcome.score, turn_input.darts_thrown, payload, None


# =============================================================================
# Win detection
# =============================================================================


def detect_win(game: Game, state: DerivedGameState, turn: TurnRecord) -> bool:
    """
    Check the variant's terminal condition for the side that just threw.

    Args:
        game: The game.
        state: State after the turn.
        turn: The turn just applied.

    Returns:
        True if the turn's side has won.
    """
    if game.variant == GameVariant.X01:
        return isinstance(turn.payload, X01Payload) and turn.payload.is_game_out
    if game.variant.uses_marks:
        return cricket.has_won(state.mark_board, turn.side_id, game.opponent_of(turn.side_id))
    if game.variant == GameVariant.ROUND_THE_WORLD:
        return state.players[turn.player_id].rtw_index >= len(game.rtw_sequence)
    return False


# =============================================================================
# Scoring
# =============================================================================


def score_turn(
    game: Game,
    state: DerivedGameState,
    player_id: str,
    side_id: str,
    turn_input: TurnInput,
) -> ScoredTurn:
    """
    Score a candidate turn against the current state.

    Args:
        game: The game.
        state: Current derived state (not modified).
        player_id: Thrower.
        side_id: Thrower's side.
        turn_input: What the operator entered.

    Returns:
        ScoredTurn with the record, the resulting state and bust/win flags.

    Raises:
        TurnValidationError: On an unknown player, a side mismatch, or input
            that does not fit the variant.
    """
    player = game.get_player(player_id)
    if player is None:
        raise TurnValidationError(f"Player {player_id} is not in this game")
    if player.side_id != side_id:
        raise TurnValidationError(f"Player {player_id} is not on side {side_id}")

    variant = game.variant
    if variant == GameVariant.X01:
        score, darts, payload, tier = _score_x01(game, state, side_id, turn_input)
    elif variant == GameVariant.SHANGHAI and isinstance(turn_input, ShanghaiBonusInput):
        score, darts, payload, tier = _score_shanghai_bonus(game, state, side_id, turn_input)
    elif variant.uses_marks:
        score, darts, payload, tier = _score_marks(game, state, side_id, turn_input)
    elif variant == GameVariant.ROUND_THE_WORLD:
        score, darts, payload, tier = _score_rtw(game, state, player_id, turn_input)
    else:
        raise TurnValidationError(f"Unsupported variant: {variant}")

    turn_number = state.last_turn_number + 1
    turn = TurnRecord(
        game_id=game.game_id,
        turn_number=turn_number,
        round_number=round_for_turn(turn_number, game.roster_size),
        player_id=player_id,
        side_id=side_id,
        darts_thrown=darts,
        score=score,
        payload=payload,
        all_star_tier=_tier_value(tier),
    )
    state_after = state.copy().apply(turn)

    return ScoredTurn(
        turn=turn,
        state_after=state_after,
        is_bust=turn.is_bust,
        is_win=detect_win(game, state_after, turn),
    )


def replay_turns(game: Game, turns: list[TurnRecord]) -> DerivedGameState:
    """
    Re-score a game's history from each turn's recorded input.

    Every turn must come from the scheduled thrower, reproduce its recorded
    score, darts and payload, and only the final turn may win.

    Args:
        game: The game.
        turns: Stored turns in turn_number order.

    Returns:
        Derived state after the last turn.

    Raises:
        InconsistentStateError: If any recorded outcome cannot be reproduced.
    """
    state = DerivedGameState.initial(game)
    for position, turn in enumerate(turns):
        expected = current_thrower(game, position)
        if turn.player_id != expected.player_id:
            raise InconsistentStateError(
                f"Turn {turn.turn_number} thrown by {turn.player_id}, "
                f"expected {expected.player_id}"
            )
        try:
            rescored = score_turn(
                game,
                state,
                turn.player_id,
                turn.side_id,
                turn.payload.to_input(turn.darts_thrown),
            )
        except TurnValidationError as e:
            raise InconsistentStateError(f"Turn {turn.turn_number} no longer validates: {e}")

        recorded = (turn.turn_number, turn.score, turn.darts_thrown, turn.payload.to_dict())
        replayed = (
            rescored.turn.turn_number,
            rescored.turn.score,
            rescored.turn.darts_thrown,
            rescored.turn.payload.to_dict(),
        )
        if recorded != replayed:
            raise InconsistentStateError(
                f"Turn {turn.turn_number} replays as {replayed[1:3]}, recorded {recorded[1:3]}"
            )
        if rescored.is_win and position != len(turns) - 1:
            raise InconsistentStateError(
                f"Turn {turn.turn_number} won the game but later turns exist"
            )
        state = rescored.state_after

    logger.debug(f"Replayed {len(turns)} turns for game {game.game_id}")
    return state
