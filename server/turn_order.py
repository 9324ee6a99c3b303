"""
Throw order resolution.

Answers "whose turn is it" for a game given how many turns have been taken.
The order itself comes from one of three places, recorded on the game as
its OrderSource:

    natural       Home[0], Away[0], Home[1], Away[1], ...
    cork          cork winner, the opponent they named, the winner's
                  partner(s), the opponent's partner(s)
    auto-rematch  even-numbered games in a match: the side that lost the
                  previous game's cork throws first, each side in reverse
                  player order (see loser_first_reversed)

The current thrower is throw_order[turns_taken % roster_size]; the round is
turns_taken // roster_size + 1.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from game import Game, GamePlayer, OrderSource, TurnValidationError


@dataclass
class CurrentThrower:
    """The player due to throw next."""

    player_id: str
    side_id: str
    round_number: int
    turn_number: int

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "side_id": self.side_id,
            "round_number": self.round_number,
            "turn_number": self.turn_number,
        }


def _interleave(first: list[GamePlayer], second: list[GamePlayer]) -> list[str]:
    """Alternate two player lists, continuing with the longer one when the other runs out."""
    order = []
    for i in range(max(len(first), len(second))):
        if i < len(first):
            order.append(first[i].player_id)
        if i < len(second):
            order.append(second[i].player_id)
    return order


def natural_order(game: Game) -> list[str]:
    """Positional home/away interleave, each side by ascending order index."""
    away = game.side_players(game.away_side_id) if game.away_side_id else []
    return _interleave(game.side_players(game.home_side_id), away)


def cork_order(
    game: Game,
    cork_winner_id: str,
    second_thrower_id: Optional[str] = None,
) -> list[str]:
    """
    Build the throw order decided by a cork.

    Args:
        game: Game whose roster is being ordered.
        cork_winner_id: Player who won the cork and throws first.
        second_thrower_id: Opposing player the winner names to throw second.
            Defaults to the first player of the opposing side.

    Returns:
        Player IDs in throwing order.

    Raises:
        TurnValidationError: If a named player is not on the expected side.
    """
    winner = game.get_player(cork_winner_id)
    if winner is None:
        raise TurnValidationError(f"Cork winner {cork_winner_id} is not in this game")

    opponent_side = game.opponent_of(winner.side_id)
    if opponent_side is None:
        raise TurnValidationError("A cork needs two populated sides")

    winner_side = game.side_players(winner.side_id)
    opponents = game.side_players(opponent_side)

    if second_thrower_id is None:
        second = opponents[0]
    else:
        second = game.get_player(second_thrower_id)
        if second is None or second.side_id != opponent_side:
            raise TurnValidationError(
                f"Second thrower {second_thrower_id} must be on side {opponent_side}"
            )

    first_group = [winner] + [p for p in winner_side if p.player_id != winner.player_id]
    second_group = [second] + [p for p in opponents if p.player_id != second.player_id]
    return _interleave(first_group, second_group)


def loser_first_reversed(game: Game, previous_order: list[str]) -> Optional[list[str]]:
    """
    House rule for even-numbered games of a match.

    The side that lost the previous game's cork (the side NOT holding the
    first throw of previous_order) throws first. Within each side players go
    in descending order index. The two sides then interleave.

    Args:
        game: The even-numbered game being ordered.
        previous_order: Throw order of the previous game in the match.

    Returns:
        Player IDs in throwing order, or None when the previous cork winner
        is not on this game's roster (a substitute came in) and the cork
        side cannot be told.
    """
    if not previous_order:
        return None

    previous_first = game.get_player(previous_order[0])
    if previous_first is None:
        return None

    cork_side = previous_first.side_id
    losing_side = game.opponent_of(cork_side)
    if losing_side is None:
        return natural_order(game)

    def reversed_side(side_id: str) -> list[GamePlayer]:
        return sorted(game.side_players(side_id), key=lambda p: p.order, reverse=True)

    return _interleave(reversed_side(losing_side), reversed_side(cork_side))


# Named policies for deriving an order without a cork
AUTO_ORDER_POLICIES: dict[str, Callable[[Game, list[str]], Optional[list[str]]]] = {
    "loser_first_reversed": loser_first_reversed,
}
DEFAULT_AUTO_ORDER_POLICY = "loser_first_reversed"


def derive_rematch_order(
    game: Game,
    previous_order: list[str],
    policy: str = DEFAULT_AUTO_ORDER_POLICY,
) -> Optional[list[str]]:
    """Apply a named auto-order policy. None means keep natural order."""
    try:
        builder = AUTO_ORDER_POLICIES[policy]
    except KeyError:
        raise TurnValidationError(f"Unknown auto-order policy: {policy}")
    return builder(game, previous_order)


def is_cork_game(game_number: int) -> bool:
    """Odd-numbered games in a match start with a fresh cork."""
    return game_number % 2 == 1


def requires_cork(game: Game, turns_taken: int) -> bool:
    """
    True while an odd-numbered two-sided game still runs on natural order.

    Once any turn is recorded the order is frozen and no cork can be taken.
    """
    if turns_taken > 0 or game.order_source != OrderSource.NATURAL:
        return False
    if len(game.side_ids) < 2:
        return False
    return is_cork_game(game.game_number)


def throw_order(game: Game) -> list[str]:
    """The game's fixed order, or natural order if none was set."""
    if game.throw_order:
        return list(game.throw_order)
    return natural_order(game)


def round_for_turn(turn_number: int, roster_size: int) -> int:
    """Round of a 1-indexed turn number."""
    if roster_size <= 0:
        return 1
    return (turn_number - 1) // roster_size + 1


def current_thrower(game: Game, turns_taken: int) -> CurrentThrower:
    """
    Resolve the player due to throw.

    Args:
        game: The game.
        turns_taken: Number of turns already recorded.

    Returns:
        CurrentThrower with the player, side and round.
    """
    order = throw_order(game)
    if not order:
        raise TurnValidationError("Game has no players")

    player_id = order[turns_taken % len(order)]
    player = game.get_player(player_id)
    return CurrentThrower(
        player_id=player_id,
        side_id=player.side_id,
        round_number=turns_taken // len(order) + 1,
        turn_number=turns_taken + 1,
    )
