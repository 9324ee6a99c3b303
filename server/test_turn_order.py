"""
Test suite for throw order resolution.

Covers natural interleave, cork orders, the loser-first-reversed rematch
policy, and round numbering.

Run with: pytest test_turn_order.py -v
"""

import pytest

from game import Game, GameOptions, GamePlayer, OrderSource, TurnValidationError
from turn_order import (
    cork_order,
    current_thrower,
    derive_rematch_order,
    is_cork_game,
    loser_first_reversed,
    natural_order,
    requires_cork,
    round_for_turn,
)


def doubles_game(**kwargs) -> Game:
    """Two players per side: A1, A2 (home) vs B1, B2 (away)."""
    return Game(
        options=GameOptions(),
        home_side_id="A",
        away_side_id="B",
        players=[
            GamePlayer("A1", "A", 0),
            GamePlayer("A2", "A", 1),
            GamePlayer("B1", "B", 0),
            GamePlayer("B2", "B", 1),
        ],
        **kwargs,
    )


class TestNaturalOrder:

    def test_interleaves_home_first(self):
        assert natural_order(doubles_game()) == ["A1", "B1", "A2", "B2"]

    def test_uneven_sides_continue_with_longer(self):
        game = Game(
            options=GameOptions(),
            home_side_id="A",
            away_side_id="B",
            players=[
                GamePlayer("A1", "A", 0),
                GamePlayer("A2", "A", 1),
                GamePlayer("A3", "A", 2),
                GamePlayer("B1", "B", 0),
            ],
        )
        assert natural_order(game) == ["A1", "B1", "A2", "A3"]

    def test_order_index_not_list_position(self):
        game = Game(
            options=GameOptions(),
            home_side_id="A",
            away_side_id="B",
            players=[GamePlayer("A2", "A", 1), GamePlayer("A1", "A", 0), GamePlayer("B1", "B", 0)],
        )
        assert natural_order(game) == ["A1", "B1", "A2"]

    def test_solo(self):
        game = Game(options=GameOptions(), home_side_id="A", players=[GamePlayer("A1", "A", 0)])
        assert natural_order(game) == ["A1"]


class TestCurrentThrower:
    """turns % roster picks the player, turns // roster + 1 is the round."""

    def test_first_turn(self):
        thrower = current_thrower(doubles_game(), 0)
        assert thrower.player_id == "A1"
        assert thrower.round_number == 1
        assert thrower.turn_number == 1

    def test_wraps_to_next_round(self):
        thrower = current_thrower(doubles_game(), 4)
        assert thrower.player_id == "A1"
        assert thrower.round_number == 2

    def test_mid_round(self):
        thrower = current_thrower(doubles_game(), 6)
        assert thrower.player_id == "A2"
        assert thrower.side_id == "A"
        assert thrower.round_number == 2

    def test_round_for_turn(self):
        assert round_for_turn(1, 4) == 1
        assert round_for_turn(4, 4) == 1
        assert round_for_turn(5, 4) == 2

    def test_fixed_order_wins_over_natural(self):
        game = doubles_game(throw_order=["B2", "A1", "B1", "A2"], order_source=OrderSource.CORK)
        assert current_thrower(game, 0).player_id == "B2"


class TestCork:

    def test_winner_names_second_thrower(self):
        order = cork_order(doubles_game(), "B2", "A2")
        assert order == ["B2", "A2", "B1", "A1"]

    def test_default_second_thrower(self):
        order = cork_order(doubles_game(), "A2")
        assert order == ["A2", "B1", "A1", "B2"]

    def test_second_thrower_must_be_opponent(self):
        with pytest.raises(TurnValidationError):
            cork_order(doubles_game(), "A1", "A2")

    def test_unknown_winner(self):
        with pytest.raises(TurnValidationError):
            cork_order(doubles_game(), "Z9")

    def test_solo_has_no_cork(self):
        game = Game(options=GameOptions(), home_side_id="A", players=[GamePlayer("A1", "A", 0)])
        with pytest.raises(TurnValidationError):
            cork_order(game, "A1")

    def test_odd_games_are_cork_games(self):
        assert is_cork_game(1)
        assert not is_cork_game(2)
        assert is_cork_game(3)

    def test_requires_cork_only_before_first_turn(self):
        game = doubles_game(game_number=1)
        assert requires_cork(game, 0)
        assert not requires_cork(game, 1)

    def test_even_game_needs_no_cork(self):
        assert not requires_cork(doubles_game(game_number=2), 0)

    def test_corked_game_needs_no_cork(self):
        game = doubles_game(throw_order=["A1", "B1", "A2", "B2"], order_source=OrderSource.CORK)
        assert not requires_cork(game, 0)


class TestRematchOrder:
    """Side that lost the previous cork throws first, players reversed."""

    def test_loser_first_reversed(self):
        previous = ["A1", "B1", "A2", "B2"]
        assert loser_first_reversed(doubles_game(), previous) == ["B2", "A2", "B1", "A1"]

    def test_named_policy(self):
        previous = ["B1", "A1", "B2", "A2"]
        order = derive_rematch_order(doubles_game(), previous, "loser_first_reversed")
        assert order == ["A2", "B2", "A1", "B1"]

    def test_unknown_policy(self):
        with pytest.raises(TurnValidationError):
            derive_rematch_order(doubles_game(), ["A1"], "coin_flip")

    def test_previous_order_required(self):
        assert loser_first_reversed(doubles_game(), []) is None

    def test_substituted_cork_winner_keeps_natural_order(self):
        previous = ["A9", "B1", "A2", "B2"]
        assert loser_first_reversed(doubles_game(), previous) is None
        assert derive_rematch_order(doubles_game(), previous) is None
