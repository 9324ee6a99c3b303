"""
Test suite for X01 scoring.

Covers:
- Dart values (singles, doubles, triples, bull, double bull, miss)
- Bust rules (below zero, left on one, finish without a double)
- Double-in (only darts from the first double count)
- Game out
- Turn-total entry mode

Run with: pytest test_x01.py -v
"""

import pytest

from game import Dart, GameOptions, GameVariant, TurnValidationError
from x01 import (
    BUST_BELOW_ZERO,
    BUST_LEFT_ON_ONE,
    BUST_NO_DOUBLE_FINISH,
    effective_turn_score,
    score_darts,
    score_total,
)


def opts(double_in=False, double_out=True, target=501) -> GameOptions:
    return GameOptions(
        variant=GameVariant.X01,
        x01_target=target,
        double_in_required=double_in,
        double_out_required=double_out,
    )


# =============================================================================
# Dart Values
# =============================================================================

class TestDartValues:
    """Verify a dart scores segment x multiplier."""

    def test_single_double_triple(self):
        assert Dart(20).score == 20
        assert Dart(20, 2).score == 40
        assert Dart(20, 3).score == 60

    def test_bull_and_double_bull(self):
        assert Dart(25).score == 25
        assert Dart(25, 2).score == 50

    def test_miss_scores_nothing(self):
        assert Dart(0).score == 0
        assert not Dart(0, 2).is_double

    def test_labels(self):
        assert Dart(20, 3).label == "T20"
        assert Dart(16, 2).label == "D16"
        assert Dart(25, 2).label == "DBull"
        assert Dart(0).label == "Miss"

    def test_invalid_darts_rejected(self):
        with pytest.raises(TurnValidationError):
            Dart(21).validate()
        with pytest.raises(TurnValidationError):
            Dart(25, 3).validate()
        with pytest.raises(TurnValidationError):
            Dart(5, 4).validate()


# =============================================================================
# Plain Scoring
# =============================================================================

class TestScoring:

    def test_three_darts_sum(self):
        outcome = score_darts(501, False, [Dart(20, 3), Dart(20, 3), Dart(20, 3)], opts())
        assert outcome.score == 180
        assert outcome.remaining_after == 321
        assert outcome.darts_thrown == 3
        assert not outcome.is_bust

    def test_partial_turn(self):
        outcome = score_darts(501, False, [Dart(19)], opts())
        assert outcome.score == 19
        assert outcome.darts_thrown == 1

    def test_empty_turn_rejected(self):
        with pytest.raises(TurnValidationError):
            score_darts(501, False, [], opts())

    def test_four_darts_rejected(self):
        with pytest.raises(TurnValidationError):
            score_darts(501, False, [Dart(1)] * 4, opts())


# =============================================================================
# Busts
# =============================================================================

class TestBusts:
    """A bust scores zero and leaves remaining unchanged."""

    def test_below_zero(self):
        outcome = score_darts(40, False, [Dart(20, 3)], opts())
        assert outcome.is_bust
        assert outcome.bust_reason == BUST_BELOW_ZERO
        assert outcome.score == 0
        assert outcome.remaining_after == 40

    def test_left_on_one(self):
        outcome = score_darts(41, False, [Dart(20, 2)], opts())
        assert outcome.is_bust
        assert outcome.bust_reason == BUST_LEFT_ON_ONE

    def test_left_on_one_allowed_without_double_out(self):
        outcome = score_darts(41, False, [Dart(20, 2)], opts(double_out=False))
        assert not outcome.is_bust
        assert outcome.remaining_after == 1

    def test_zero_on_single_busts_with_double_out(self):
        outcome = score_darts(20, False, [Dart(20)], opts())
        assert outcome.is_bust
        assert outcome.bust_reason == BUST_NO_DOUBLE_FINISH

    def test_zero_on_single_wins_without_double_out(self):
        outcome = score_darts(20, False, [Dart(20)], opts(double_out=False))
        assert outcome.is_game_out

    def test_evaluation_stops_at_busting_dart(self):
        """Darts after the bust are not counted."""
        outcome = score_darts(50, False, [Dart(20), Dart(20, 3), Dart(5)], opts())
        assert outcome.is_bust
        assert outcome.darts_thrown == 2
        assert outcome.remaining_after == 50

    @pytest.mark.parametrize("darts", [
        [Dart(20), Dart(20), Dart(1)],
        [Dart(1), Dart(20), Dart(20)],
        [Dart(7, 3), Dart(20)],
    ])
    def test_41_ending_on_non_double_busts(self, darts):
        outcome = score_darts(41, False, darts, opts())
        assert outcome.is_bust
        assert outcome.score == 0
        assert outcome.remaining_after == 41

    def test_41_total_ending_on_non_double_busts(self):
        outcome = score_total(41, False, 41, opts(), finished_on_double=False)
        assert outcome.is_bust
        assert outcome.score == 0
        assert outcome.remaining_after == 41


# =============================================================================
# Game Out
# =============================================================================

class TestGameOut:

    def test_finish_on_double(self):
        outcome = score_darts(40, False, [Dart(20, 2)], opts())
        assert outcome.is_game_out
        assert outcome.remaining_after == 0

    def test_finish_on_double_bull(self):
        outcome = score_darts(50, False, [Dart(25, 2)], opts())
        assert outcome.is_game_out

    def test_darts_after_finish_ignored(self):
        outcome = score_darts(40, False, [Dart(20, 2), Dart(20), Dart(20)], opts())
        assert outcome.is_game_out
        assert outcome.darts_thrown == 1
        assert outcome.score == 40


# =============================================================================
# Double In
# =============================================================================

class TestDoubleIn:

    def test_only_suffix_from_first_double_counts(self):
        darts = [Dart(20), Dart(16, 2), Dart(20)]
        assert effective_turn_score(darts, True, False) == 52

    def test_no_double_scores_nothing(self):
        outcome = score_darts(501, False, [Dart(20, 3)] * 3, opts(double_in=True))
        assert outcome.score == 0
        assert not outcome.is_double_in
        assert not outcome.is_bust

    def test_doubling_in_sets_flag(self):
        outcome = score_darts(501, False, [Dart(5), Dart(20, 2)], opts(double_in=True))
        assert outcome.score == 40
        assert outcome.is_double_in

    def test_already_doubled_in_counts_all(self):
        outcome = score_darts(461, True, [Dart(20), Dart(1)], opts(double_in=True))
        assert outcome.score == 21
        assert not outcome.is_double_in


# =============================================================================
# Turn Total Entry
# =============================================================================

class TestTurnTotal:

    def test_total_subtracts(self):
        outcome = score_total(501, False, 100, opts())
        assert outcome.score == 100
        assert outcome.remaining_after == 401

    def test_total_out_of_range(self):
        with pytest.raises(TurnValidationError):
            score_total(501, False, 181, opts())
        with pytest.raises(TurnValidationError):
            score_total(501, False, -1, opts())

    def test_darts_thrown_out_of_range(self):
        with pytest.raises(TurnValidationError):
            score_total(501, False, 60, opts(), darts_thrown=0)

    def test_total_bust(self):
        outcome = score_total(32, False, 31, opts())
        assert outcome.is_bust
        assert outcome.remaining_after == 32

    def test_total_finish_needs_double_confirmation(self):
        assert score_total(32, False, 32, opts(), finished_on_double=True).is_game_out
        outcome = score_total(32, False, 32, opts(), finished_on_double=False)
        assert outcome.is_bust
        assert outcome.bust_reason == BUST_NO_DOUBLE_FINISH

    def test_positive_total_doubles_in(self):
        outcome = score_total(501, False, 40, opts(double_in=True))
        assert outcome.is_double_in
        assert not score_total(501, False, 0, opts(double_in=True)).is_double_in
