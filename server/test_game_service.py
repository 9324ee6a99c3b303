"""
Test suite for the game service.

Drives whole games through GameService over the in-memory store:
turn submission, throw order enforcement, win handling, undo (including
drift detection), cork and rematch ordering, concurrent writes, and history
verification.

Run with: pytest test_game_service.py -v
"""

import asyncio

import pytest

from game import (
    Dart,
    GameCompletedError,
    GameHaltedError,
    GameNotFoundError,
    GameOptions,
    GamePlayer,
    GameStatus,
    GameVariant,
    InconsistentStateError,
    OrderSource,
    RtwMode,
    TurnValidationError,
)
from models.game_state import rebuild_state
from models.turns import (
    DartsInput,
    MarksInput,
    RtwInput,
    ShanghaiBonusInput,
    TurnTotalInput,
)
from round_the_world import build_sequence
from services.game_service import GameService, SubmitResult
from stores.memory_store import InMemoryGameStore
from undo import NOTHING_TO_UNDO

T20 = Dart(20, 3)
D20 = Dart(20, 2)

SINGLES = [GamePlayer("alice", "home", 0), GamePlayer("bob", "away", 0)]
DOUBLES = [
    GamePlayer("A1", "A", 0),
    GamePlayer("A2", "A", 1),
    GamePlayer("B1", "B", 0),
    GamePlayer("B2", "B", 1),
]


def make_service(**kwargs) -> tuple[GameService, InMemoryGameStore]:
    store = InMemoryGameStore()
    return GameService(store, **kwargs), store


async def x01_game(service: GameService, target: int = 501, **options):
    return await service.create_game(
        GameOptions(variant=GameVariant.X01, x01_target=target, **options),
        "home",
        "away",
        SINGLES,
    )


async def marks_game(service: GameService, variant: GameVariant):
    return await service.create_game(GameOptions(variant=variant), "home", "away", SINGLES)


# =============================================================================
# Creation
# =============================================================================

class TestCreateGame:

    @pytest.mark.asyncio
    async def test_initial_state(self):
        service, _ = make_service()
        game = await x01_game(service)

        state = await service.get_derived_state(game.game_id)
        assert state.sides["home"].remaining == 501
        assert state.sides["away"].remaining == 501
        assert state.turns_taken == 0
        assert game.status == GameStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_target_below_two_rejected(self):
        service, _ = make_service()
        with pytest.raises(TurnValidationError):
            await x01_game(service, target=1)

    @pytest.mark.asyncio
    async def test_oversized_side_rejected(self):
        service, _ = make_service()
        players = [GamePlayer(f"p{i}", "home", i) for i in range(5)]
        with pytest.raises(TurnValidationError):
            await service.create_game(GameOptions(), "home", "away", players)

    @pytest.mark.asyncio
    async def test_round_the_world_sequence_fixed_at_creation(self):
        service, store = make_service()
        game = await service.create_game(
            GameOptions(variant=GameVariant.ROUND_THE_WORLD, rtw_mode=RtwMode.RANDOM),
            "home",
            None,
            [GamePlayer("alice", "home", 0)],
        )
        stored = await store.get_game(game.game_id)
        assert len(stored.rtw_sequence) == 21
        assert stored.rtw_sequence == game.rtw_sequence

    @pytest.mark.asyncio
    async def test_unknown_game(self):
        service, _ = make_service()
        with pytest.raises(GameNotFoundError):
            await service.get_game("missing")


# =============================================================================
# X01 Turns
# =============================================================================

class TestX01Turns:

    @pytest.mark.asyncio
    async def test_turn_updates_remaining(self):
        service, _ = make_service()
        game = await x01_game(service)

        result = await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20, T20, T20]))

        assert result.turn.score == 180
        assert result.turn.turn_number == 1
        assert result.turn.round_number == 1
        assert result.all_star_tier == "triple"
        assert result.state.sides["home"].remaining == 321
        assert (await service.get_game(game.game_id)).status == GameStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_out_of_turn_rejected(self):
        service, _ = make_service()
        game = await x01_game(service)
        with pytest.raises(TurnValidationError):
            await service.submit_turn(game.game_id, "bob", "away", DartsInput([T20]))

    @pytest.mark.asyncio
    async def test_wrong_side_rejected(self):
        service, _ = make_service()
        game = await x01_game(service)
        with pytest.raises(TurnValidationError):
            await service.submit_turn(game.game_id, "alice", "away", DartsInput([T20]))

    @pytest.mark.asyncio
    async def test_invalid_input_changes_nothing(self):
        service, store = make_service()
        game = await x01_game(service)
        with pytest.raises(TurnValidationError):
            await service.submit_turn(game.game_id, "alice", "home", TurnTotalInput(score=181))
        assert await store.get_last_turn_number(game.game_id) == 0

    @pytest.mark.asyncio
    async def test_bust_is_recorded(self):
        service, _ = make_service()
        game = await x01_game(service, target=40)

        result = await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20]))

        assert result.bust
        assert result.turn.score == 0
        assert result.state.sides["home"].remaining == 40
        thrower = await service.get_current_thrower(game.game_id)
        assert thrower.player_id == "bob"

    @pytest.mark.asyncio
    async def test_win_completes_game(self):
        service, _ = make_service()
        game = await x01_game(service, target=40)

        result = await service.submit_turn(game.game_id, "alice", "home", DartsInput([D20]))

        assert result.win
        stored = await service.get_game(game.game_id)
        assert stored.status == GameStatus.COMPLETED
        assert stored.winning_side_id == "home"

        with pytest.raises(GameCompletedError):
            await service.submit_turn(game.game_id, "bob", "away", DartsInput([D20]))

    @pytest.mark.asyncio
    async def test_rounds_advance(self):
        service, _ = make_service()
        game = await x01_game(service)
        for player, side in [("alice", "home"), ("bob", "away"), ("alice", "home")]:
            result = await service.submit_turn(game.game_id, player, side, TurnTotalInput(score=45))
        assert result.turn.round_number == 2
        assert result.state.sides["home"].remaining == 411


# =============================================================================
# Undo
# =============================================================================

class TestUndo:

    @pytest.mark.asyncio
    async def test_nothing_to_undo(self):
        service, _ = make_service()
        game = await x01_game(service)

        result = await service.undo_last_turn(game.game_id)

        assert not result.success
        assert result.message == NOTHING_TO_UNDO

    @pytest.mark.asyncio
    async def test_undo_restores_state_and_thrower(self):
        service, _ = make_service()
        game = await x01_game(service)
        await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20, T20]))

        result = await service.undo_last_turn(game.game_id)

        assert result.success
        assert result.turn.turn_number == 1
        assert result.state.sides["home"].remaining == 501
        assert (await service.get_current_thrower(game.game_id)).player_id == "alice"
        assert await service.get_turns(game.game_id) == []

    @pytest.mark.asyncio
    async def test_undo_double_in_turn_clears_flag(self):
        service, _ = make_service()
        game = await x01_game(service, double_in_required=True)
        result = await service.submit_turn(game.game_id, "alice", "home", DartsInput([D20]))
        assert result.state.sides["home"].has_doubled_in

        undone = await service.undo_last_turn(game.game_id)
        assert not undone.state.sides["home"].has_doubled_in

    @pytest.mark.asyncio
    async def test_undo_winning_turn_reopens(self):
        service, _ = make_service()
        game = await x01_game(service, target=40)
        await service.submit_turn(game.game_id, "alice", "home", DartsInput([D20]))

        result = await service.undo_last_turn(game.game_id)

        assert result.reopened
        stored = await service.get_game(game.game_id)
        assert stored.status == GameStatus.NOT_STARTED
        assert stored.winning_side_id is None

    @pytest.mark.asyncio
    async def test_drift_halts_game(self):
        service, store = make_service()
        game = await x01_game(service)
        await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20]))

        # Corrupt the stored projection
        store._sides[game.game_id]["home"]["remaining"] = 400

        with pytest.raises(InconsistentStateError):
            await service.undo_last_turn(game.game_id)

        assert (await service.get_game(game.game_id)).halted
        assert len(await service.get_turns(game.game_id)) == 1
        with pytest.raises(GameHaltedError):
            await service.submit_turn(game.game_id, "bob", "away", DartsInput([T20]))
        with pytest.raises(GameHaltedError):
            await service.undo_last_turn(game.game_id)


# =============================================================================
# Cricket / Shanghai
# =============================================================================

class TestMarksGames:

    @pytest.mark.asyncio
    async def test_cricket_win_on_bull(self):
        service, _ = make_service()
        game = await marks_game(service, GameVariant.CRICKET)
        gid = game.game_id

        first = await service.submit_turn(gid, "alice", "home", MarksInput({"20": 3, "19": 3, "18": 3}))
        assert first.all_star_tier == "triple"
        await service.submit_turn(gid, "bob", "away", MarksInput({}))
        await service.submit_turn(gid, "alice", "home", MarksInput({"17": 3, "16": 3, "15": 3}))
        await service.submit_turn(gid, "bob", "away", MarksInput({"20": 1}))
        result = await service.submit_turn(gid, "alice", "home", MarksInput({"Bull": 3}, darts_thrown=1))

        assert result.win
        assert result.all_star_tier == "single"
        tally = result.state.players["alice"]
        assert tally.marks == 21
        assert tally.mark_turns == 3

    @pytest.mark.asyncio
    async def test_shanghai_bonus_turn(self):
        service, _ = make_service()
        game = await marks_game(service, GameVariant.SHANGHAI)

        result = await service.submit_turn(game.game_id, "alice", "home", ShanghaiBonusInput())

        assert result.turn.score == 200
        assert result.turn.darts_thrown == 0
        assert result.state.sides["home"].points == 200
        assert (await service.get_current_thrower(game.game_id)).player_id == "bob"

        undone = await service.undo_last_turn(game.game_id)
        assert undone.state.sides["home"].points == 0

    @pytest.mark.asyncio
    async def test_bonus_refused_in_cricket(self):
        service, _ = make_service()
        game = await marks_game(service, GameVariant.CRICKET)
        with pytest.raises(TurnValidationError):
            await service.submit_turn(game.game_id, "alice", "home", ShanghaiBonusInput())

    @pytest.mark.asyncio
    async def test_marks_beyond_darts_thrown_rejected(self):
        service, _ = make_service()
        game = await marks_game(service, GameVariant.CRICKET)
        with pytest.raises(TurnValidationError):
            await service.submit_turn(
                game.game_id, "alice", "home", MarksInput({"20": 9}, darts_thrown=1)
            )
        assert await service.get_turns(game.game_id) == []


# =============================================================================
# Round the World
# =============================================================================

class TestRoundTheWorld:

    @pytest.mark.asyncio
    async def test_solo_run_to_bull(self):
        service, _ = make_service()
        game = await service.create_game(
            GameOptions(variant=GameVariant.ROUND_THE_WORLD),
            "home",
            None,
            [GamePlayer("alice", "home", 0)],
            rtw_sequence=build_sequence(RtwMode.ONE_TO_TWENTY),
        )

        miss = await service.submit_turn(game.game_id, "alice", "home", RtwInput(hit=False))
        assert miss.turn.score == 0
        for _ in range(20):
            result = await service.submit_turn(game.game_id, "alice", "home", RtwInput(hit=True))
            assert not result.win
        result = await service.submit_turn(game.game_id, "alice", "home", RtwInput(hit=True))

        assert result.win
        assert result.turn.score == 25
        assert result.state.players["alice"].score == 210 + 25

    @pytest.mark.asyncio
    async def test_darts_input_rejected(self):
        service, _ = make_service()
        game = await service.create_game(
            GameOptions(variant=GameVariant.ROUND_THE_WORLD), "home", None,
            [GamePlayer("alice", "home", 0)],
        )
        with pytest.raises(TurnValidationError):
            await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20]))


# =============================================================================
# Throw Order
# =============================================================================

class TestThrowOrder:

    @pytest.mark.asyncio
    async def test_cork_sets_order(self):
        service, _ = make_service()
        game = await service.create_game(GameOptions(), "A", "B", DOUBLES)

        updated = await service.set_cork_order(game.game_id, "B2", "A2")

        assert updated.order_source == OrderSource.CORK
        assert updated.throw_order == ["B2", "A2", "B1", "A1"]
        assert (await service.get_current_thrower(game.game_id)).player_id == "B2"

    @pytest.mark.asyncio
    async def test_cork_refused_after_first_turn(self):
        service, _ = make_service()
        game = await service.create_game(GameOptions(), "A", "B", DOUBLES)
        await service.submit_turn(game.game_id, "A1", "A", TurnTotalInput(score=26))
        with pytest.raises(TurnValidationError):
            await service.set_cork_order(game.game_id, "B1")

    @pytest.mark.asyncio
    async def test_enforced_cork(self):
        service, _ = make_service(enforce_cork=True)
        game = await service.create_game(GameOptions(), "A", "B", DOUBLES)
        with pytest.raises(TurnValidationError):
            await service.submit_turn(game.game_id, "A1", "A", TurnTotalInput(score=26))

        await service.set_cork_order(game.game_id, "A1")
        result = await service.submit_turn(game.game_id, "A1", "A", TurnTotalInput(score=26))
        assert result.turn.turn_number == 1

    @pytest.mark.asyncio
    async def test_even_game_uses_auto_rematch_order(self):
        service, _ = make_service()
        first = await service.create_game(GameOptions(), "A", "B", DOUBLES, match_id="m1", game_number=1)
        await service.set_cork_order(first.game_id, "B2", "A2")

        second = await service.create_game(GameOptions(), "A", "B", DOUBLES, match_id="m1", game_number=2)

        assert second.order_source == OrderSource.AUTO_REMATCH
        assert second.throw_order == ["A2", "B2", "A1", "B1"]

    @pytest.mark.asyncio
    async def test_substituted_cork_winner_falls_back_to_natural_order(self):
        service, _ = make_service()
        first = await service.create_game(GameOptions(), "A", "B", DOUBLES, match_id="m1", game_number=1)
        await service.set_cork_order(first.game_id, "A1")

        substituted = [GamePlayer("A3", "A", 0)] + DOUBLES[1:]
        second = await service.create_game(
            GameOptions(), "A", "B", substituted, match_id="m1", game_number=2
        )

        assert second.order_source == OrderSource.NATURAL
        assert second.throw_order == []
        assert (await service.get_current_thrower(second.game_id)).player_id == "A3"

    @pytest.mark.asyncio
    async def test_rematch_loser_throws_first(self):
        service, _ = make_service()
        game = await x01_game(service, target=40)
        await service.submit_turn(game.game_id, "alice", "home", DartsInput([D20]))

        rematch = await service.create_rematch(game.game_id)

        assert rematch.home_side_id == "away"
        assert rematch.options.x01_target == 40
        assert (await service.get_current_thrower(rematch.game_id)).player_id == "bob"

    @pytest.mark.asyncio
    async def test_rematch_requires_completed_game(self):
        service, _ = make_service()
        game = await x01_game(service)
        with pytest.raises(TurnValidationError):
            await service.create_rematch(game.game_id)


# =============================================================================
# Concurrency
# =============================================================================

class TestConcurrency:
    """Writes to one game are serialized by its lock."""

    @pytest.mark.asyncio
    async def test_duplicate_submissions_get_one_turn(self):
        service, _ = make_service()
        game = await x01_game(service)

        results = await asyncio.gather(
            service.submit_turn(game.game_id, "alice", "home", DartsInput([T20])),
            service.submit_turn(game.game_id, "alice", "home", DartsInput([T20])),
            return_exceptions=True,
        )

        assert sum(isinstance(r, SubmitResult) for r in results) == 1
        assert sum(isinstance(r, TurnValidationError) for r in results) == 1
        turns = await service.get_turns(game.game_id)
        assert [t.turn_number for t in turns] == [1]
        assert (await service.get_derived_state(game.game_id)).sides["home"].remaining == 441

    @pytest.mark.asyncio
    async def test_concurrent_throwers_get_distinct_turn_numbers(self):
        service, _ = make_service()
        game = await x01_game(service)

        first, second = await asyncio.gather(
            service.submit_turn(game.game_id, "alice", "home", DartsInput([T20])),
            service.submit_turn(game.game_id, "bob", "away", DartsInput([D20])),
        )

        assert {first.turn.turn_number, second.turn.turn_number} == {1, 2}
        assert [t.player_id for t in await service.get_turns(game.game_id)] == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_undo_racing_submit_keeps_log_and_projection_consistent(self):
        service, store = make_service()
        game = await x01_game(service)
        gid = game.game_id
        await service.submit_turn(gid, "alice", "home", DartsInput([T20]))

        undone, submitted = await asyncio.gather(
            service.undo_last_turn(gid),
            service.submit_turn(gid, "bob", "away", DartsInput([T20])),
            return_exceptions=True,
        )

        assert undone.success
        turns = await service.get_turns(gid)
        if isinstance(submitted, SubmitResult):
            # Submit won the lock; undo removed bob's turn
            assert [t.player_id for t in turns] == ["alice"]
        else:
            assert isinstance(submitted, TurnValidationError)
            assert turns == []

        folded = rebuild_state(await service.get_game(gid), turns)
        projection = await store.get_side_states(gid)
        assert {sid: s.to_dict() for sid, s in projection.items()} == {
            sid: s.to_dict() for sid, s in folded.sides.items()
        }
        await service.verify_game(gid)

    @pytest.mark.asyncio
    async def test_lock_entries_released_after_writes(self):
        service, _ = make_service()
        game = await x01_game(service, target=40)

        win, undone = await asyncio.gather(
            service.submit_turn(game.game_id, "alice", "home", DartsInput([D20])),
            service.undo_last_turn(game.game_id),
        )

        assert win.win
        assert undone.reopened
        assert service._locks == {}


# =============================================================================
# Verification and Scoreboard
# =============================================================================

class TestVerification:

    @pytest.mark.asyncio
    async def test_clean_history_verifies(self):
        service, _ = make_service()
        game = await x01_game(service)
        await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20, Dart(19)]))
        await service.submit_turn(game.game_id, "bob", "away", TurnTotalInput(score=85))

        state = await service.verify_game(game.game_id)

        assert state.sides["home"].remaining == 422
        assert state.sides["away"].remaining == 416

    @pytest.mark.asyncio
    async def test_tampered_score_halts(self):
        service, store = make_service()
        game = await x01_game(service)
        await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20]))
        store._turns[game.game_id][0]["score"] = 50

        with pytest.raises(InconsistentStateError):
            await service.verify_game(game.game_id)
        assert (await service.get_game(game.game_id)).halted

    @pytest.mark.asyncio
    async def test_scoreboard(self):
        service, _ = make_service()
        game = await x01_game(service, target=100)
        await service.submit_turn(game.game_id, "alice", "home", DartsInput([T20]))

        board = await service.get_scoreboard(game.game_id)

        assert board["current_thrower"]["player_id"] == "bob"
        assert board["checkouts"]["home"] == ("D20",)
        assert board["checkouts"]["away"] == ("T20", "D20")
        assert board["players"]["alice"]["ppd"] == 60.0
        assert not board["requires_cork"]
