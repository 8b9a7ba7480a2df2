"""
test_draw_engine.py - Unit tests for the DrawEngine state machine

Tests cover:
1. Entry phase (open, enter, close) and its precondition order
2. start_draw preconditions and prize pool sizing
3. Fulfillment: authorization, correlation, winner selection, payout
4. Emergency cancellation and stale callbacks
5. Atomicity of failed calls
"""

import pytest
from datetime import timedelta

from luckyledger import (
    DrawEngine, DrawConfig, DrawState, DrawStatus, EventLog, MockRandomnessOracle,
    StateError, AccessDenied, EligibilityError, DuplicateEntry, NoParticipants,
    InsufficientFunds, AllowanceError, ScheduleError, RequestMismatch, RangeError,
    UNIT, PRIZE_CAP, MIN_HOLDING,
)
from tests.conftest import (
    make_token, make_engine, fund, enter_all, HOLDERS, DRAW_DAY, NON_DRAW_DAY,
)
from tests.fake_view import FakeView


def engine_snapshot(engine):
    return (
        engine.state, engine.participants, engine.current_draw_id, engine.prize_pool,
        engine.pending_requests, engine.winners,
    )


# =============================================================================
# ENTRY PHASE
# =============================================================================

class TestEntryPhase:

    def test_initial_state(self, engine):
        assert engine.state == DrawState.CLOSED
        assert engine.current_draw_id == 0
        assert engine.participants == ()
        assert engine.pending_requests == {}

    def test_open_requires_owner(self, engine):
        with pytest.raises(AccessDenied):
            engine.open_lottery("alice")

    def test_open_twice(self, engine):
        engine.open_lottery("owner")
        with pytest.raises(StateError):
            engine.open_lottery("owner")

    def test_enter_requires_open(self, engine):
        with pytest.raises(StateError):
            engine.enter_lottery("alice")

    def test_state_checked_before_eligibility(self, engine):
        with pytest.raises(StateError):
            engine.enter_lottery("pauper")

    def test_enter_preserves_order(self, engine):
        engine.open_lottery("owner")
        for holder in ("carol", "alice", "bob"):
            engine.enter_lottery(holder)
        assert engine.participants == ("carol", "alice", "bob")
        assert engine.participant_count == 3

    def test_duplicate_entry(self, engine):
        engine.open_lottery("owner")
        engine.enter_lottery("alice")
        with pytest.raises(DuplicateEntry):
            engine.enter_lottery("alice")
        assert engine.participant_count == 1

    def test_below_min_holding(self, engine):
        engine.token.transfer("owner", "dave", 777 * UNIT)
        engine.open_lottery("owner")
        with pytest.raises(EligibilityError):
            engine.enter_lottery("dave")

    def test_exact_min_holding_enters(self, engine):
        token = engine.token
        token.set_tax_rate("owner", 0)
        token.set_reflection_rate("owner", 0)
        token.transfer("owner", "dave", MIN_HOLDING)
        engine.open_lottery("owner")
        engine.enter_lottery("dave")
        assert engine.is_participant("dave")

    def test_blacklisted_cannot_enter(self, engine):
        engine.token.blacklist("owner", "alice")
        engine.open_lottery("owner")
        with pytest.raises(AccessDenied):
            engine.enter_lottery("alice")

    def test_close_keeps_participants(self, engine):
        enter_all(engine)
        assert engine.state == DrawState.CLOSED
        assert engine.participants == HOLDERS

    def test_close_requires_open(self, engine):
        with pytest.raises(StateError):
            engine.close_lottery("owner")

    def test_reopen_starts_empty(self, engine):
        enter_all(engine)
        engine.open_lottery("owner")
        assert engine.participants == ()

    def test_participant_added_event(self, engine):
        engine.open_lottery("owner")
        engine.enter_lottery("alice")
        event = engine.events.last("ParticipantAdded")
        assert event["participant"] == "alice"
        assert event["draw_id"] == 1


# =============================================================================
# START DRAW
# =============================================================================

class TestStartDraw:

    def test_requires_closed(self, engine):
        engine.open_lottery("owner")
        engine.enter_lottery("alice")
        engine.token.advance_time(DRAW_DAY)
        with pytest.raises(StateError):
            engine.start_draw("anyone")

    def test_wrong_day(self, engine):
        enter_all(engine)
        engine.token.advance_time(NON_DRAW_DAY)
        with pytest.raises(ScheduleError):
            engine.start_draw("anyone")

    def test_no_participants(self, engine):
        engine.open_lottery("owner")
        engine.close_lottery("owner")
        engine.token.advance_time(DRAW_DAY)
        with pytest.raises(NoParticipants):
            engine.start_draw("anyone")

    def test_empty_vault(self, oracle):
        token = make_token(tax_rate_bps=0, reflection_rate_bps=0)
        fund(token)
        engine = make_engine(token, oracle)
        enter_all(engine)
        token.advance_time(DRAW_DAY)
        with pytest.raises(InsufficientFunds):
            engine.start_draw("anyone")

    def test_missing_allowance(self, ready_engine):
        ready_engine.token.approve("vault", ready_engine.address, 0)
        before = engine_snapshot(ready_engine)
        with pytest.raises(AllowanceError):
            ready_engine.start_draw("anyone")
        assert engine_snapshot(ready_engine) == before

    def test_success(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        assert ready_engine.state == DrawState.DRAWING
        assert ready_engine.current_draw_id == 1
        assert ready_engine.prize_pool == 75 * UNIT
        assert ready_engine.pending_requests == {request_id: 1}
        assert oracle.is_pending(request_id)

        started = ready_engine.events.last("DrawStarted")
        assert started["draw_id"] == 1
        assert started["prize_pool"] == 75 * UNIT
        assert started["participant_count"] == 3

    def test_request_carries_config(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        request = oracle.get_request(request_id)
        assert request.key_hash == ready_engine.config.key_hash
        assert request.request_confirmations == 3
        assert request.callback_gas_limit == 200_000
        assert request.num_words == 1

    def test_one_draw_in_flight(self, ready_engine):
        ready_engine.start_draw("anyone")
        with pytest.raises(StateError):
            ready_engine.start_draw("anyone")

    def test_record_while_in_flight(self, ready_engine):
        ready_engine.start_draw("anyone")
        record = ready_engine.draw_record(1)
        assert record.status is None
        assert record.participant_count == 3
        assert record.started_at == DRAW_DAY


class TestPrizePool:

    def _engine(self, vault_balance):
        view = FakeView(
            balances={'vault': vault_balance},
            allowances={('vault', 'draw_engine'): PRIZE_CAP},
            time=DRAW_DAY,
        )
        oracle = MockRandomnessOracle()
        config = DrawConfig(owner="owner", prize_vault="vault", oracle=oracle.address)
        return DrawEngine(view, oracle, config, events=EventLog())

    def test_quarter_of_vault(self):
        assert self._engine(10_000_000 * UNIT).compute_prize_pool() == 2_500_000 * UNIT

    def test_capped(self):
        assert self._engine(40_000_000 * UNIT).compute_prize_pool() == 7_000_000 * UNIT

    def test_empty_vault(self):
        assert self._engine(0).compute_prize_pool() == 0

    def test_tiny_vault_rounds_to_zero(self):
        assert self._engine(3).compute_prize_pool() == 0

    def test_draw_day_from_view_clock(self):
        engine = self._engine(UNIT)
        assert engine.is_draw_day()
        assert not engine.is_draw_day(NON_DRAW_DAY)


# =============================================================================
# FULFILLMENT
# =============================================================================

class TestFulfillment:

    def test_only_oracle_may_fulfill(self, ready_engine):
        request_id = ready_engine.start_draw("anyone")
        with pytest.raises(AccessDenied):
            ready_engine.fulfill_random_words("mallory", request_id, [1])

    def test_requires_drawing(self, engine, oracle):
        with pytest.raises(StateError):
            engine.fulfill_random_words(oracle.address, 1, [1])

    def test_unknown_request(self, ready_engine, oracle):
        ready_engine.start_draw("anyone")
        with pytest.raises(RequestMismatch):
            ready_engine.fulfill_random_words(oracle.address, 999, [1])
        assert ready_engine.state == DrawState.DRAWING

    def test_empty_words(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        with pytest.raises(RangeError):
            ready_engine.fulfill_random_words(oracle.address, request_id, [])

    def test_pays_selected_winner(self, ready_engine, oracle):
        token = ready_engine.token
        request_id = ready_engine.start_draw("anyone")
        bob_before = token.balance_of("bob")

        oracle.fulfill(request_id, [4])   # 4 % 3 == 1 -> bob

        assert ready_engine.winner_of(1) == "bob"
        assert token.balance_of("bob") == bob_before + 75 * UNIT * 975 // 1000
        assert token.balance_of("vault") == 300 * UNIT - 75 * UNIT + 75 * UNIT // 100
        assert token.allowance("vault", ready_engine.address) == PRIZE_CAP - 75 * UNIT
        assert token.verify_supply()['valid']

    def test_resets_after_payout(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        oracle.fulfill(request_id, [0])
        assert ready_engine.state == DrawState.CLOSED
        assert ready_engine.participants == ()
        assert ready_engine.pending_requests == {}
        assert ready_engine.prize_pool == 0
        assert ready_engine.winners == {1: "alice"}

    def test_only_first_word_used(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        oracle.fulfill(request_id, [5, 0])
        assert ready_engine.winner_of(1) == "carol"

    def test_large_word(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        word = 2 ** 256 - 1
        oracle.fulfill(request_id, [word])
        assert ready_engine.winner_of(1) == HOLDERS[word % 3]

    def test_completed_record_and_event(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        oracle.fulfill(request_id, [2])
        record = ready_engine.draw_record(1)
        assert record.status == DrawStatus.COMPLETED
        assert record.winner == "carol"
        assert record.random_word == 2
        event = ready_engine.events.last("DrawCompleted")
        assert event["winner"] == "carol"
        assert event["prize"] == 75 * UNIT
        assert event["net_prize"] == 75 * UNIT * 975 // 1000

    def test_duplicate_callback_cannot_pay_twice(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        oracle.fulfill(request_id, [1])
        with pytest.raises(StateError):
            ready_engine.fulfill_random_words(oracle.address, request_id, [1])
        with pytest.raises(RequestMismatch):
            oracle.fulfill(request_id, [1])

    def test_payout_failure_changes_nothing(self, ready_engine, oracle):
        token = ready_engine.token
        request_id = ready_engine.start_draw("anyone")
        token.pause("owner")
        ledger_before = token.state_snapshot()
        engine_before = engine_snapshot(ready_engine)

        with pytest.raises(AccessDenied):
            oracle.fulfill(request_id, [1])

        assert token.state_snapshot() == ledger_before
        assert engine_snapshot(ready_engine) == engine_before

    def test_retry_after_unpause(self, ready_engine, oracle):
        token = ready_engine.token
        request_id = ready_engine.start_draw("anyone")
        token.pause("owner")
        with pytest.raises(AccessDenied):
            oracle.fulfill(request_id, [1])
        token.unpause("owner")
        ready_engine.fulfill_random_words(oracle.address, request_id, [1])
        assert ready_engine.winner_of(1) == "bob"

    def test_empty_participant_set_closes_without_payout(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        vault_before = ready_engine.token.balance_of("vault")
        ready_engine._clear_participants()

        oracle.fulfill(request_id, [1])

        assert ready_engine.state == DrawState.CLOSED
        assert ready_engine.winner_of(1) is None
        assert ready_engine.draw_record(1).status == DrawStatus.EMPTY
        assert ready_engine.token.balance_of("vault") == vault_before
        assert ready_engine.pending_requests == {}


# =============================================================================
# EMERGENCY CANCEL
# =============================================================================

class TestEmergencyCancel:

    def test_owner_only(self, ready_engine):
        ready_engine.start_draw("anyone")
        with pytest.raises(AccessDenied):
            ready_engine.emergency_cancel("alice")

    def test_requires_drawing(self, engine):
        with pytest.raises(StateError):
            engine.emergency_cancel("owner")

    def test_cancel_discards_draw(self, ready_engine):
        vault_before = ready_engine.token.balance_of("vault")
        request_id = ready_engine.start_draw("anyone")
        ready_engine.emergency_cancel("owner")

        assert ready_engine.state == DrawState.CLOSED
        assert ready_engine.participants == ()
        assert ready_engine.winners == {}
        assert ready_engine.token.balance_of("vault") == vault_before
        assert ready_engine.draw_record(1).status == DrawStatus.CANCELLED
        assert ready_engine.pending_requests == {request_id: 1}
        assert ready_engine.events.last("DrawCancelled")["request_id"] == request_id

    def test_late_callback_after_cancel(self, ready_engine, oracle):
        request_id = ready_engine.start_draw("anyone")
        ready_engine.emergency_cancel("owner")
        with pytest.raises(StateError):
            oracle.fulfill(request_id, [1])
        assert ready_engine.winners == {}

    def test_stale_callback_in_next_draw(self, ready_engine, oracle):
        token = ready_engine.token
        stale = ready_engine.start_draw("anyone")
        ready_engine.emergency_cancel("owner")

        enter_all(ready_engine)
        fresh = ready_engine.start_draw("anyone")
        assert ready_engine.current_draw_id == 2
        vault_before = token.balance_of("vault")

        with pytest.raises(RequestMismatch):
            oracle.fulfill(stale, [1])
        assert ready_engine.state == DrawState.DRAWING
        assert token.balance_of("vault") == vault_before
        assert ready_engine.winners == {}

        oracle.fulfill(fresh, [1])
        assert ready_engine.winners == {2: "bob"}


class TestAdministration:

    def test_transfer_ownership(self, engine):
        engine.transfer_ownership("owner", "operator")
        assert engine.owner == "operator"
        with pytest.raises(AccessDenied):
            engine.open_lottery("owner")
        engine.open_lottery("operator")

    def test_oracle_address_must_match(self, funded_token, oracle):
        config = DrawConfig(owner="owner", prize_vault="vault", oracle="someone_else")
        with pytest.raises(ValueError):
            DrawEngine(funded_token, oracle, config)

    def test_history(self, ready_engine, oracle):
        ready_engine.start_draw("anyone")
        ready_engine.emergency_cancel("owner")
        enter_all(ready_engine)
        request_id = ready_engine.start_draw("anyone")
        oracle.fulfill(request_id, [0])
        assert [r.status for r in ready_engine.history()] == [DrawStatus.CANCELLED, DrawStatus.COMPLETED]
