"""
Atomicity Conformance Tests

INVARIANT: Every public call is all-or-nothing.

    ∀ call C:
        C succeeds ⟹ all of its effects are applied
        C raises   ⟹ ledger and engine state are exactly as before C

A taxed transfer never shows a recipient credited without its treasury and
vault legs, and a rejected draw operation never leaves the engine half-moved.
"""

import pytest
from datetime import timedelta
from hypothesis import given, settings
from hypothesis import strategies as st

from luckyledger import (
    LedgerError, DrawState, DrawStatus, MockRandomnessOracle, UNIT,
)
from tests.conftest import make_token, make_engine, fund, DRAW_DAY, START_TIME


def engine_snapshot(engine):
    return (
        engine.state, engine.participants, engine.current_draw_id, engine.prize_pool,
        engine.pending_requests, engine.winners, tuple(engine.history()),
    )


# =============================================================================
# LEDGER
# =============================================================================

class TestLedgerAtomicity:

    @given(
        excess=st.integers(min_value=1, max_value=10 ** 24),
        blocked=st.sampled_from(["none", "pause", "breaker", "sender", "recipient"]),
    )
    @settings(max_examples=80, deadline=None)
    def test_rejected_transfer_changes_nothing(self, excess, blocked):
        """
        PROPERTY: a rejected transfer leaves every balance, reflection balance
        and the reflection total untouched.
        """
        token = make_token()
        fund(token)
        if blocked == "pause":
            token.pause("owner")
        elif blocked == "breaker":
            token.activate_circuit_breaker("guardian")
        elif blocked == "sender":
            token.blacklist("owner", "alice")
        elif blocked == "recipient":
            token.blacklist("owner", "bob")

        amount = token.balance_of("alice") + excess if blocked == "none" else excess
        snapshot = token.state_snapshot()
        events_before = len(token.events)

        with pytest.raises(LedgerError):
            token.transfer("alice", "bob", amount)

        assert token.state_snapshot() == snapshot
        assert len(token.events) == events_before

    @given(shortfall=st.integers(min_value=1, max_value=10 ** 20))
    @settings(max_examples=50, deadline=None)
    def test_rejected_pull_keeps_allowance(self, shortfall):
        token = make_token()
        fund(token)
        amount = 1_000 * UNIT
        token.approve("alice", "spender", amount - shortfall)
        snapshot = token.state_snapshot()

        with pytest.raises(LedgerError):
            token.transfer_from("spender", "alice", "bob", amount)

        assert token.state_snapshot() == snapshot

    @given(amount=st.integers(min_value=1, max_value=10 ** 24))
    @settings(max_examples=80, deadline=None)
    def test_all_legs_applied_together(self, amount):
        token = make_token()
        plan = token.transfer("owner", "alice", amount)
        credited = {m.dest: token.balance_of(m.dest) for m in plan.moves}
        assert credited == {m.dest: m.amount for m in plan.moves}


# =============================================================================
# DRAW ENGINE
# =============================================================================

ACTIONS = ["open", "close", "enter", "start", "fulfill", "stale", "cancel", "next_day", "pause", "unpause"]
CALLERS = ["owner", "alice", "bob", "carol", "pauper"]


@st.composite
def engine_action(draw):
    return (
        draw(st.sampled_from(ACTIONS)),
        draw(st.sampled_from(CALLERS)),
        draw(st.integers(min_value=0, max_value=2 ** 256 - 1)),
    )


def run(engine, oracle, action):
    kind, caller, word = action
    token = engine.token
    if kind == "open":
        engine.open_lottery(caller)
    elif kind == "close":
        engine.close_lottery(caller)
    elif kind == "enter":
        engine.enter_lottery(caller)
    elif kind == "start":
        engine.start_draw(caller)
    elif kind == "fulfill":
        request_id = max(engine.pending_requests, default=0)
        engine.fulfill_random_words(oracle.address, request_id, [word])
    elif kind == "stale":
        request_id = min(engine.pending_requests, default=0)
        engine.fulfill_random_words(oracle.address, request_id, [word])
    elif kind == "cancel":
        engine.emergency_cancel(caller)
    elif kind == "next_day":
        token.advance_time(token.current_time + timedelta(days=1 + word % 10))
    elif kind == "pause":
        token.pause(caller)
    elif kind == "unpause":
        token.unpause(caller)


class TestDrawEngineAtomicity:

    @given(st.lists(engine_action(), min_size=1, max_size=40))
    @settings(max_examples=80, deadline=None)
    def test_rejected_calls_change_nothing(self, actions):
        """
        PROPERTY: whenever a draw operation raises, neither the engine nor the
        ledger has changed. Between calls the machine invariants hold.
        """
        token = make_token()
        fund(token)
        oracle = MockRandomnessOracle()
        engine = make_engine(token, oracle)
        token.advance_time(DRAW_DAY - timedelta(days=3))

        for action in actions:
            engine_before = engine_snapshot(engine)
            ledger_before = token.state_snapshot()
            try:
                run(engine, oracle, action)
            except LedgerError:
                assert engine_snapshot(engine) == engine_before
                assert token.state_snapshot() == ledger_before

            assert token.verify_supply()['valid']
            in_flight = [r for r in engine.history() if r.status is None]
            if engine.state == DrawState.DRAWING:
                assert [r.draw_id for r in in_flight] == [engine.current_draw_id]
            else:
                assert in_flight == []
            for draw_id, winner in engine.winners.items():
                record = engine.draw_record(draw_id)
                assert record.status == DrawStatus.COMPLETED
                assert record.winner == winner
            assert len(set(engine.participants)) == engine.participant_count
