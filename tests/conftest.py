"""
conftest.py - Shared pytest fixtures for luckyledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Ledgers (fresh, funded, untaxed)
- Randomness oracle and draw engine setups
- Draw-day clock helpers
"""

import pytest
from datetime import datetime

from luckyledger import (
    ReflectionLedger, TokenConfig, DrawEngine, DrawConfig, MockRandomnessOracle,
    UNIT, PRIZE_CAP,
)

from tests.fake_view import FakeView


START_TIME = datetime(2025, 1, 1, 9, 0, 0)
DRAW_DAY = datetime(2025, 1, 7, 12, 0, 0)
NON_DRAW_DAY = datetime(2025, 1, 8, 12, 0, 0)

HOLDERS = ("alice", "bob", "carol")
HOLDER_FUNDING = 10_000 * UNIT


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_token(tax_rate_bps: int = 200, reflection_rate_bps: int = 50, **kwargs) -> ReflectionLedger:
    """Create a ledger with the standard test identities."""
    config = TokenConfig(
        owner="owner",
        treasury="treasury",
        prize_vault="vault",
        emergency_admin="guardian",
        tax_rate_bps=tax_rate_bps,
        reflection_rate_bps=reflection_rate_bps,
        **kwargs,
    )
    return ReflectionLedger(config, initial_time=START_TIME)


def make_engine(token: ReflectionLedger, oracle: MockRandomnessOracle, **kwargs) -> DrawEngine:
    """Create a draw engine and approve it to pull up to the prize cap from the vault."""
    config = DrawConfig(owner="owner", prize_vault="vault", oracle=oracle.address, **kwargs)
    engine = DrawEngine(token, oracle, config)
    token.approve("vault", engine.address, PRIZE_CAP)
    return engine


def fund(token: ReflectionLedger, accounts=HOLDERS, amount: int = HOLDER_FUNDING) -> None:
    """Send amount from the owner to each account (taxed)."""
    for account in accounts:
        token.transfer("owner", account, amount)


def enter_all(engine: DrawEngine, accounts=HOLDERS) -> None:
    """Open the lottery, enter every account, close it."""
    engine.open_lottery("owner")
    for account in accounts:
        engine.enter_lottery(account)
    engine.close_lottery("owner")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def token():
    """Fresh ledger at the default rates."""
    return make_token()


@pytest.fixture
def untaxed_token():
    """Ledger with zero tax and zero reflection, for exact-amount scenarios."""
    return make_token(tax_rate_bps=0, reflection_rate_bps=0)


@pytest.fixture
def funded_token(token):
    """Ledger where alice, bob and carol each received 10,000 tokens (gross)."""
    fund(token)
    return token


@pytest.fixture
def oracle():
    return MockRandomnessOracle(seed="tests")


@pytest.fixture
def engine(funded_token, oracle):
    """Draw engine over the funded ledger, vault pre-approved."""
    return make_engine(funded_token, oracle)


@pytest.fixture
def ready_engine(engine):
    """Engine with all holders entered, lottery closed and the clock on a draw day."""
    enter_all(engine)
    engine.token.advance_time(DRAW_DAY)
    return engine


@pytest.fixture
def fake_view():
    """Read-only view for pure consumers."""
    return FakeView(
        balances={'vault': 10_000_000 * UNIT, 'alice': 1_000 * UNIT, 'bob': 100 * UNIT},
        allowances={('vault', 'draw_engine'): PRIZE_CAP},
        time=DRAW_DAY,
    )
