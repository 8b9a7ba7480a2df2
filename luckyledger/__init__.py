"""
luckyledger - Reflection Token and Prize Draw

A fixed-supply token whose transfers pay a tax to a treasury and a prize vault,
redistribute a reflection share to all holders by scaling, and fund a
scheduled prize draw driven by an asynchronous randomness oracle.

Usage:
    from luckyledger import (
        ReflectionLedger, TokenConfig, DrawEngine, DrawConfig,
        MockRandomnessOracle, UNIT, PRIZE_CAP,
    )

    token = ReflectionLedger(TokenConfig(owner="owner", treasury="treasury",
                                         prize_vault="vault"))
    oracle = MockRandomnessOracle()
    engine = DrawEngine(token, oracle, DrawConfig(owner="owner",
                        prize_vault="vault", oracle=oracle.address))
    token.approve("vault", engine.address, PRIZE_CAP)

    # Holders trade; every taxed transfer feeds the vault
    token.transfer("owner", "alice", 10_000 * UNIT)
    token.transfer("owner", "bob", 10_000 * UNIT)

    # Entry phase
    engine.open_lottery("owner")
    engine.enter_lottery("alice")
    engine.enter_lottery("bob")
    engine.close_lottery("owner")

    # Draw on the 7th, 17th or 27th
    request_id = engine.start_draw("anyone")
    oracle.fulfill(request_id)
    engine.winner_of(1)
"""

# Core types
from .core import (
    TokenView,
    DrawState,
    Move,
    TaxSplit,
    LedgerError,
    StateError,
    AccessDenied,
    RangeError,
    EligibilityError,
    DuplicateEntry,
    NoParticipants,
    InsufficientFunds,
    AllowanceError,
    ScheduleError,
    RequestMismatch,
    operation_id,
    to_tokens,
    from_tokens,
    DECIMALS,
    UNIT,
    TOTAL_SUPPLY,
    MAX_UINT256,
    BPS_DENOMINATOR,
    MAX_TAX_RATE_BPS,
    MAX_REFLECTION_RATE_BPS,
    DEFAULT_TAX_RATE_BPS,
    DEFAULT_REFLECTION_RATE_BPS,
    MIN_HOLDING,
    PRIZE_SHARE_PERCENT,
    PRIZE_CAP,
    DRAW_DAYS,
    GENESIS_ADDRESS,
    BURN_ADDRESS,
)

# Configuration
from .config import TokenConfig, DrawConfig

# Events
from .events import EventRecord, EventLog

# Reflection accounting
from .reflection import (
    TransferPlan,
    initial_reflection_total,
    compute_tax_split,
    shrink_reflection_total,
    to_reflection,
    reflected_balance,
    plan_transfer,
)

# Access control
from .access import Ownership
from .guard import AccessGuard

# Ledger
from .token import ReflectionLedger

# Randomness
from .oracle import (
    RandomnessConsumer,
    RandomnessOracle,
    RandomnessRequest,
    MockRandomnessOracle,
    derive_words,
)

# Draw schedule
from .schedule import (
    EPOCH,
    calendar_day_of_month,
    approximate_day_of_month,
    approximate_rule,
    is_draw_day,
)

# Draw engine
from .draw import DrawEngine, DrawRecord, DrawStatus

# Collaborators
from .governance import Timelock, QueuedOperation, bind_rate_setters
from .bridge import TokenBridge, DEFAULT_BRIDGE_CAP

# Analysis
from .analysis import (
    select_winner_index,
    modulo_bias,
    simulate_winner_counts,
    uniformity_pvalue,
)


__all__ = [
    # Core
    'TokenView', 'DrawState', 'Move', 'TaxSplit',
    'LedgerError', 'StateError', 'AccessDenied', 'RangeError', 'EligibilityError',
    'DuplicateEntry', 'NoParticipants', 'InsufficientFunds', 'AllowanceError',
    'ScheduleError', 'RequestMismatch',
    'operation_id', 'to_tokens', 'from_tokens',
    'DECIMALS', 'UNIT', 'TOTAL_SUPPLY', 'MAX_UINT256', 'BPS_DENOMINATOR',
    'MAX_TAX_RATE_BPS', 'MAX_REFLECTION_RATE_BPS',
    'DEFAULT_TAX_RATE_BPS', 'DEFAULT_REFLECTION_RATE_BPS',
    'MIN_HOLDING', 'PRIZE_SHARE_PERCENT', 'PRIZE_CAP', 'DRAW_DAYS',
    'GENESIS_ADDRESS', 'BURN_ADDRESS',
    # Configuration
    'TokenConfig', 'DrawConfig',
    # Events
    'EventRecord', 'EventLog',
    # Reflection
    'TransferPlan', 'initial_reflection_total', 'compute_tax_split',
    'shrink_reflection_total', 'to_reflection', 'reflected_balance', 'plan_transfer',
    # Access
    'Ownership', 'AccessGuard',
    # Ledger
    'ReflectionLedger',
    # Randomness
    'RandomnessConsumer', 'RandomnessOracle', 'RandomnessRequest',
    'MockRandomnessOracle', 'derive_words',
    # Schedule
    'EPOCH', 'calendar_day_of_month', 'approximate_day_of_month', 'approximate_rule',
    'is_draw_day',
    # Draw engine
    'DrawEngine', 'DrawRecord', 'DrawStatus',
    # Collaborators
    'Timelock', 'QueuedOperation', 'bind_rate_setters',
    'TokenBridge', 'DEFAULT_BRIDGE_CAP',
    # Analysis
    'select_winner_index', 'modulo_bias', 'simulate_winner_counts', 'uniformity_pvalue',
]

__version__ = '1.0.0'
