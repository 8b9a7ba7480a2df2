"""
Core types and pure functions for the reflection token and prize draw.

This module provides the foundational data structures and protocols:
1. Protocols: TokenView for read-only ledger access
2. Immutable data structures: Move, TaxSplit
3. Exceptions: LedgerError and domain-specific error types
4. Constants: supply, rate bounds, draw parameters, reserved addresses
5. Canonical hashing: operation_id for deferred governance operations

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from enum import Enum
import hashlib
from typing import Any, Dict, Mapping, Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Raw units are unsigned integers with 18 fractional decimal digits.
DECIMALS = 18
UNIT = 10 ** DECIMALS

TOTAL_SUPPLY = 777_777_777 * UNIT

# Largest value a 256-bit unsigned word can hold.
MAX_UINT256 = 2 ** 256 - 1

BPS_DENOMINATOR = 10_000
MAX_TAX_RATE_BPS = 300
MAX_REFLECTION_RATE_BPS = 100
DEFAULT_TAX_RATE_BPS = 200
DEFAULT_REFLECTION_RATE_BPS = 50

# Draw parameters
MIN_HOLDING = 777 * UNIT
PRIZE_SHARE_PERCENT = 25
PRIZE_CAP = 7_000_000 * UNIT
DRAW_DAYS = (7, 17, 27)

# Reserved addresses.
# GENESIS_ADDRESS is the mint source and never holds a balance.
# BURN_ADDRESS receives burned tokens untaxed; its balance still counts toward supply.
GENESIS_ADDRESS = "0x0000000000000000000000000000000000000000"
BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class TokenView(Protocol):
    """
    Read-only interface to token ledger state.

    The draw engine, the timelock and the bridge consume the ledger through this
    view when they only need to look. Pulling funds goes through the ledger's
    own transfer_from, never through the view.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def balance_of(self, account: str) -> int:
        """Return the raw balance of an account (0 if unknown)."""
        ...

    def allowance(self, owner: str, spender: str) -> int:
        """Return how much spender may still pull from owner."""
        ...

    def total_supply(self) -> int:
        """Return the fixed total supply in raw units."""
        ...

    def is_blacklisted(self, account: str) -> bool:
        """Return True if the account may neither send nor receive."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class DrawState(Enum):
    """
    Lottery state machine.

    CLOSED: Initial state. Entries are refused; a draw may be started.
    OPEN: Entries are accepted.
    DRAWING: A randomness request is in flight; only fulfillment or
             emergency cancellation can leave this state.
    """
    OPEN = "open"
    DRAWING = "drawing"
    CLOSED = "closed"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all token and draw errors."""
    pass


class StateError(LedgerError):
    """Raised when an operation is invalid in the current machine state."""
    pass


class AccessDenied(LedgerError):
    """Raised for blacklisted accounts, pause, circuit breaker, or unauthorized callers."""
    pass


class RangeError(LedgerError, ValueError):
    """Raised when a parameter falls outside its allowed bound."""
    pass


class EligibilityError(LedgerError):
    """Raised when an entrant's balance is below the minimum holding."""
    pass


class DuplicateEntry(LedgerError):
    """Raised when an account enters the same draw twice."""
    pass


class NoParticipants(LedgerError):
    """Raised when a draw is started with an empty participant set."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a balance cannot cover a transfer or the prize pool is empty."""
    pass


class AllowanceError(LedgerError):
    """Raised when a spender's allowance cannot cover a pull."""
    pass


class ScheduleError(LedgerError):
    """Raised on a non-draw day, or when a delayed operation is not yet executable."""
    pass


class RequestMismatch(LedgerError):
    """Raised for a stale, duplicate or foreign randomness callback."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single raw-balance movement between two accounts.

    Attributes:
        amount: Raw units to move (must be positive).
        source: Account debited. GENESIS_ADDRESS marks a mint and is never debited.
        dest: Account credited.
        memo: Short tag describing the leg ("net", "treasury", "vault", ...).
    """
    amount: int
    source: str
    dest: str
    memo: str = ""

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise ValueError(f"Move amount must be int, got {type(self.amount)}")
        if self.amount <= 0:
            raise ValueError(f"Move amount must be positive, got {self.amount}")

    def __repr__(self) -> str:
        return f"Move({self.amount}: {self.source}→{self.dest} [{self.memo}])"


@dataclass(frozen=True, slots=True)
class TaxSplit:
    """
    Breakdown of a taxed transfer.

    Invariant: net + tax + reflection == amount, treasury_share + vault_share == tax.

    Attributes:
        amount: Gross amount debited from the sender.
        tax: Total tax (treasury + vault).
        treasury_share: floor(tax / 2).
        vault_share: tax - treasury_share (takes the odd unit).
        reflection: Portion that shrinks the reflection total.
        net: Amount credited to the recipient.
    """
    amount: int
    tax: int
    treasury_share: int
    vault_share: int
    reflection: int
    net: int

    def __post_init__(self):
        if self.treasury_share + self.vault_share != self.tax:
            raise ValueError("Tax split does not add up to tax")
        if self.net + self.tax + self.reflection != self.amount:
            raise ValueError("Net, tax and reflection do not add up to amount")
        if self.net < 0:
            raise ValueError(f"Net amount is negative: {self.net}")


# ============================================================================
# CANONICAL HASHING
# ============================================================================

def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Deterministic regardless of dict insertion order or Decimal representation.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        normalized = value.normalize()
        if normalized == normalized.to_integral_value():
            return f"D:{int(normalized)}"
        return f"D:{format(normalized, 'f')}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def operation_id(action: str, params: Mapping[str, Any]) -> str:
    """
    Compute the fingerprint of an intended call.

    Same action and parameters always produce the same id, whatever order the
    parameters were given in.

    Example:
        >>> operation_id("set_tax_rate", {"rate": 150}) == operation_id("set_tax_rate", {"rate": 150})
        True
    """
    if not action or not action.strip():
        raise ValueError("action cannot be empty")
    content = f"op:{action}|{_canonicalize(dict(params))}"
    return hashlib.sha256(content.encode()).hexdigest()


# ============================================================================
# UNIT CONVERSION
# ============================================================================

def to_tokens(raw: int) -> Decimal:
    """Convert raw units to whole tokens (exact)."""
    return Decimal(raw).scaleb(-DECIMALS)


def from_tokens(value: Any) -> int:
    """
    Convert a token amount to raw units, truncating beyond 18 decimals.

    Accepts int, str or Decimal. Floats are refused to avoid binary rounding.
    """
    if isinstance(value, float):
        raise ValueError("Use str or Decimal for token amounts, not float")
    amount = Decimal(value) if not isinstance(value, Decimal) else value
    if amount.is_nan() or amount.is_infinite():
        raise ValueError(f"Token amount must be finite, got {value}")
    return int((amount * UNIT).to_integral_value(rounding=ROUND_DOWN))


def params_tuple(params: Dict[str, Any]) -> Tuple[Tuple[str, Any], ...]:
    """Freeze a params dict into a sorted tuple of pairs."""
    return tuple(sorted(params.items()))
