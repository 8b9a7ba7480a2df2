"""
config.py - Construction-time configuration for the token and the draw engine.

Configuration is explicit and owned by the component it configures. Nothing
here is read from the environment or held in module globals; mutable values
(owner, rates) are copied into component state at construction and change only
through that component's setter operations.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from .core import (
    TOTAL_SUPPLY, DEFAULT_TAX_RATE_BPS, DEFAULT_REFLECTION_RATE_BPS,
    MAX_TAX_RATE_BPS, MAX_REFLECTION_RATE_BPS,
    MIN_HOLDING, PRIZE_SHARE_PERCENT, PRIZE_CAP, DRAW_DAYS,
    GENESIS_ADDRESS, BURN_ADDRESS,
    RangeError,
)


DayRule = Callable[[datetime], int]


def _require_address(name: str, value: Optional[str]) -> None:
    if not value or not value.strip():
        raise ValueError(f"{name} cannot be empty")
    if value in (GENESIS_ADDRESS, BURN_ADDRESS):
        raise ValueError(f"{name} cannot be a reserved address: {value}")


@dataclass(frozen=True, slots=True)
class TokenConfig:
    """
    Genesis parameters for a ReflectionLedger.

    Attributes:
        owner: Receives the genesis mint and holds administrative rights.
        treasury: Receives floor(tax / 2) of every taxed transfer.
        prize_vault: Receives the remainder of the tax; funds the prize draw.
        address: The ledger's own holdings account. Collects the raw reflection
                 portion of each transfer so raw balances always sum to supply.
        emergency_admin: May activate (not deactivate) the circuit breaker.
        governance: Address of the delay queue allowed to change rates.
        name, symbol: Token metadata.
        total_supply: Minted once at genesis, never increased.
        tax_rate_bps: Initial tax rate (0..=300).
        reflection_rate_bps: Initial reflection rate (0..=100).
    """
    owner: str
    treasury: str
    prize_vault: str
    address: str = "token"
    emergency_admin: Optional[str] = None
    governance: Optional[str] = None
    name: str = "Lucky Seven"
    symbol: str = "L777"
    total_supply: int = TOTAL_SUPPLY
    tax_rate_bps: int = DEFAULT_TAX_RATE_BPS
    reflection_rate_bps: int = DEFAULT_REFLECTION_RATE_BPS

    def __post_init__(self):
        _require_address("owner", self.owner)
        _require_address("treasury", self.treasury)
        _require_address("prize_vault", self.prize_vault)
        _require_address("address", self.address)
        if len({self.owner, self.treasury, self.prize_vault, self.address}) != 4:
            raise ValueError("owner, treasury, prize_vault and address must be distinct")
        if self.total_supply <= 0:
            raise RangeError(f"total_supply must be positive, got {self.total_supply}")
        if not 0 <= self.tax_rate_bps <= MAX_TAX_RATE_BPS:
            raise RangeError(f"tax_rate_bps {self.tax_rate_bps} outside 0..{MAX_TAX_RATE_BPS}")
        if not 0 <= self.reflection_rate_bps <= MAX_REFLECTION_RATE_BPS:
            raise RangeError(
                f"reflection_rate_bps {self.reflection_rate_bps} outside 0..{MAX_REFLECTION_RATE_BPS}"
            )

    @property
    def system_accounts(self) -> Tuple[str, ...]:
        """Accounts excluded from reflection at genesis."""
        return (self.treasury, self.prize_vault, self.address, BURN_ADDRESS)


@dataclass(frozen=True, slots=True)
class DrawConfig:
    """
    Parameters of the prize draw.

    The randomness fields are passed through verbatim on every request:
    key_hash (domain separation), subscription_id, request_confirmations
    (confirmation depth), callback_gas_limit (compute budget), num_words.

    Attributes:
        owner: May open, close and emergency-cancel draws.
        prize_vault: Account the prize is paid from.
        oracle: Address of the only caller allowed to deliver randomness.
        address: The engine's own address (the spender the vault approves).
        min_holding: Raw balance required to enter.
        prize_share_percent: Share of the vault balance offered per draw.
        prize_cap: Upper bound on a single prize.
        draw_days: Days of month a draw may start on.
        day_rule: Maps a timestamp to its day of month. None = calendar day.
    """
    owner: str
    prize_vault: str
    oracle: str
    address: str = "draw_engine"
    min_holding: int = MIN_HOLDING
    prize_share_percent: int = PRIZE_SHARE_PERCENT
    prize_cap: int = PRIZE_CAP
    draw_days: Tuple[int, ...] = DRAW_DAYS
    day_rule: Optional[DayRule] = None
    key_hash: str = "0x" + "00" * 32
    subscription_id: int = 1
    request_confirmations: int = 3
    callback_gas_limit: int = 200_000
    num_words: int = 1

    def __post_init__(self):
        _require_address("owner", self.owner)
        _require_address("prize_vault", self.prize_vault)
        _require_address("oracle", self.oracle)
        _require_address("address", self.address)
        if self.min_holding < 0:
            raise RangeError(f"min_holding must be non-negative, got {self.min_holding}")
        if not 0 < self.prize_share_percent <= 100:
            raise RangeError(f"prize_share_percent {self.prize_share_percent} outside 1..100")
        if self.prize_cap <= 0:
            raise RangeError(f"prize_cap must be positive, got {self.prize_cap}")
        if not self.draw_days or any(not 1 <= d <= 31 for d in self.draw_days):
            raise RangeError(f"draw_days must be days of month, got {self.draw_days}")
        if self.num_words < 1:
            raise RangeError(f"num_words must be at least 1, got {self.num_words}")
