"""
token.py - Reflection Token Ledger

The ReflectionLedger is the only module that mutates token balances.

Key responsibilities:
    - Implements the TokenView protocol for safe read-only access
    - Mints the fixed supply once, at genesis
    - Executes taxed/reflected transfers atomically (all legs or none)
    - Composes Ownership (who may administer), AccessGuard (whether value may
      move) and reflection accounting (pure functions in reflection.py) by
      delegation, consulting them in a fixed order on every mutating call
    - Emits an event for every change

Order of checks on every balance-moving call:
    1. AccessGuard (circuit breaker, pause, sender blacklist, recipient blacklist)
    2. Address validity
    3. Amount range
    4. Balance sufficiency
    5. Allowance (transfer_from only)
Only after all checks pass is anything written.
"""

from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from .access import Ownership
from .config import TokenConfig
from .core import (
    TaxSplit,
    DECIMALS, GENESIS_ADDRESS, BURN_ADDRESS,
    MAX_TAX_RATE_BPS, MAX_REFLECTION_RATE_BPS,
    AccessDenied, RangeError, StateError, InsufficientFunds, AllowanceError,
)
from .events import EventLog
from .guard import AccessGuard
from .reflection import (
    TransferPlan,
    initial_reflection_total, plan_transfer, reflected_balance, to_reflection,
)


class ReflectionLedger:
    """
    Fixed-supply token with transfer tax and holder reflection.

    Implements the TokenView protocol, so it can be handed to components that
    should only read balances.

    Design Principles:
        - Raw balances always sum to total supply. Tax legs and the raw
          reflection portion are real credits to real accounts.
        - Reflection is a scaling effect: it never writes an individual balance.
        - Every public mutator validates fully before its first write.

    Thread Safety:
        Not thread-safe. Calls are expected to be serialized by the host.

    Example:
        token = ReflectionLedger(TokenConfig(owner="owner", treasury="treasury",
                                             prize_vault="vault"))
        token.transfer("owner", "alice", 1000 * UNIT)
        token.balance_of("alice")   # 975 * UNIT at 2% tax + 0.5% reflection
    """

    def __init__(
        self,
        config: TokenConfig,
        initial_time: Optional[datetime] = None,
        events: Optional[EventLog] = None,
        verbose: bool = False,
    ):
        """
        Create the ledger and mint the full supply to the owner.

        Args:
            config: Genesis parameters
            initial_time: Starting logical time (default: 1970-01-01)
            events: Shared event log (a private one is created if omitted)
            verbose: Print each event as it is emitted
        """
        self.config = config
        self.name = config.name
        self.symbol = config.symbol
        self.decimals = DECIMALS
        self.address = config.address
        self.treasury = config.treasury
        self.prize_vault = config.prize_vault

        self.events = events if events is not None else EventLog(verbose=verbose)
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)

        self._ownership = Ownership(config.owner, config.emergency_admin, config.governance)
        self._guard = AccessGuard()

        self._total_supply: int = config.total_supply
        self.tax_rate_bps: int = config.tax_rate_bps
        self.reflection_rate_bps: int = config.reflection_rate_bps
        self.reflection_total: int = initial_reflection_total(config.total_supply)

        self.balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._reflection_balances: Dict[str, int] = defaultdict(int)
        self._excluded: Set[str] = set(config.system_accounts)

        self._mint(config.owner, config.total_supply)

    # ========================================================================
    # TokenView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        """Raw balance (0 for accounts never seen)."""
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def is_blacklisted(self, account: str) -> bool:
        return self._guard.is_blacklisted(account)

    # ========================================================================
    # READS
    # ========================================================================

    @property
    def owner(self) -> str:
        return self._ownership.owner

    @property
    def emergency_admin(self) -> Optional[str]:
        return self._ownership.emergency_admin

    @property
    def governance(self) -> Optional[str]:
        return self._ownership.governance

    @property
    def paused(self) -> bool:
        return self._guard.paused

    @property
    def circuit_breaker_active(self) -> bool:
        return self._guard.circuit_breaker_active

    @property
    def blacklisted(self) -> FrozenSet[str]:
        return self._guard.blacklisted

    @property
    def excluded(self) -> FrozenSet[str]:
        return frozenset(self._excluded)

    def is_excluded(self, account: str) -> bool:
        return account in self._excluded

    def reflection_balance_of(self, account: str) -> int:
        """Stored reflection balance (0 for excluded accounts)."""
        return self._reflection_balances.get(account, 0)

    def get_reflected_balance(self, account: str) -> int:
        """
        Effective balance including reflection rewards.

        Returns the raw balance for excluded accounts or degenerate scaling state.
        """
        return reflected_balance(
            self._reflection_balances.get(account, 0),
            self.reflection_total,
            self._total_supply,
            self.balance_of(account),
            excluded=account in self._excluded,
        )

    def accounts(self) -> List[str]:
        """All accounts that have ever held a balance, sorted."""
        return sorted(self.balances.keys())

    def verify_supply(self) -> Dict[str, Any]:
        """
        Verify that raw balances sum to total supply.

        Accounts are sorted before summation so the check is deterministic.

        Returns:
            Dict with keys:
            - 'valid': bool - True if the conservation law holds
            - 'supply': int - fixed total supply
            - 'sum_of_balances': int - current sum of raw balances
            - 'difference': int - sum_of_balances - supply
        """
        total = sum(self.balances[a] for a in sorted(self.balances))
        return {
            'valid': total == self._total_supply,
            'supply': self._total_supply,
            'sum_of_balances': total,
            'difference': total - self._total_supply,
        }

    def state_snapshot(self) -> Dict[str, Any]:
        """Plain-data copy of every piece of mutable state (for comparison)."""
        return {
            'balances': {a: b for a, b in self.balances.items() if b},
            'allowances': dict(self._allowances),
            'reflection_balances': {a: r for a, r in self._reflection_balances.items() if r},
            'reflection_total': self.reflection_total,
            'tax_rate_bps': self.tax_rate_bps,
            'reflection_rate_bps': self.reflection_rate_bps,
            'excluded': frozenset(self._excluded),
            'paused': self._guard.paused,
            'circuit_breaker_active': self._guard.circuit_breaker_active,
            'blacklisted': self._guard.blacklisted,
            'owner': self._ownership.owner,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # TRANSFERS (Mutating)
    # ========================================================================

    def transfer(self, sender: str, recipient: str, amount: int) -> TransferPlan:
        """
        Move amount from sender to recipient through the tax/reflection path.

        Transfers to BURN_ADDRESS move the full amount untaxed.

        Returns:
            The applied TransferPlan

        Raises:
            AccessDenied: guard refused, or sender is the genesis address
            RangeError: amount not positive, or recipient is the genesis address
            InsufficientFunds: sender balance below amount
        """
        plan = self._prepare(sender, recipient, amount)
        self._apply(sender, recipient, plan)
        return plan

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> TransferPlan:
        """
        Pull amount from owner to recipient on spender's allowance.

        The allowance is reduced by the gross amount; the transfer itself runs
        the same taxed path as transfer().

        Raises:
            AllowanceError: allowance(owner, spender) < amount
            (plus everything transfer() raises)
        """
        plan = self._prepare(owner, recipient, amount)
        current = self.allowance(owner, spender)
        if current < amount:
            raise AllowanceError(
                f"{spender} may pull {current} from {owner}, requested {amount}"
            )
        self._allowances[(owner, spender)] = current - amount
        self._apply(owner, recipient, plan)
        return plan

    def burn(self, caller: str, amount: int) -> TransferPlan:
        """Send amount to the burn sink (untaxed). Supply is unchanged; the sink holds it."""
        return self.transfer(caller, BURN_ADDRESS, amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set spender's allowance over owner's balance."""
        if amount < 0:
            raise RangeError(f"allowance must be non-negative, got {amount}")
        if not spender or not spender.strip():
            raise ValueError("spender cannot be empty")
        self._allowances[(owner, spender)] = amount
        self._emit("Approval", owner=owner, spender=spender, amount=amount)

    def increase_allowance(self, owner: str, spender: str, added: int) -> None:
        if added < 0:
            raise RangeError(f"added must be non-negative, got {added}")
        self.approve(owner, spender, self.allowance(owner, spender) + added)

    def decrease_allowance(self, owner: str, spender: str, subtracted: int) -> None:
        current = self.allowance(owner, spender)
        if subtracted < 0:
            raise RangeError(f"subtracted must be non-negative, got {subtracted}")
        if subtracted > current:
            raise AllowanceError(f"decreased allowance below zero: {current} - {subtracted}")
        self.approve(owner, spender, current - subtracted)

    # ========================================================================
    # RATES AND REFLECTION MEMBERSHIP (Mutating, authorized)
    # ========================================================================

    def set_tax_rate(self, caller: str, rate_bps: int) -> None:
        """
        Change the tax rate. Owner or governance only.

        Raises:
            AccessDenied: caller not authorized
            RangeError: rate outside 0..300 bps
        """
        self._ownership.require_owner_or_governance(caller)
        if not 0 <= rate_bps <= MAX_TAX_RATE_BPS:
            raise RangeError(f"tax rate {rate_bps} outside 0..{MAX_TAX_RATE_BPS} bps")
        old = self.tax_rate_bps
        self.tax_rate_bps = rate_bps
        self._emit("TaxRateUpdated", old=old, new=rate_bps, caller=caller)

    def set_reflection_rate(self, caller: str, rate_bps: int) -> None:
        """
        Change the reflection rate. Owner or governance only.

        Raises:
            AccessDenied: caller not authorized
            RangeError: rate outside 0..100 bps
        """
        self._ownership.require_owner_or_governance(caller)
        if not 0 <= rate_bps <= MAX_REFLECTION_RATE_BPS:
            raise RangeError(f"reflection rate {rate_bps} outside 0..{MAX_REFLECTION_RATE_BPS} bps")
        old = self.reflection_rate_bps
        self.reflection_rate_bps = rate_bps
        self._emit("ReflectionRateUpdated", old=old, new=rate_bps, caller=caller)

    def exclude_from_reflection(self, caller: str, account: str) -> None:
        """
        Stop reflection accounting for account. Owner only.

        From here on the account's reflected balance is its raw balance.
        Any reflection accrued so far and not yet realized is forfeited.
        """
        self._ownership.require_owner(caller)
        if account in self._excluded:
            raise StateError(f"{account} is already excluded from reflection")
        self._excluded.add(account)
        self._reflection_balances.pop(account, None)
        self._emit("ExcludedFromReflection", account=account)

    def include_in_reflection(self, caller: str, account: str) -> None:
        """
        Resume reflection accounting for account. Owner only.

        The reflection balance is re-snapshotted from the raw balance at the
        current rate, so the account neither gains nor loses reflection for
        events that happened while it was excluded.
        """
        self._ownership.require_owner(caller)
        if account not in self._excluded:
            raise StateError(f"{account} is not excluded from reflection")
        snapshot = to_reflection(
            self.balance_of(account), self.reflection_total, self._total_supply, round_up=True
        )
        self._excluded.discard(account)
        if snapshot:
            self._reflection_balances[account] = snapshot
        self._emit("IncludedInReflection", account=account, reflection_balance=snapshot)

    # ========================================================================
    # SAFETY SWITCHES (Mutating, authorized)
    # ========================================================================

    def pause(self, caller: str) -> None:
        self._ownership.require_owner(caller)
        if self._guard.pause():
            self._emit("Paused", caller=caller)

    def unpause(self, caller: str) -> None:
        self._ownership.require_owner(caller)
        if self._guard.unpause():
            self._emit("Unpaused", caller=caller)

    def activate_circuit_breaker(self, caller: str) -> None:
        """Halt all value movement. Owner or emergency admin."""
        self._ownership.require_owner_or_emergency(caller)
        if self._guard.activate_circuit_breaker():
            self._emit("CircuitBreakerActivated", caller=caller)

    def deactivate_circuit_breaker(self, caller: str) -> None:
        """Resume value movement. Owner only. Also clears the pause flag."""
        self._ownership.require_owner(caller)
        if self._guard.deactivate_circuit_breaker():
            self._emit("CircuitBreakerDeactivated", caller=caller)

    def blacklist(self, caller: str, account: str) -> None:
        self._ownership.require_owner(caller)
        if account == self._ownership.owner:
            raise AccessDenied("owner cannot be blacklisted")
        if self._guard.blacklist(account):
            self._emit("Blacklisted", account=account)

    def unblacklist(self, caller: str, account: str) -> None:
        self._ownership.require_owner(caller)
        if self._guard.unblacklist(account):
            self._emit("Unblacklisted", account=account)

    # ========================================================================
    # OWNERSHIP (Mutating, authorized)
    # ========================================================================

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        old = self._ownership.owner
        self._ownership.transfer_ownership(caller, new_owner)
        self._emit("OwnershipTransferred", previous_owner=old, new_owner=new_owner)

    def set_emergency_admin(self, caller: str, admin: Optional[str]) -> None:
        self._ownership.set_emergency_admin(caller, admin)
        self._emit("EmergencyAdminUpdated", admin=admin)

    def set_governance(self, caller: str, governance: Optional[str]) -> None:
        self._ownership.set_governance(caller, governance)
        self._emit("GovernanceUpdated", governance=governance)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _emit(self, name: str, **params: Any) -> None:
        self.events.emit(name, self._current_time, **params)

    def _mint(self, account: str, amount: int) -> None:
        """Genesis mint. Only called from __init__."""
        plan = plan_transfer(
            GENESIS_ADDRESS, account, amount,
            taxed=False,
            tax_rate_bps=self.tax_rate_bps,
            reflection_rate_bps=self.reflection_rate_bps,
            treasury=self.treasury,
            prize_vault=self.prize_vault,
            holdings=self.address,
            reflection_total=self.reflection_total,
            total_supply=self._total_supply,
            excluded=self._excluded,
        )
        self._apply(GENESIS_ADDRESS, account, plan)

    def _prepare(self, source: str, dest: str, amount: int) -> TransferPlan:
        """Run every check and build the plan. Writes nothing."""
        self._guard.check_transfer(source, dest)
        if source == GENESIS_ADDRESS:
            raise AccessDenied("tokens can only be minted at genesis")
        if not dest or not dest.strip() or dest == GENESIS_ADDRESS:
            raise RangeError(f"invalid recipient: {dest!r}")
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise RangeError(f"amount must be a positive integer, got {amount!r}")
        available = self.balance_of(source)
        if available < amount:
            raise InsufficientFunds(f"{source} holds {available}, needs {amount}")
        return plan_transfer(
            source, dest, amount,
            taxed=dest != BURN_ADDRESS,
            tax_rate_bps=self.tax_rate_bps,
            reflection_rate_bps=self.reflection_rate_bps,
            treasury=self.treasury,
            prize_vault=self.prize_vault,
            holdings=self.address,
            reflection_total=self.reflection_total,
            total_supply=self._total_supply,
            excluded=self._excluded,
        )

    def _apply(self, source: str, dest: str, plan: TransferPlan) -> None:
        """
        Apply a validated plan. Cannot fail.

        The sender is debited the gross amount once; each leg is credited.
        """
        gross = sum(m.amount for m in plan.moves)
        if source != GENESIS_ADDRESS:
            self.balances[source] -= gross
        for move in plan.moves:
            self.balances[move.dest] += move.amount

        for account, delta in plan.reflection_deltas:
            self._reflection_balances[account] = max(0, self._reflection_balances[account] + delta)
        self.reflection_total = plan.reflection_total_after

        for move in plan.moves:
            self._emit("Transfer", source=move.source, dest=move.dest, amount=move.amount)
        split: Optional[TaxSplit] = plan.split
        if split is not None:
            self._emit(
                "TaxDistributed",
                source=source,
                dest=dest,
                amount=split.amount,
                tax=split.tax,
                treasury_share=split.treasury_share,
                vault_share=split.vault_share,
                reflection=split.reflection,
                reflection_total=self.reflection_total,
            )

    def __repr__(self) -> str:
        return (
            f"ReflectionLedger({self.symbol}, supply={self._total_supply}, "
            f"tax={self.tax_rate_bps}bps, reflection={self.reflection_rate_bps}bps, "
            f"accounts={len(self.balances)})"
        )
