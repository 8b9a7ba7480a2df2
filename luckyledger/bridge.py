"""
bridge.py - Lock/release balance mirror.

Tokens leaving for another network are locked here: the bridge pulls them from
the holder through the ledger's allowance path and keeps them under its own
address. Releasing sends locked tokens back out on the owner's instruction.

Both directions run the ledger's normal transfer path, so tax and reflection
apply on the way in and on the way out. The amount counted as locked is what
the bridge actually received, measured as the change in its own balance.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Dict, Optional

from .access import Ownership
from .core import UNIT, RangeError
from .events import EventLog
from .reflection import compute_tax_split
from .token import ReflectionLedger

DEFAULT_BRIDGE_CAP = 77_777_777 * UNIT


class TokenBridge:
    """
    Lock tokens up to a global cap; release them under owner authorization.

    The holder approves the bridge's address first:

        token.approve("alice", bridge.address, amount)
        bridge.lock("alice", amount)
    """

    def __init__(
        self,
        token: ReflectionLedger,
        owner: str,
        address: str = "bridge",
        cap: int = DEFAULT_BRIDGE_CAP,
        events: Optional[EventLog] = None,
        verbose: bool = False,
    ):
        if cap <= 0:
            raise RangeError(f"cap must be positive, got {cap}")
        if not address or not address.strip():
            raise ValueError("address cannot be empty")
        self.token = token
        self.address = address
        self.cap = cap
        self.events = events if events is not None else token.events
        if verbose:
            self.events.verbose = True
        self._ownership = Ownership(owner)
        self.locked_total: int = 0
        self._locked_by: Dict[str, int] = defaultdict(int)

    @property
    def owner(self) -> str:
        return self._ownership.owner

    def locked_by(self, account: str) -> int:
        """Cumulative raw units received from account (not reduced by releases)."""
        return self._locked_by.get(account, 0)

    def lock(self, caller: str, amount: int) -> int:
        """
        Pull amount from caller into the bridge.

        Returns:
            Raw units the bridge received (after tax and reflection)

        Raises:
            RangeError: amount not positive, or the cap would be exceeded
            (plus everything the ledger's transfer_from raises)
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise RangeError(f"amount must be a positive integer, got {amount!r}")
        expected = self._expected_receipt(amount)
        if self.locked_total + expected > self.cap:
            raise RangeError(
                f"lock of {expected} would exceed cap {self.cap} (locked {self.locked_total})"
            )

        before = self.token.balance_of(self.address)
        self.token.transfer_from(self.address, caller, self.address, amount)
        received = self.token.balance_of(self.address) - before

        self.locked_total += received
        self._locked_by[caller] += received
        self._emit("BridgeLocked", account=caller, amount=amount, received=received,
                   locked_total=self.locked_total)
        return received

    def release(self, caller: str, to: str, amount: int) -> None:
        """
        Send locked tokens to `to`. Owner only.

        Raises:
            AccessDenied: caller is not the owner
            RangeError: amount not positive or above the locked total
        """
        self._ownership.require_owner(caller)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise RangeError(f"amount must be a positive integer, got {amount!r}")
        if amount > self.locked_total:
            raise RangeError(f"release of {amount} exceeds locked total {self.locked_total}")

        self.token.transfer(self.address, to, amount)

        self.locked_total -= amount
        self._emit("BridgeReleased", to=to, amount=amount, locked_total=self.locked_total)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._ownership.transfer_ownership(caller, new_owner)

    def _expected_receipt(self, amount: int) -> int:
        split = compute_tax_split(amount, self.token.tax_rate_bps, self.token.reflection_rate_bps)
        return split.net

    def _emit(self, name: str, **params: Any) -> None:
        self.events.emit(name, self.token.current_time, **params)

    def __repr__(self) -> str:
        return f"TokenBridge(locked={self.locked_total}, cap={self.cap})"
