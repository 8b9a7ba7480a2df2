"""
guard.py - AccessGuard: pause flag, circuit breaker and blacklist.

The ledger consults the guard before every balance-moving operation. Checks run
in a fixed order so the reported reason is deterministic:

    1. circuit breaker
    2. pause
    3. sender blacklist
    4. recipient blacklist

The guard does not authorize callers; the ledger does that before calling any
mutator here.
"""

from __future__ import annotations
from typing import FrozenSet, Set

from .core import AccessDenied


class AccessGuard:
    """Process-wide safety switches consulted on every balance mutation."""

    def __init__(self):
        self.paused: bool = False
        self.circuit_breaker_active: bool = False
        self._blacklisted: Set[str] = set()

    @property
    def blacklisted(self) -> FrozenSet[str]:
        return frozenset(self._blacklisted)

    def is_blacklisted(self, account: str) -> bool:
        return account in self._blacklisted

    def check_transfer(self, source: str, dest: str) -> None:
        """
        Raise AccessDenied if a movement from source to dest is not allowed.

        Raises:
            AccessDenied: circuit breaker active, paused, or either side blacklisted
        """
        if self.circuit_breaker_active:
            raise AccessDenied("circuit breaker active")
        if self.paused:
            raise AccessDenied("transfers paused")
        if source in self._blacklisted:
            raise AccessDenied(f"sender {source} is blacklisted")
        if dest in self._blacklisted:
            raise AccessDenied(f"recipient {dest} is blacklisted")

    # Mutators return True when the flag actually changed.

    def pause(self) -> bool:
        changed = not self.paused
        self.paused = True
        return changed

    def unpause(self) -> bool:
        changed = self.paused
        self.paused = False
        return changed

    def activate_circuit_breaker(self) -> bool:
        changed = not self.circuit_breaker_active
        self.circuit_breaker_active = True
        return changed

    def deactivate_circuit_breaker(self) -> bool:
        """Clear the breaker and the pause flag together."""
        changed = self.circuit_breaker_active or self.paused
        self.circuit_breaker_active = False
        self.paused = False
        return changed

    def blacklist(self, account: str) -> bool:
        if account in self._blacklisted:
            return False
        self._blacklisted.add(account)
        return True

    def unblacklist(self, account: str) -> bool:
        if account not in self._blacklisted:
            return False
        self._blacklisted.discard(account)
        return True

    def __repr__(self) -> str:
        return (
            f"AccessGuard(paused={self.paused}, "
            f"circuit_breaker={self.circuit_breaker_active}, "
            f"blacklisted={len(self._blacklisted)})"
        )
