"""
access.py - Caller authorization for administrative operations.

Ownership holds the three privileged identities and answers one question per
call site: may this caller do this? Every failure raises AccessDenied and
changes nothing.

Roles:
    owner: full administrative rights
    emergency_admin: may activate the circuit breaker
    governance: the delay queue; may change rates
"""

from __future__ import annotations
from typing import Optional

from .core import AccessDenied


class Ownership:
    """Owner, emergency admin and governance identities."""

    def __init__(
        self,
        owner: str,
        emergency_admin: Optional[str] = None,
        governance: Optional[str] = None,
    ):
        if not owner or not owner.strip():
            raise ValueError("owner cannot be empty")
        self.owner = owner
        self.emergency_admin = emergency_admin
        self.governance = governance

    def is_owner(self, caller: str) -> bool:
        return caller == self.owner

    def require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise AccessDenied(f"{caller} is not the owner")

    def require_owner_or_governance(self, caller: str) -> None:
        if caller == self.owner:
            return
        if self.governance is not None and caller == self.governance:
            return
        raise AccessDenied(f"{caller} is neither owner nor governance")

    def require_owner_or_emergency(self, caller: str) -> None:
        if caller == self.owner:
            return
        if self.emergency_admin is not None and caller == self.emergency_admin:
            return
        raise AccessDenied(f"{caller} is neither owner nor emergency admin")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.require_owner(caller)
        if not new_owner or not new_owner.strip():
            raise ValueError("new_owner cannot be empty")
        self.owner = new_owner

    def set_emergency_admin(self, caller: str, admin: Optional[str]) -> None:
        self.require_owner(caller)
        self.emergency_admin = admin

    def set_governance(self, caller: str, governance: Optional[str]) -> None:
        self.require_owner(caller)
        self.governance = governance

    def __repr__(self) -> str:
        return (
            f"Ownership(owner={self.owner}, emergency_admin={self.emergency_admin}, "
            f"governance={self.governance})"
        )
