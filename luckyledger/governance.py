"""
governance.py - Delay queue for parameter changes.

Concepts:
1. QueuedOperation: Immutable record of an intended call and when it may run
2. Timelock: Schedules operations by fingerprint and executes them after a fixed delay
3. Handlers: Plain functions registered per action, called with the operation's params

The fingerprint of an operation is operation_id(action, params), so the same
call scheduled twice is the same operation. A fingerprint can be pending at
most once.

The timelock holds no rights of its own; it calls the ledger with its own
address as caller, so the ledger must name it as governance.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .core import (
    TokenView, AccessDenied, ScheduleError, StateError,
    operation_id, params_tuple,
)
from .events import EventLog


@dataclass(frozen=True, slots=True)
class QueuedOperation:
    """
    Pending governance operation.

    Sorting: by eta, then op_id.

    Attributes:
        op_id: Fingerprint of (action, params)
        action: Registered action name ("set_tax_rate", ...)
        params: Frozen (key, value) pairs
        scheduled_at: Logical time it was queued
        eta: Earliest logical time it may execute
    """
    op_id: str
    action: str
    params: tuple
    scheduled_at: datetime
    eta: datetime

    def __lt__(self, other: 'QueuedOperation') -> bool:
        if self.eta != other.eta:
            return self.eta < other.eta
        return self.op_id < other.op_id

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)


# Handler type: (**params) -> anything
OperationHandler = Callable[..., Any]


class Timelock:
    """
    Schedule now, execute after a fixed delay.

    Example:
        timelock = Timelock(token, admin="council", delay=timedelta(days=2))
        bind_rate_setters(timelock, token)
        token.set_governance("owner", timelock.address)
        op = timelock.schedule("council", "set_tax_rate", rate_bps=150)
        token.advance_time(token.current_time + timedelta(days=2))
        timelock.execute("council", "set_tax_rate", rate_bps=150)
    """

    def __init__(
        self,
        clock: TokenView,
        admin: str,
        delay: timedelta,
        address: str = "timelock",
        events: Optional[EventLog] = None,
        verbose: bool = False,
    ):
        """
        Args:
            clock: Anything exposing current_time (normally the ledger)
            admin: Only caller allowed to schedule, execute and cancel
            delay: Minimum time between scheduling and execution
            address: Identity the timelock acts under
            events: Event log (defaults to the clock's log if it has one)
            verbose: Print each event as it is emitted
        """
        if not admin or not admin.strip():
            raise ValueError("admin cannot be empty")
        if delay < timedelta(0):
            raise ValueError(f"delay must be non-negative, got {delay}")
        self.clock = clock
        self.admin = admin
        self.delay = delay
        self.address = address
        if events is None:
            events = getattr(clock, "events", None)
        self.events = events if events is not None else EventLog()
        if verbose:
            self.events.verbose = True
        self._handlers: Dict[str, OperationHandler] = {}
        self._queue: Dict[str, QueuedOperation] = {}

    def register(self, action: str, handler: OperationHandler) -> None:
        """Register a handler function for an action."""
        if not action or not action.strip():
            raise ValueError("action cannot be empty")
        self._handlers[action] = handler

    def schedule(self, caller: str, action: str, **params: Any) -> str:
        """
        Queue an operation. Returns its fingerprint.

        Raises:
            AccessDenied: caller is not the admin
            StateError: no handler for action, or the same operation is already pending
        """
        self._require_admin(caller)
        if action not in self._handlers:
            raise StateError(f"no handler registered for {action!r}")
        op_id = operation_id(action, params)
        if op_id in self._queue:
            raise StateError(f"operation {op_id[:12]} already pending")
        now = self.clock.current_time
        op = QueuedOperation(
            op_id=op_id,
            action=action,
            params=params_tuple(params),
            scheduled_at=now,
            eta=now + self.delay,
        )
        self._queue[op_id] = op
        self._emit("OperationScheduled", op_id=op_id, action=action, eta=op.eta)
        return op_id

    def execute(self, caller: str, action: str, **params: Any) -> Any:
        """
        Run a pending operation whose delay has elapsed.

        The entry is cleared before the handler runs. If the handler raises,
        the entry is restored and the exception propagates.

        Returns:
            Whatever the handler returns

        Raises:
            AccessDenied: caller is not the admin
            StateError: the operation is not pending
            ScheduleError: the delay has not elapsed
        """
        self._require_admin(caller)
        op_id = operation_id(action, params)
        op = self._queue.get(op_id)
        if op is None:
            raise StateError(f"operation {op_id[:12]} is not pending")
        now = self.clock.current_time
        if now < op.eta:
            raise ScheduleError(f"operation {op_id[:12]} not executable before {op.eta}")

        handler = self._handlers[action]
        del self._queue[op_id]
        try:
            result = handler(**params)
        except Exception:
            self._queue[op_id] = op
            raise
        self._emit("OperationExecuted", op_id=op_id, action=action)
        return result

    def cancel(self, caller: str, op_id: str) -> None:
        """
        Drop a pending operation.

        Raises:
            AccessDenied: caller is not the admin
            StateError: the operation is not pending
        """
        self._require_admin(caller)
        op = self._queue.pop(op_id, None)
        if op is None:
            raise StateError(f"operation {op_id[:12]} is not pending")
        self._emit("OperationCancelled", op_id=op_id, action=op.action)

    def is_pending(self, op_id: str) -> bool:
        return op_id in self._queue

    def eta(self, op_id: str) -> Optional[datetime]:
        op = self._queue.get(op_id)
        return op.eta if op is not None else None

    def get(self, op_id: str) -> Optional[QueuedOperation]:
        return self._queue.get(op_id)

    def get_due(self, as_of: Optional[datetime] = None) -> List[QueuedOperation]:
        """Pending operations executable at as_of (default: now), in eta order."""
        as_of = as_of or self.clock.current_time
        return sorted(op for op in self._queue.values() if op.eta <= as_of)

    def pending_count(self) -> int:
        return len(self._queue)

    def peek_next(self) -> Optional[QueuedOperation]:
        return min(self._queue.values()) if self._queue else None

    def set_admin(self, caller: str, new_admin: str) -> None:
        self._require_admin(caller)
        if not new_admin or not new_admin.strip():
            raise ValueError("new_admin cannot be empty")
        old = self.admin
        self.admin = new_admin
        self._emit("TimelockAdminUpdated", previous_admin=old, new_admin=new_admin)

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin:
            raise AccessDenied(f"{caller} is not the timelock admin")

    def _emit(self, name: str, **params: Any) -> None:
        self.events.emit(name, self.clock.current_time, **params)

    def __repr__(self) -> str:
        return f"Timelock(admin={self.admin}, delay={self.delay}, pending={len(self._queue)})"


def bind_rate_setters(timelock: Timelock, token) -> None:
    """Register set_tax_rate / set_reflection_rate handlers that act on token."""
    def set_tax_rate(rate_bps: int) -> None:
        token.set_tax_rate(timelock.address, rate_bps)

    def set_reflection_rate(rate_bps: int) -> None:
        token.set_reflection_rate(timelock.address, rate_bps)

    timelock.register("set_tax_rate", set_tax_rate)
    timelock.register("set_reflection_rate", set_reflection_rate)
