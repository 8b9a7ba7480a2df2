"""
draw.py - Prize draw engine.

State machine (initial state CLOSED, no terminal state):

    CLOSED --open_lottery-->  OPEN       entries accepted
    OPEN   --close_lottery--> CLOSED     entries frozen, participants kept
    CLOSED --start_draw-->    DRAWING    pool fixed, randomness requested
    DRAWING --fulfillment-->  CLOSED     winner paid, participants cleared
    DRAWING --emergency_cancel--> CLOSED no payout, participants cleared

At most one draw is in flight: start_draw is only valid from CLOSED, and the
engine stays in DRAWING until the oracle answers or the owner cancels.

Every precondition is checked before the first write, so a failed call leaves
the engine and the ledger exactly as they were.

Randomness callbacks are correlated through pending_requests (request id ->
draw id). A callback whose request does not map to the current draw (stale
after a cancellation, duplicated, or foreign) is rejected with RequestMismatch
and changes nothing.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .access import Ownership
from .config import DrawConfig
from .core import (
    DrawState,
    AccessDenied, StateError, EligibilityError, DuplicateEntry, NoParticipants,
    InsufficientFunds, AllowanceError, ScheduleError, RequestMismatch, RangeError,
)
from .events import EventLog
from .oracle import RandomnessOracle
from .schedule import calendar_day_of_month
from .token import ReflectionLedger


class DrawStatus(Enum):
    """How a draw ended."""
    COMPLETED = "completed"   # winner paid
    EMPTY = "empty"           # fulfilled with no participants, nothing paid
    CANCELLED = "cancelled"   # emergency cancel, nothing paid


@dataclass(frozen=True, slots=True)
class DrawRecord:
    """
    History entry for one draw.

    Attributes:
        draw_id: Monotonic id (first draw is 1)
        prize_pool: Gross prize fixed at start
        participant_count: Entrants frozen at start
        request_id: Randomness request issued for this draw
        started_at: Logical time of start_draw
        status: None while in flight
        winner: Paid account (COMPLETED only)
        random_word: Word used for selection (COMPLETED only)
        finished_at: Logical time the draw left DRAWING
    """
    draw_id: int
    prize_pool: int
    participant_count: int
    request_id: int
    started_at: datetime
    status: Optional[DrawStatus] = None
    winner: Optional[str] = None
    random_word: Optional[int] = None
    finished_at: Optional[datetime] = None


class DrawEngine:
    """
    Scheduled, randomness-driven prize draw paid from the prize vault.

    The engine reads balances and allowances from the ledger and pays prizes
    by pulling from the vault with transfer_from, so every payout runs the
    ledger's taxed path. The vault must have approved the engine's address
    for at least the prize pool before a draw can start.

    Example:
        engine = DrawEngine(token, oracle, DrawConfig(owner="owner",
                            prize_vault="vault", oracle=oracle.address))
        token.approve("vault", engine.address, PRIZE_CAP)
        engine.open_lottery("owner")
        engine.enter_lottery("alice")
        engine.close_lottery("owner")
        request_id = engine.start_draw("anyone")   # on the 7th, 17th or 27th
        oracle.fulfill(request_id)                  # pays the winner
    """

    def __init__(
        self,
        token: ReflectionLedger,
        oracle: RandomnessOracle,
        config: DrawConfig,
        events: Optional[EventLog] = None,
        verbose: bool = False,
    ):
        """
        Args:
            token: Ledger to read balances from and pull prizes through
            oracle: Randomness source
            config: Draw parameters
            events: Event log (defaults to the ledger's, so ordering is global)
            verbose: Print each event as it is emitted
        """
        if config.oracle != oracle.address:
            raise ValueError(
                f"config.oracle {config.oracle} does not match oracle address {oracle.address}"
            )
        self.token = token
        self.oracle = oracle
        self.config = config
        self.address = config.address
        self.prize_vault = config.prize_vault
        self.events = events if events is not None else token.events
        if verbose:
            self.events.verbose = True

        self._ownership = Ownership(config.owner)
        self._day_rule = config.day_rule or calendar_day_of_month

        self._state: DrawState = DrawState.CLOSED
        self._participants: List[str] = []
        self._participant_set: Set[str] = set()
        self.current_draw_id: int = 0
        self.prize_pool: int = 0
        self._pending_requests: Dict[int, int] = {}
        self._winners: Dict[int, str] = {}
        self._history: Dict[int, DrawRecord] = {}

    # ========================================================================
    # READS
    # ========================================================================

    @property
    def state(self) -> DrawState:
        return self._state

    @property
    def owner(self) -> str:
        return self._ownership.owner

    @property
    def participants(self) -> Tuple[str, ...]:
        """Current entrants in insertion order."""
        return tuple(self._participants)

    @property
    def participant_count(self) -> int:
        return len(self._participants)

    def is_participant(self, account: str) -> bool:
        return account in self._participant_set

    @property
    def pending_requests(self) -> Dict[int, int]:
        """request id -> draw id for every request not yet answered."""
        return dict(self._pending_requests)

    @property
    def winners(self) -> Dict[int, str]:
        return dict(self._winners)

    def winner_of(self, draw_id: int) -> Optional[str]:
        return self._winners.get(draw_id)

    def draw_record(self, draw_id: int) -> Optional[DrawRecord]:
        return self._history.get(draw_id)

    def history(self) -> List[DrawRecord]:
        return [self._history[k] for k in sorted(self._history)]

    def compute_prize_pool(self) -> int:
        """min(vault balance * share%, cap) at the ledger's current state."""
        vault_balance = self.token.balance_of(self.prize_vault)
        share = vault_balance * self.config.prize_share_percent // 100
        return min(share, self.config.prize_cap)

    def day_of_month(self, ts: Optional[datetime] = None) -> int:
        return self._day_rule(ts or self.token.current_time)

    def is_draw_day(self, ts: Optional[datetime] = None) -> bool:
        return self.day_of_month(ts) in self.config.draw_days

    # ========================================================================
    # ENTRY PHASE
    # ========================================================================

    def open_lottery(self, caller: str) -> None:
        """
        Start accepting entries with an empty participant set. Owner only.

        Raises:
            AccessDenied: caller is not the owner
            StateError: state is not CLOSED
        """
        self._ownership.require_owner(caller)
        self._require_state(DrawState.CLOSED, "open the lottery")
        self._clear_participants()
        self._state = DrawState.OPEN
        self._emit("LotteryOpened", next_draw_id=self.current_draw_id + 1)

    def close_lottery(self, caller: str) -> None:
        """
        Stop accepting entries, keeping the participant set for the draw. Owner only.

        Raises:
            AccessDenied: caller is not the owner
            StateError: state is not OPEN
        """
        self._ownership.require_owner(caller)
        self._require_state(DrawState.OPEN, "close the lottery")
        self._state = DrawState.CLOSED
        self._emit("LotteryClosed", participant_count=len(self._participants))

    def enter_lottery(self, caller: str) -> None:
        """
        Add caller to the participant set.

        Raises:
            StateError: state is not OPEN
            AccessDenied: caller is blacklisted on the ledger
            EligibilityError: caller's raw balance is below min_holding
            DuplicateEntry: caller already entered
        """
        self._require_state(DrawState.OPEN, "enter")
        if self.token.is_blacklisted(caller):
            raise AccessDenied(f"{caller} is blacklisted")
        balance = self.token.balance_of(caller)
        if balance < self.config.min_holding:
            raise EligibilityError(
                f"{caller} holds {balance}, minimum is {self.config.min_holding}"
            )
        if caller in self._participant_set:
            raise DuplicateEntry(f"{caller} already entered")
        self._participants.append(caller)
        self._participant_set.add(caller)
        self._emit(
            "ParticipantAdded",
            draw_id=self.current_draw_id + 1,
            participant=caller,
            participant_count=len(self._participants),
        )

    # ========================================================================
    # DRAW PHASE
    # ========================================================================

    def start_draw(self, caller: str) -> int:
        """
        Fix the prize pool and request randomness. Callable by anyone.

        Returns:
            The randomness request id

        Raises:
            StateError: state is not CLOSED
            ScheduleError: today is not a draw day
            NoParticipants: nobody entered
            InsufficientFunds: computed prize pool is zero
            AllowanceError: vault has not approved the engine for the pool
        """
        self._require_state(DrawState.CLOSED, "start a draw")
        now = self.token.current_time
        day = self.day_of_month(now)
        if day not in self.config.draw_days:
            raise ScheduleError(f"day {day} is not a draw day {self.config.draw_days}")
        if not self._participants:
            raise NoParticipants("no participants in the current draw")
        pool = self.compute_prize_pool()
        if pool == 0:
            raise InsufficientFunds(f"prize vault {self.prize_vault} is empty")
        approved = self.token.allowance(self.prize_vault, self.address)
        if approved < pool:
            raise AllowanceError(
                f"vault approved {approved} to {self.address}, prize pool is {pool}"
            )

        # The oracle only records the request; nothing has been written yet if it raises.
        request_id = self.oracle.request_random_words(
            self.config.key_hash,
            self.config.subscription_id,
            self.config.request_confirmations,
            self.config.callback_gas_limit,
            self.config.num_words,
            self,
        )

        self.current_draw_id += 1
        self.prize_pool = pool
        self._pending_requests[request_id] = self.current_draw_id
        self._state = DrawState.DRAWING
        self._history[self.current_draw_id] = DrawRecord(
            draw_id=self.current_draw_id,
            prize_pool=pool,
            participant_count=len(self._participants),
            request_id=request_id,
            started_at=now,
        )
        self._emit(
            "DrawStarted",
            draw_id=self.current_draw_id,
            prize_pool=pool,
            participant_count=len(self._participants),
            request_id=request_id,
        )
        return request_id

    def fulfill_random_words(self, caller: str, request_id: int, random_words: Sequence[int]) -> None:
        """
        Oracle callback: pick the winner and pay the prize.

        winner = participants[random_words[0] % participant_count]

        Raises:
            AccessDenied: caller is not the configured oracle
            StateError: state is not DRAWING
            RequestMismatch: request does not belong to the current draw
            RangeError: no random words supplied
            (plus anything the ledger raises while paying; nothing is written then)
        """
        if caller != self.config.oracle:
            raise AccessDenied(f"{caller} is not the randomness oracle")
        self._require_state(DrawState.DRAWING, "fulfill randomness")
        draw_id = self._pending_requests.get(request_id)
        if draw_id is None or draw_id != self.current_draw_id:
            raise RequestMismatch(
                f"request {request_id} maps to draw {draw_id}, current draw is {self.current_draw_id}"
            )
        if not random_words:
            raise RangeError("no random words supplied")

        record = self._history[draw_id]
        now = self.token.current_time

        if not self._participants:
            del self._pending_requests[request_id]
            self._finish(replace(record, status=DrawStatus.EMPTY, finished_at=now))
            self._emit("DrawCompleted", draw_id=draw_id, winner=None, prize=0)
            return

        word = int(random_words[0])
        winner = self._participants[word % len(self._participants)]
        pool = self.prize_pool

        # Last fallible step; engine state is untouched until it succeeds.
        plan = self.token.transfer_from(self.address, self.prize_vault, winner, pool)

        del self._pending_requests[request_id]
        self._winners[draw_id] = winner
        self._finish(replace(
            record, status=DrawStatus.COMPLETED, winner=winner,
            random_word=word, finished_at=now,
        ))
        net = plan.split.net if plan.split is not None else pool
        self._emit("DrawCompleted", draw_id=draw_id, winner=winner, prize=pool, net_prize=net)

    def emergency_cancel(self, caller: str) -> None:
        """
        Abandon the in-flight draw without payout. Owner only.

        The outstanding randomness request is not retracted; if it arrives
        later it no longer matches the current draw and is rejected.

        Raises:
            AccessDenied: caller is not the owner
            StateError: state is not DRAWING
        """
        self._ownership.require_owner(caller)
        self._require_state(DrawState.DRAWING, "cancel")
        record = self._history[self.current_draw_id]
        self._finish(replace(record, status=DrawStatus.CANCELLED, finished_at=self.token.current_time))
        self._emit("DrawCancelled", draw_id=record.draw_id, request_id=record.request_id)

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        old = self._ownership.owner
        self._ownership.transfer_ownership(caller, new_owner)
        self._emit("DrawOwnershipTransferred", previous_owner=old, new_owner=new_owner)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_state(self, expected: DrawState, action: str) -> None:
        if self._state is not expected:
            raise StateError(
                f"cannot {action} while {self._state.value} (requires {expected.value})"
            )

    def _clear_participants(self) -> None:
        self._participants = []
        self._participant_set = set()

    def _finish(self, record: DrawRecord) -> None:
        self._history[record.draw_id] = record
        self._clear_participants()
        self.prize_pool = 0
        self._state = DrawState.CLOSED

    def _emit(self, name: str, **params: Any) -> None:
        self.events.emit(name, self.token.current_time, **params)

    def __repr__(self) -> str:
        return (
            f"DrawEngine(state={self._state.value}, draw={self.current_draw_id}, "
            f"participants={len(self._participants)}, pending={len(self._pending_requests)})"
        )
