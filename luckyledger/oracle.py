"""
oracle.py - Verifiable randomness request/fulfillment protocol.

A consumer asks the oracle for random words and returns immediately with an
opaque request id. Later, in a separate call, the oracle delivers the words to
the consumer's fulfillment entry point, passing its own address as the caller
so the consumer can refuse anyone else.

MockRandomnessOracle is a local coordinator for simulations and tests. Words
are either supplied explicitly or derived deterministically:

    word_i = int(sha256(f"{seed}:{request_id}:{i}"))

so a draw can be re-derived and audited from the seed alone.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import hashlib
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .core import RangeError, RequestMismatch


@runtime_checkable
class RandomnessConsumer(Protocol):
    """Anything that can receive random words."""

    def fulfill_random_words(self, caller: str, request_id: int, random_words: Sequence[int]) -> None:
        ...


@runtime_checkable
class RandomnessOracle(Protocol):
    """Asynchronous randomness source."""

    address: str

    def request_random_words(
        self,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        consumer: RandomnessConsumer,
    ) -> int:
        """Record a request and return its id. Does not call back synchronously."""
        ...


@dataclass(frozen=True, slots=True)
class RandomnessRequest:
    """An accepted, not yet fulfilled request."""
    request_id: int
    key_hash: str
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    consumer: RandomnessConsumer = field(compare=False, repr=False)


def derive_words(seed: str, request_id: int, num_words: int) -> Tuple[int, ...]:
    """Deterministic 256-bit words for a request."""
    words = []
    for i in range(num_words):
        digest = hashlib.sha256(f"{seed}:{request_id}:{i}".encode("utf-8")).hexdigest()
        words.append(int(digest, 16))
    return tuple(words)


class MockRandomnessOracle:
    """
    In-process randomness coordinator.

    Request ids start at 1 and increase by one per request. Each request can be
    fulfilled exactly once; it is consumed before the consumer is called, so a
    consumer that rejects the callback does not get a second delivery.
    """

    def __init__(self, address: str = "vrf_coordinator", seed: str = "luckyledger"):
        self.address = address
        self.seed = seed
        self._next_request_id = 1
        self._pending: Dict[int, RandomnessRequest] = {}
        self.fulfilled: Dict[int, Tuple[int, ...]] = {}

    def request_random_words(
        self,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        consumer: RandomnessConsumer,
    ) -> int:
        if num_words < 1:
            raise RangeError(f"num_words must be at least 1, got {num_words}")
        request_id = self._next_request_id
        self._next_request_id += 1
        self._pending[request_id] = RandomnessRequest(
            request_id=request_id,
            key_hash=key_hash,
            subscription_id=subscription_id,
            request_confirmations=request_confirmations,
            callback_gas_limit=callback_gas_limit,
            num_words=num_words,
            consumer=consumer,
        )
        return request_id

    @property
    def pending_requests(self) -> List[int]:
        return sorted(self._pending)

    def is_pending(self, request_id: int) -> bool:
        return request_id in self._pending

    def get_request(self, request_id: int) -> Optional[RandomnessRequest]:
        return self._pending.get(request_id)

    def fulfill(self, request_id: int, random_words: Optional[Sequence[int]] = None) -> Tuple[int, ...]:
        """
        Deliver words for a pending request.

        Args:
            request_id: Request to fulfill
            random_words: Words to deliver (derived from the seed if omitted)

        Returns:
            The delivered words

        Raises:
            RequestMismatch: Unknown or already fulfilled request
            Exception: Whatever the consumer raises propagates unchanged
        """
        request = self._pending.get(request_id)
        if request is None:
            raise RequestMismatch(f"no pending randomness request {request_id}")
        if random_words is None:
            words = derive_words(self.seed, request_id, request.num_words)
        else:
            words = tuple(int(w) for w in random_words)
            if not words:
                raise RangeError("random_words cannot be empty")
        del self._pending[request_id]
        self.fulfilled[request_id] = words
        request.consumer.fulfill_random_words(self.address, request_id, words)
        return words
