"""
events.py - Append-only event log shared by the ledger and the draw engine.

The event log is the audit trail: every state-changing call emits one or more
records, each stamped with the ledger's logical time and a monotonic sequence
number. Components share a single log so ordering across them is global.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .core import params_tuple


@dataclass(frozen=True, slots=True)
class EventRecord:
    """
    Immutable record of something that happened.

    Attributes:
        name: Event type ("Transfer", "TaxDistributed", "DrawStarted", ...)
        params: Frozen (key, value) pairs, sorted by key
        timestamp: Logical time the event was emitted
        sequence_number: Position in the log (0-based, gap-free)
    """
    name: str
    params: Tuple[Tuple[str, Any], ...]
    timestamp: datetime
    sequence_number: int

    @property
    def params_dict(self) -> Dict[str, Any]:
        """Get params as a dictionary for convenience."""
        return dict(self.params)

    def __getitem__(self, key: str) -> Any:
        return self.params_dict[key]

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self.params)
        return f"#{self.sequence_number} {self.name}({body})"


class EventLog:
    """
    Append-only, sequenced event log.

    Thread Safety:
        Not thread-safe. Callers are serialized by construction.
    """

    def __init__(self, verbose: bool = False):
        self._records: List[EventRecord] = []
        self.verbose = verbose

    def emit(self, name: str, timestamp: datetime, **params: Any) -> EventRecord:
        """Append a record and return it."""
        record = EventRecord(
            name=name,
            params=params_tuple(params),
            timestamp=timestamp,
            sequence_number=len(self._records),
        )
        self._records.append(record)
        if self.verbose:
            print(f"📝 {record!r}")
        return record

    def filter(self, name: str) -> List[EventRecord]:
        """All records with the given name, in emission order."""
        return [r for r in self._records if r.name == name]

    def last(self, name: Optional[str] = None) -> Optional[EventRecord]:
        """Most recent record (optionally of a given name), or None."""
        for record in reversed(self._records):
            if name is None or record.name == name:
                return record
        return None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(list(self._records))
