"""Bounded, append-only command log."""

from __future__ import annotations

import logging
import threading

from scriptrelay.relay.models import CommandRecord

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
# Records older than this are dropped by a prune (ms)
DEFAULT_MAX_AGE_MS = 5 * 60 * 1000


class CommandLog:
    """Ordered sequence of command records bounded by count and age.

    Records are only ever appended at the end and removed from the front
    (by trimming) or filtered out by age (by pruning); their relative order
    never changes. Every operation takes the log's lock.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
    ) -> None:
        self._capacity = capacity
        self._max_age_ms = max_age_ms
        self._records: list[CommandRecord] = []
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def max_age_ms(self) -> int:
        return self._max_age_ms

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def append(self, record: CommandRecord) -> None:
        with self._lock:
            self._records.append(record)

    def trim_to_capacity(self) -> int:
        """Keep only the most recent ``capacity`` records.

        Returns:
            Number of records evicted.
        """
        with self._lock:
            excess = len(self._records) - self._capacity
            if excess <= 0:
                return 0
            del self._records[:excess]
            return excess

    def prune_by_age(self, now: int) -> int:
        """Drop every record whose timestamp is older than ``max_age_ms``.

        Args:
            now: The prune instant in milliseconds since the epoch.

        Returns:
            Number of records removed.
        """
        cutoff = now - self._max_age_ms
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.timestamp >= cutoff]
            return before - len(self._records)

    def snapshot(self) -> list[CommandRecord]:
        """Return the records in insertion order."""
        with self._lock:
            return list(self._records)
