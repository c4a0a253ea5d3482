"""Bounded recency cache used to avoid reporting the same termination twice.

Pods are updated for many reasons after a container terminates (readiness
flips, restarts, label changes), and every update carries the last
terminated state again. The tracker remembers the latest ``finishedAt`` per
container so only genuinely new terminations are reported.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

from kubesentry.observability.logging import get_logger
from kubesentry.observability.metrics import recency_cache_evictions_total, recency_cache_size

_log = get_logger("classify.recency")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_CAPACITY = 500


class RecencyCache(Generic[K, V]):
    """Fixed-capacity LRU map.

    Uses OrderedDict for O(1) access; the first entry is always the least
    recently used one. All operations hold one lock.

    Example:
        >>> cache = RecencyCache[str, int](capacity=2)
        >>> cache.put("a", 1)
        >>> cache.swap("a", 2)
        1
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._lock = threading.Lock()
        self.evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: K) -> V | None:
        """Return the value for *key*, marking it most recently used."""
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._put(key, value)

    def swap(self, key: K, value: V) -> V | None:
        """Store *value* under *key* and return what was there before, atomically."""
        with self._lock:
            previous = self._entries.get(key)
            self._put(key, value)
            return previous

    def _put(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._capacity:
            self._entries.popitem(last=False)
            self.evictions += 1
            recency_cache_evictions_total.inc()
        self._entries[key] = value
        recency_cache_size.set(len(self._entries))


@dataclass(frozen=True)
class TerminationKey:
    """Identity of one container termination."""

    uid: str
    container: str
    restart_count: int | None = None


_EPOCH = datetime.min.replace(tzinfo=UTC)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class TerminationTracker:
    """Decides whether a container termination has been seen before.

    Args:
        cache:   Shared recency cache (keys are TerminationKey).
        max_age: Optional bound on observation age. Terminations observed
                 longer than this after they finished are treated as replays.
                 None disables the check.
        clock:   Source of the observation time when none is passed.
    """

    def __init__(
        self,
        cache: RecencyCache[TerminationKey, datetime] | None = None,
        max_age: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache: RecencyCache[TerminationKey, datetime] = cache if cache is not None else RecencyCache()
        self._max_age = max_age
        self._clock = clock

    @property
    def cache(self) -> RecencyCache[TerminationKey, datetime]:
        return self._cache

    def is_new_termination(
        self,
        uid: str,
        container: str,
        finished_at: datetime | None,
        restart_count: int | None = None,
        observed_at: datetime | None = None,
    ) -> bool:
        """Record *finished_at* for the container and report whether it is new.

        New means no earlier record exists or *finished_at* is strictly later
        than the recorded one. The record is overwritten either way.
        """
        key = TerminationKey(uid, container, restart_count)
        current = finished_at or _EPOCH
        previous = self._cache.swap(key, current)

        if previous is not None and current <= previous:
            return False

        if self._max_age is not None and finished_at is not None:
            age = (observed_at or self._clock()) - finished_at
            if age > self._max_age:
                _log.debug(
                    "stale_termination_ignored",
                    uid=uid,
                    container=container,
                    age_ms=int(age.total_seconds() * 1000),
                )
                return False
        return True
