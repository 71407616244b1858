"""Anonymous events store: the windowed buffer used by identity recognition."""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..domain import EventPayload, utc_now


class AnonymousEventsStore(ABC):
    """Abstract store of events buffered per anonymous id.

    Events are grouped in a collection (one per connection) and keyed by
    anonymous id. Implementations must guarantee, per key:

    - read-your-writes: an event whose ``add_event`` completed is visible to
      every later ``evict_events``;
    - all-or-nothing eviction: every event returned by ``evict_events`` is
      removed, and every event not returned stays buffered. An ``add_event``
      racing an eviction either lands in that eviction or in a later one, it
      is never lost.

    Examples:
        >>> store = AnonymousEventsStore.in_memory()
        >>> await store.add_event("UR_conn", "anon-1", {"type": "page"}, 30)
        >>> await store.evict_events("UR_conn", "anon-1")
        [{'type': 'page'}]
        >>> await store.evict_events("UR_conn", "anon-1")
        []
    """

    @staticmethod
    def in_memory() -> "AnonymousEventsStore":
        return InMemoryAnonymousEventsStore()

    @abstractmethod
    async def add_event(
        self, collection: str, anonymous_id: str, event: EventPayload, window_days: int
    ) -> None:
        """Buffer ``event`` under ``anonymous_id`` for ``window_days`` days.

        Raises:
            StoreError: If the write is not acknowledged.
        """
        ...

    @abstractmethod
    async def evict_events(self, collection: str, anonymous_id: str) -> list[EventPayload]:
        """Atomically remove and return every event buffered under ``anonymous_id``.

        Returns:
            The buffered events in insertion order, or an empty list.

        Raises:
            StoreError: If the store cannot be read.
        """
        ...


@dataclass
class _BufferedEvent:
    event: EventPayload
    expire_at: datetime


class InMemoryAnonymousEventsStore(AnonymousEventsStore):
    """In-memory anonymous events store for development and testing.

    A single ``asyncio.Lock`` serializes add and evict. Expired events are
    dropped on eviction, and ``add_event`` sweeps every key for expired
    events at most once per ``sweep_interval``, so keys that never identify
    do not accumulate. ``purge_expired`` runs the sweep on demand.

    Note:
        Buffered events are lost on restart. Use the MongoDB store in
        production.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        sweep_interval: timedelta = timedelta(minutes=1),
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep: datetime | None = None
        self._events: dict[tuple[str, str], list[_BufferedEvent]] = {}
        self._lock = asyncio.Lock()

    async def add_event(
        self, collection: str, anonymous_id: str, event: EventPayload, window_days: int
    ) -> None:
        key = (collection, anonymous_id)
        now = self._clock()
        buffered = _BufferedEvent(copy.deepcopy(event), now + timedelta(days=window_days))
        async with self._lock:
            if self._next_sweep is None or now >= self._next_sweep:
                self._purge(now)
                self._next_sweep = now + self._sweep_interval
            self._events.setdefault(key, []).append(buffered)

    async def evict_events(self, collection: str, anonymous_id: str) -> list[EventPayload]:
        key = (collection, anonymous_id)
        async with self._lock:
            buffered = self._events.pop(key, [])
        now = self._clock()
        return [b.event for b in buffered if b.expire_at > now]

    async def purge_expired(self) -> int:
        """Drop every expired event now.

        Returns:
            The number of events removed.
        """
        async with self._lock:
            return self._purge(self._clock())

    def _purge(self, now: datetime) -> int:
        removed = 0
        for key in list(self._events):
            kept = [b for b in self._events[key] if b.expire_at > now]
            removed += len(self._events[key]) - len(kept)
            if kept:
                self._events[key] = kept
            else:
                del self._events[key]
        return removed

    def size(self, collection: str, anonymous_id: str) -> int:
        """Number of events currently buffered under a key (expired included)."""
        return len(self._events.get((collection, anonymous_id), []))

    def __len__(self) -> int:
        """Number of keys with buffered events."""
        return len(self._events)
