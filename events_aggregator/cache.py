import logging
import threading
from typing import Optional

from events_aggregator.events import Action, Category, EventSet

logger = logging.getLogger("events-cache")


class CacheNotInitialized(RuntimeError):
    def __init__(self):
        super().__init__("Events cache is not initialized")


class EventsCache:
    """
    Lock-guarded holder of the live EventSet.

    The ingestion loop is the only writer. The reconciler and the exporter
    read through snapshot(), which copies under the lock so callers never
    hold it while talking to the network.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._events: Optional[EventSet] = None

    @property
    def initialized(self) -> bool:
        with self._lock:
            return self._events is not None

    def initialize(self, initial: EventSet) -> bool:
        """Seeds the cache once. Returns False if it was already seeded."""
        seeded = initial.copy()
        with self._lock:
            if self._events is not None:
                accepted = False
            else:
                self._events = seeded
                accepted = True
        if not accepted:
            logger.warning("Events cache already initialized, ignoring second bootstrap")
        return accepted

    def increment(self, category: Category, action: Action) -> int:
        """Raises InvalidCounterKey for an untracked pair; counters stay untouched."""
        with self._lock:
            if self._events is None:
                raise CacheNotInitialized()
            return self._events.increment(category, action)

    def snapshot(self) -> EventSet:
        with self._lock:
            if self._events is None:
                raise CacheNotInitialized()
            return self._events.copy()
