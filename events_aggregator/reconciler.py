import logging
import threading

from events_aggregator.cache import CacheNotInitialized, EventsCache
from events_aggregator.metrics import LAST_RECONCILE, RECONCILE_TOTAL
from events_aggregator.store import EventStore

logger = logging.getLogger("events-reconciler")


class Reconciler:
    """
    Pushes a cache snapshot into the event store every `interval` seconds.
    Failures are logged and retried on the next tick; the interval bounds
    how many increments a crash can lose.
    """

    def __init__(self, cache: EventsCache, store: EventStore, interval: float = 60.0,
                 flush_on_stop: bool = True):
        self._cache = cache
        self._store = store
        self._interval = interval
        self._flush_on_stop = flush_on_stop
        self._stop = threading.Event()

    def reconcile_once(self) -> bool:
        try:
            events = self._cache.snapshot()
        except CacheNotInitialized:
            logger.warning("Skipping reconcile: events cache not initialized")
            return False

        try:
            self._store.apply(events)
        except Exception as e:
            logger.error(f"Reconcile of {self._store.namespace}/{self._store.name} failed: {e}")
            RECONCILE_TOTAL.labels(result="failure").inc()
            return False

        RECONCILE_TOTAL.labels(result="success").inc()
        LAST_RECONCILE.set_to_current_time()
        logger.debug(f"Reconciled events: {events.to_dict()}")
        return True

    def run(self):
        logger.info(f"Reconciler started (interval={self._interval}s)")
        while not self._stop.wait(self._interval):
            self.reconcile_once()
        if self._flush_on_stop:
            self.reconcile_once()
        logger.info("Reconciler stopped")

    def stop(self):
        self._stop.set()
