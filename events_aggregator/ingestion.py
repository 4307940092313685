import logging
import threading

from events_aggregator.bus import BusMessage, Subscription
from events_aggregator.cache import CacheNotInitialized, EventsCache
from events_aggregator.events import InvalidCounterKey
from events_aggregator.metrics import MESSAGES_PROCESSED

logger = logging.getLogger("events-ingestion")

APPLIED = "applied"
INVALID_KEY = "invalid_key"
NOT_READY = "not_ready"


class IngestionLoop:
    """Drains the subscription into the cache, one message at a time."""

    def __init__(self, subscription: Subscription, cache: EventsCache,
                 not_ready_delay: float = 1.0, error_delay: float = 1.0):
        self._subscription = subscription
        self._cache = cache
        self._not_ready_delay = not_ready_delay
        self._error_delay = error_delay
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self):
        logger.info("Ingestion loop started")
        try:
            while not self._stop.is_set():
                try:
                    message = self._subscription.next()
                    # A message received while stopping is left unacknowledged
                    # and will be redelivered.
                    if message is None or self._stop.is_set():
                        break
                    self.handle(message)
                except Exception as e:
                    logger.error(f"Error in ingestion loop: {e}")
                    self._stop.wait(self._error_delay)
        finally:
            self._subscription.disconnect()
            logger.info("Ingestion loop stopped")

    def handle(self, message: BusMessage) -> str:
        event = message.event
        try:
            self._cache.increment(event.category, event.action)
        except InvalidCounterKey as e:
            logger.warning(f"Dropping event id={event.id} target={event.target}: {e}")
            MESSAGES_PROCESSED.labels(status=INVALID_KEY).inc()
            self._subscription.ack(message)
            return INVALID_KEY
        except CacheNotInitialized:
            logger.error(f"Event id={event.id} arrived before bootstrap, requeueing")
            MESSAGES_PROCESSED.labels(status=NOT_READY).inc()
            self._subscription.release(message)
            self._stop.wait(self._not_ready_delay)
            return NOT_READY

        MESSAGES_PROCESSED.labels(status=APPLIED).inc()
        self._subscription.ack(message)
        logger.debug(f"Applied event id={event.id} {event.category.value}/{event.action.value} node={event.node}")
        return APPLIED

    def stop(self):
        self._stop.set()
        self._subscription.close()
