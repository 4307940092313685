import logging
import time

from urllib3.exceptions import HTTPError

from common.reliability.retry import execute_with_retry
from events_aggregator.cache import EventsCache
from events_aggregator.events import EventSet, EventSetDecodeError
from events_aggregator.store import EventStore, EventStoreError

logger = logging.getLogger("events-bootstrap")

RETRYABLE_ERRORS = (EventStoreError, HTTPError, OSError)


class BootstrapError(RuntimeError):
    pass


def bootstrap_cache(store: EventStore, cache: EventsCache, max_retries: int = 5,
                    base_delay: float = 1.0, sleep=time.sleep) -> EventSet:
    """
    Seeds the cache from the persisted counters, creating the resource
    with zeroed counters if it does not exist yet.

    Raises BootstrapError when the store stays unreachable or holds corrupt
    counters: starting from zero would under-report against the previous run.
    """
    try:
        events = execute_with_retry(
            store.load_or_create,
            max_retries=max_retries,
            base_delay=base_delay,
            retryable_exceptions=RETRYABLE_ERRORS,
            operation="event store bootstrap",
            sleep=sleep
        )
    except EventSetDecodeError as e:
        raise BootstrapError(f"Persisted events in {store.namespace}/{store.name} are corrupt: {e}") from e
    except RETRYABLE_ERRORS as e:
        raise BootstrapError(f"Event store {store.namespace}/{store.name} unreachable: {e}") from e

    cache.initialize(events)
    logger.info(f"Events cache seeded from {store.namespace}/{store.name}: {events.to_dict()}")
    return events
