import logging

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily

from events_aggregator.cache import CacheNotInitialized, EventsCache
from events_aggregator.events import VALID_ACTIONS

logger = logging.getLogger("stats-exporter")


class StatsCollector:
    """
    Renders the event counters as one gauge family per category, labelled
    by action. All families of a scrape come from a single snapshot.
    """

    def __init__(self, cache: EventsCache):
        self._cache = cache

    def collect(self):
        try:
            events = self._cache.snapshot()
        except CacheNotInitialized:
            logger.warning("Stats scraped before the events cache was initialized")
            return

        for category, actions in VALID_ACTIONS.items():
            family = GaugeMetricFamily(category.value.lower(), f"{category.value} stat", labels=["action"])
            for action in actions:
                family.add_metric([action.value.lower()], events.get(category, action))
            yield family


def build_stats_registry(cache: EventsCache) -> CollectorRegistry:
    # No describe(): registration must not snapshot a cache that may be empty.
    registry = CollectorRegistry(auto_describe=False)
    registry.register(StatsCollector(cache))
    return registry


def render_stats(registry: CollectorRegistry) -> bytes:
    return generate_latest(registry)
