import logging
import sys
import threading

import uvicorn
from kubernetes.client import CustomObjectsApi

from common.observability.health import HealthRegistry
from events_aggregator.app import create_app
from events_aggregator.bootstrap import BootstrapError, bootstrap_cache
from events_aggregator.bus import Subscription
from events_aggregator.cache import EventsCache
from events_aggregator.config import (
    build_consumer,
    build_producer,
    describe_config,
    get_config,
    load_kube_config,
)
from events_aggregator.ingestion import IngestionLoop
from events_aggregator.reconciler import Reconciler
from events_aggregator.store import EventStore

logger = logging.getLogger("events-aggregator")

def configure_logging(level: str):
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s %(message)s')
    for noisy in ("kafka", "kubernetes", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

def serve(server, ingestion: IngestionLoop, ingestion_thread: threading.Thread,
          reconciler: Reconciler, reconciler_thread: threading.Thread,
          grace: float, producer=None):
    """
    Runs the HTTP server until it exits, then stops ingestion first so the
    final reconcile flushes every increment that was acknowledged.
    """
    try:
        # Blocks until SIGINT/SIGTERM.
        server.run()
    finally:
        logger.info("Shutdown signal received")
        ingestion.stop()
        ingestion_thread.join(grace)
        reconciler.stop()
        reconciler_thread.join(grace)
        if reconciler_thread.is_alive():
            logger.warning(f"Final reconcile did not finish within {grace}s, abandoning it")
        if producer is not None:
            producer.close()
        logger.info("Events Aggregator stopped")

def main():
    try:
        config = get_config()
    except RuntimeError as e:
        configure_logging("INFO")
        logger.critical(str(e))
        sys.exit(1)

    configure_logging(config["LOG_LEVEL"])
    logger.info("Starting Events Aggregator")
    logger.info(f"Configuration: {describe_config(config)}")

    try:
        load_kube_config()
        store = EventStore.from_config(CustomObjectsApi(), config)
    except Exception as e:
        logger.error(f"Kubernetes client initialization failed: {e}")
        sys.exit(1)

    cache = EventsCache()
    try:
        bootstrap_cache(
            store, cache,
            max_retries=config["BOOTSTRAP_MAX_RETRIES"],
            base_delay=config["BOOTSTRAP_BASE_DELAY"],
        )
    except BootstrapError as e:
        logger.critical(f"Bootstrap failed: {e}")
        sys.exit(1)

    producer = None
    if config["EVENTS_DLQ_TOPIC"]:
        try:
            producer = build_producer(config)
        except Exception as e:
            logger.error(f"DLQ producer unavailable, malformed messages will only be dropped: {e}")

    subscription = Subscription(
        lambda: build_consumer(config),
        producer=producer,
        dlq_topic=config["EVENTS_DLQ_TOPIC"] or None,
    )
    ingestion = IngestionLoop(subscription, cache)
    reconciler = Reconciler(cache, store, interval=config["RECONCILE_INTERVAL_SECONDS"])

    ingestion_thread = threading.Thread(target=ingestion.run, name="events-ingestion", daemon=True)
    reconciler_thread = threading.Thread(target=reconciler.run, name="events-reconciler", daemon=True)

    health = HealthRegistry()
    health.add_check("events_cache", lambda: cache.initialized)
    health.add_check("ingestion", ingestion_thread.is_alive)
    health.add_check("reconciler", reconciler_thread.is_alive)

    ingestion_thread.start()
    reconciler_thread.start()

    server = uvicorn.Server(uvicorn.Config(
        create_app(cache, health),
        host=config["HTTP_HOST"],
        port=config["HTTP_PORT"],
        log_config=None,
    ))
    serve(server, ingestion, ingestion_thread, reconciler, reconciler_thread,
          grace=config["SHUTDOWN_GRACE_SECONDS"], producer=producer)

if __name__ == "__main__":
    main()
