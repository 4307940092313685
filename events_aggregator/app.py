import json
import logging
from typing import Optional

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST

from common.observability.health import HealthRegistry
from common.observability.metrics import MetricsMiddleware, get_metrics_response
from events_aggregator.cache import EventsCache
from events_aggregator.exporter import build_stats_registry, render_stats

logger = logging.getLogger("aggregator-http")

SERVICE_NAME = "events-aggregator"


def create_app(cache: EventsCache, health_registry: Optional[HealthRegistry] = None) -> FastAPI:
    app = FastAPI(title="Events Aggregator")
    app.add_middleware(MetricsMiddleware, service_name=SERVICE_NAME)

    stats_registry = build_stats_registry(cache)
    if health_registry is None:
        health_registry = HealthRegistry()
        health_registry.add_check("events_cache", lambda: cache.initialized)

    @app.get("/stats")
    def stats():
        return Response(content=render_stats(stats_registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/metrics")
    def metrics():
        return get_metrics_response()

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/readyz")
    def readyz():
        result = health_registry.check_health()
        if result["status"] != "ok":
            return Response(content=json.dumps(result), status_code=503, media_type="application/json")
        return result

    return app
