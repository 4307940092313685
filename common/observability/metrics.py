import logging
import time
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, REGISTRY, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("metrics")

COMMON_LABELS = ['service']

# Scrape and probe routes are not counted as traffic.
UNTRACKED_PATHS = {"/metrics", "/stats", "/healthz", "/readyz"}

REQUESTS_TOTAL = Counter(
    'requests_total', 'Total HTTP requests',
    COMMON_LABELS + ['method', 'route', 'status_code']
)
REQUEST_LATENCY = Histogram(
    'request_latency_seconds', 'HTTP request latency',
    COMMON_LABELS + ['method', 'route']
)
SERVICE_UPTIME = Gauge(
    'service_uptime_seconds', 'Service uptime',
    COMMON_LABELS
)

class MetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, service_name):
        super().__init__(app)
        self.service_name = service_name
        self.start_time = time.time()
        SERVICE_UPTIME.labels(service=service_name).set_function(lambda: time.time() - self.start_time)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        route = request.url.path
        REQUESTS_TOTAL.labels(
            service=self.service_name,
            method=request.method,
            route=route,
            status_code=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=self.service_name,
            method=request.method,
            route=route
        ).observe(duration)

        return response

def get_metrics_response(registry: CollectorRegistry = REGISTRY) -> Response:
    return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
