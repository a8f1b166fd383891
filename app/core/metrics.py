"""Prometheus metrics: HTTP traffic, backend attempts and generation outcomes."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import settings

APP_INFO = Info("app", "Movie platform AI gateway info")
APP_INFO.info({"version": settings.app_version, "env": settings.app_env})

# --- HTTP ---

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 15, 30, 60, 120],
)

# --- Generation ---

BACKEND_ATTEMPTS = Counter(
    "generation_backend_attempts_total",
    "Calls made to text-generation backends, by classified outcome",
    ["backend", "outcome"],
)

BACKEND_LATENCY = Histogram(
    "generation_backend_latency_seconds",
    "Round-trip time of a single backend call",
    ["backend"],
    buckets=[0.5, 1, 2.5, 5, 10, 20, 40, 60],
)

GENERATION_RESULTS = Counter(
    "generation_requests_total",
    "Metadata generation requests, by final result",
    ["result"],
)

RATE_LIMIT_REJECTIONS = Counter(
    "generation_rate_limit_rejections_total",
    "Generation requests rejected by the local rate limiter",
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        # Label by route template so unknown paths share one series
        route = request.scope.get("route")
        path = getattr(route, "path", "unmatched")

        REQUEST_COUNT.labels(method=request.method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=request.method, path=path).observe(elapsed)
        return response


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type="text/plain; version=0.0.4; charset=utf-8")
