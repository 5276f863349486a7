"""Prometheus metrics instrumentation for FastAPI and the portal core."""

import time
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import FastAPI, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
REQUEST_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "In-progress HTTP requests",
    ["method"],
)

# ----- Portal core -----

PORTAL_SESSION_VALIDATIONS = Counter(
    "portal_session_validations_total",
    "Portal session validations by outcome",
    ["outcome"],
)
PORTAL_ACTIONS = Counter(
    "portal_actions_total",
    "Client-initiated portal actions by outcome",
    ["action", "outcome"],
)


def record_session_validation(outcome: str) -> None:
    PORTAL_SESSION_VALIDATIONS.labels(outcome=outcome).inc()


def record_portal_action(action: str, outcome: str) -> None:
    PORTAL_ACTIONS.labels(action=action, outcome=outcome).inc()


def _get_route_path(request: Request) -> str:
    # Route template, not the raw path: keeps ids out of label values
    route: Any | None = request.scope.get("route")
    path = getattr(route, "path", None) if route is not None else None
    if isinstance(path, str) and path:
        return path
    return "unknown"


def setup_metrics(app: FastAPI) -> None:
    """Attach Prometheus metrics and /metrics endpoint to the app."""

    @app.middleware("http")
    async def metrics_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        method = request.method
        REQUEST_IN_PROGRESS.labels(method=method).inc()
        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration = time.perf_counter() - start
            path = _get_route_path(request)
            status_code = str(response.status_code) if response else "500"
            REQUEST_LATENCY.labels(method=method, path=path).observe(duration)
            REQUEST_COUNT.labels(method=method, path=path, status_code=status_code).inc()
            REQUEST_IN_PROGRESS.labels(method=method).dec()

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        data = generate_latest()
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)
