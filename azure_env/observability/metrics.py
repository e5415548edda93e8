"""Prometheus counters for the gateway, the secret store and the HTTP service."""

from __future__ import annotations

import time

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

GATEWAY_REQUESTS = Counter(
    "gateway_requests_total",
    "Gateway requests by outcome",
    labelnames=("outcome",),
)
KEYVAULT_FETCHES = Counter(
    "keyvault_fetch_total",
    "Key Vault lookups by operation and result",
    labelnames=("operation", "result"),
)

_REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    labelnames=("service", "method", "path", "status"),
)
_REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    labelnames=("service", "method", "path"),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0),
)


def record_gateway_outcome(outcome: str) -> None:
    GATEWAY_REQUESTS.labels(outcome).inc()


def record_keyvault_fetch(operation: str, result: str) -> None:
    KEYVAULT_FETCHES.labels(operation, result).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect request counts and latency for Prometheus."""

    def __init__(self, app: ASGIApp, *, service_name: str) -> None:
        super().__init__(app)
        self._service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        route = request.scope.get("route")
        path_template: str = getattr(route, "path", request.url.path)
        method = request.method.upper()
        start = time.perf_counter()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(getattr(response, "status_code", 500))
            return response
        finally:
            duration = time.perf_counter() - start
            _REQUEST_COUNTER.labels(self._service_name, method, path_template, status_code).inc()
            _REQUEST_LATENCY.labels(self._service_name, method, path_template).observe(duration)


def setup_metrics(app: FastAPI, *, service_name: str) -> None:
    """Attach the metrics middleware and a ``/metrics`` endpoint once."""

    if getattr(app.state, "_metrics_configured", False):
        return

    app.add_middleware(MetricsMiddleware, service_name=service_name)

    async def metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.add_api_route(
        "/metrics",
        metrics_endpoint,
        methods=["GET"],
        include_in_schema=False,
        name="metrics",
    )
    app.state._metrics_configured = True


__all__ = [
    "GATEWAY_REQUESTS",
    "KEYVAULT_FETCHES",
    "MetricsMiddleware",
    "record_gateway_outcome",
    "record_keyvault_fetch",
    "setup_metrics",
]
