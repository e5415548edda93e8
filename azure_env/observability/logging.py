"""Structured logging helpers for the gateway plugin."""

from __future__ import annotations

import contextvars
import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

_CORRELATION_ID_CTX: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
_REQUEST_ID_CTX: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_CONFIGURED_SERVICES: set[str] = set()

_RESERVED_LOG_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "taskName",
    }
)


class CorrelationIdFilter(logging.Filter):
    """Attach the service name and active request identifiers to records."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self._service_name
        record.correlation_id = _CORRELATION_ID_CTX.get()
        record.request_id = _REQUEST_ID_CTX.get()
        return True


class JsonLogFormatter(logging.Formatter):
    """Render records as one JSON object per line.

    Fields passed through ``extra=`` are copied into the payload, which is how
    the gateway attaches message patterns, error ids and secret names. Values
    that cannot be serialized are stringified.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "service": getattr(record, "service", self._service_name),
            "event": record.getMessage(),
        }
        for key in ("correlation_id", "request_id"):
            value = getattr(record, key, None)
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info

        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_KEYS or key in payload:
                continue
            try:
                json.dumps(value)
                payload[key] = value
            except TypeError:
                payload[key] = str(value)
        return json.dumps(payload, default=str)


@contextmanager
def request_context(
    correlation_id: str | None = None, request_id: str | None = None
) -> Iterator[str]:
    """Bind identifiers for one gateway request and yield the request id."""

    rid = request_id or uuid.uuid4().hex
    token_corr = _CORRELATION_ID_CTX.set(correlation_id or _CORRELATION_ID_CTX.get() or rid)
    token_req = _REQUEST_ID_CTX.set(rid)
    try:
        yield rid
    finally:
        _CORRELATION_ID_CTX.reset(token_corr)
        _REQUEST_ID_CTX.reset(token_req)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Populate correlation identifiers for each HTTP request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        service_name: str,
        correlation_header: str = "X-Correlation-ID",
    ) -> None:
        super().__init__(app)
        self._service_name = service_name
        self._correlation_header = correlation_header

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        incoming = request.headers.get(self._correlation_header) or request.headers.get(
            "X-Request-ID"
        )
        with request_context(incoming) as request_id:
            correlation_id = _CORRELATION_ID_CTX.get()
            request.state.correlation_id = correlation_id
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers.setdefault(self._correlation_header, correlation_id)
            response.headers.setdefault("X-Request-ID", request_id)
            return response


def configure_logging(service_name: str, *, level: int = logging.INFO) -> None:
    """Install the JSON handler on the root logger once per service."""

    if service_name in _CONFIGURED_SERVICES:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter(service_name))
    handler.addFilter(CorrelationIdFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        logger = logging.getLogger(logger_name)
        logger.handlers = [handler]
        logger.setLevel(level)
        logger.propagate = False

    _CONFIGURED_SERVICES.add(service_name)


__all__ = [
    "CorrelationIdFilter",
    "JsonLogFormatter",
    "RequestContextMiddleware",
    "configure_logging",
    "request_context",
]
