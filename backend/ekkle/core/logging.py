# This middleware records a structured JSON log for each request.
# It captures latency, route, church slug and request_id for traceability.

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from time import monotonic
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ekkle.core.config import settings
from ekkle.core.tracing import get_trace_id


_STANDARD_ATTRS = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}

_ALWAYS_FIELDS = {
    "request_id",
    "church_slug",
    "route",
    "method",
    "status_code",
    "duration_ms",
    "trace_id",
}

_SENSITIVE_KEYS = (
    "password",
    "senha",
    "token",
    "secret",
    "key",
    "authorization",
    "auth",
    "credit_card",
    "cpf",
    "cnpj",
    "document",
)


def mask_sensitive(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: mask_sensitive(k, v) for k, v in value.items()}
    lowered = key.lower()
    if isinstance(value, str) and any(marker in lowered for marker in _SENSITIVE_KEYS):
        if len(value) > 4:
            return f"{value[:2]}***{value[-2:]}"
        return "***"
    return value


class JsonLogFormatter(logging.Formatter):
    """
    Render a record as one JSON line. Anything passed through ``extra`` is
    copied to the top level with sensitive values masked; request fields
    are always present, even when empty.
    """

    def _extra_fields(self, record: logging.LogRecord):
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or (value is None and key not in _ALWAYS_FIELDS):
                continue
            yield key, mask_sensitive(key, value)

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self._extra_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def get_structured_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    logger.addHandler(handler)
    logger.setLevel(settings.LOG_LEVEL.upper())
    logger.propagate = False
    return logger


logger = get_structured_logger("api_logger")


def _route_template(request: Request) -> str:
    # Prefer the matched template so rewritten church paths group together.
    return getattr(request.scope.get("route"), "path", None) or request.url.path


def _log_request(request: Request, started: float, *, status_code: int, failed: bool = False) -> None:
    state = request.state
    extra: dict[str, Any] = {
        "request_id": getattr(state, "request_id", None),
        "church_slug": getattr(state, "church_slug", None),
        "resolution": getattr(state, "tenant_resolution", None),
        "route": _route_template(request),
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "duration_ms": round((monotonic() - started) * 1000.0, 2),
        "trace_id": get_trace_id(),
    }
    if failed:
        extra["error_code"] = "unhandled_exception"
        logger.exception("request.failed", extra=extra)
    else:
        logger.info("request.completed", extra=extra)


class APILoggingMiddleware(BaseHTTPMiddleware):
    """One structured record per request, written after tenant resolution ran."""

    async def dispatch(self, request: Request, call_next):
        started = monotonic()
        try:
            response = await call_next(request)
        except Exception:
            _log_request(request, started, status_code=500, failed=True)
            raise
        _log_request(request, started, status_code=response.status_code)
        return response
