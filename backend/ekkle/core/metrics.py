# Centralized Prometheus metrics. The middleware below records timing
# and counts for every request; the record_* helpers are called from
# the tenant resolver, the rate limiter and the webhook handlers.

from time import monotonic

from fastapi import Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY = Histogram(
    "ekkle_request_duration_seconds",
    "Request handling time in seconds, by route template",
    ["method", "route"],
)
REQUESTS_TOTAL = Counter(
    "ekkle_requests_total",
    "Requests served, by route template and status",
    ["method", "route", "status_code"],
)

TENANT_RESOLUTIONS_TOTAL = Counter(
    "tenant_resolutions_total",
    "Tenant resolver decisions by outcome",
    ["outcome"],   # root_domain|tenant_bypass|tenant_rewrite|session_redirect|fallback
)

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "rate_limit_decisions_total",
    "Rate limit checks grouped by policy and outcome",
    ["policy", "outcome"],   # outcome: allowed|rejected
)

WEBHOOK_EVENTS_TOTAL = Counter(
    "webhook_events_total",
    "Webhook events received by provider, type and handling status",
    ["provider", "event_type", "status"],
)


def _label(value: object | None, default: str = "unknown") -> str:
    text = "" if value is None else str(value).strip()
    return text or default


def record_tenant_resolution(outcome: str) -> None:
    TENANT_RESOLUTIONS_TOTAL.labels(outcome=_label(outcome)).inc()


def record_rate_limit_decision(policy: str | None, allowed: bool) -> None:
    RATE_LIMIT_DECISIONS_TOTAL.labels(
        policy=_label(policy, "custom"),
        outcome=("allowed" if allowed else "rejected"),
    ).inc()


def record_webhook_event(provider: str, event_type: str | None, status: str) -> None:
    WEBHOOK_EVENTS_TOTAL.labels(
        provider=_label(provider),
        event_type=_label(event_type),
        status=_label(status),
    ).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = monotonic()
        response = await call_next(request)
        # The route template keeps every church's rewritten pages on one series.
        route = getattr(request.scope.get("route"), "path", None) or request.url.path
        REQUEST_LATENCY.labels(method=request.method, route=route).observe(monotonic() - started)
        REQUESTS_TOTAL.labels(
            method=request.method,
            route=route,
            status_code=str(response.status_code),
        ).inc()
        return response
