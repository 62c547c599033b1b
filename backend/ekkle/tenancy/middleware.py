"""
Middleware for request-scoped tenancy concerns.
"""

import logging
from typing import Optional
from urllib.parse import quote
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ekkle.core.config import settings
from ekkle.core.ip import proxy_headers_trusted
from ekkle.core.metrics import record_tenant_resolution
from ekkle.core.tracing import set_trace_id
from ekkle.tenancy.constants import FORWARDED_HOST_HEADER, RESOLVER_HEADERS
from ekkle.tenancy.resolver import Resolution, TenantResolver
from ekkle.tenancy.session import PassThroughSessionRefresher, SessionOutcome, SessionRefresher

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_RESOLVER_HEADER_KEYS = {name.encode("latin-1") for name in RESOLVER_HEADERS}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Reuses the caller's X-Request-ID or mints one, makes it the trace id
    and echoes it on the response.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        set_trace_id(request_id)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def build_default_resolver() -> TenantResolver:
    return TenantResolver(
        root_hostnames=settings.ROOT_HOSTNAMES,
        site_prefix=settings.TENANT_SITE_PREFIX,
        church_ids=settings.CHURCH_IDS,
    )


def _request_host(request: Request) -> Optional[str]:
    if proxy_headers_trusted(request):
        forwarded = request.headers.get(FORWARDED_HOST_HEADER)
        if forwarded:
            return forwarded
    return request.headers.get("host")


def _without_resolver_headers(headers: list) -> list:
    return [(key, value) for key, value in headers if key.lower() not in _RESOLVER_HEADER_KEYS]


def _scope_updates(scope: dict, resolution: Resolution) -> dict:
    headers = _without_resolver_headers(list(scope.get("headers") or []))
    headers.extend(
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, value in resolution.headers.items()
    )
    updates = {"headers": headers}
    if resolution.rewritten:
        # raw_path keeps the client's percent-encoding; only the namespace is prepended.
        raw_path = scope.get("raw_path") or quote(scope["path"]).encode("ascii")
        updates["path"] = resolution.path
        updates["raw_path"] = quote(resolution.namespace).encode("ascii") + raw_path
    return updates


class TenantResolverMiddleware(BaseHTTPMiddleware):
    """
    Maps the request host to a church and decides whether the path is
    rewritten into the church site namespace.

    The session-refresh redirect wins over everything else. Resolution
    failures are logged and the request continues on its original path.
    """

    def __init__(
        self,
        app,
        *,
        resolver: Optional[TenantResolver] = None,
        session_refresher: Optional[SessionRefresher] = None,
    ) -> None:
        super().__init__(app)
        self.resolver = resolver or build_default_resolver()
        self.session_refresher = session_refresher or PassThroughSessionRefresher()

    async def dispatch(self, request: Request, call_next):
        outcome: Optional[SessionOutcome] = None
        try:
            outcome = await self.session_refresher.refresh(request)
            if outcome.is_redirect:
                record_tenant_resolution("session_redirect")
                request.state.tenant_resolution = "session_redirect"
                return outcome.to_response()

            resolution = self.resolver.resolve(_request_host(request), request.scope["path"])
            updates = _scope_updates(request.scope, resolution)
        except Exception:
            logger.exception(
                "tenant.resolution_failed",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "host": request.headers.get("host"),
                    "path": request.scope.get("path"),
                },
            )
            record_tenant_resolution("fallback")
            request.state.tenant_resolution = "fallback"
            request.scope["headers"] = _without_resolver_headers(list(request.scope.get("headers") or []))
            response = await call_next(request)
            if outcome is not None:
                outcome.apply_cookies(response)
            return response

        request.scope.update(updates)
        request.state.tenant_resolution = resolution.kind.value
        request.state.church_slug = resolution.tenant.slug if resolution.tenant else None
        request.state.church_id = resolution.tenant.id if resolution.tenant else None
        record_tenant_resolution(resolution.kind.value)
        logger.debug(
            "tenant.resolved",
            extra={
                "kind": resolution.kind.value,
                "church_slug": request.state.church_slug,
                "path": resolution.path,
            },
        )

        response = await call_next(request)
        outcome.apply_cookies(response)
        return response
