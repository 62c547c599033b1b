# This file bootstraps the FastAPI app, wires up the tenant resolver and
# the logging/metrics middlewares, and includes all the routers.

import os
from typing import Optional

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ekkle.core.db import Base, engine
from ekkle.core.logging import APILoggingMiddleware
from ekkle.core.metrics import MetricsMiddleware
from ekkle.core.rate_limit import RateLimitStore, build_rate_limit_store
from ekkle.tenancy.middleware import RequestContextMiddleware, TenantResolverMiddleware
from ekkle.tenancy.resolver import TenantResolver
from ekkle.tenancy.session import SessionRefresher

import ekkle.models  # noqa: F401  registers tables on Base.metadata

from ekkle.api.church import router as church_router
from ekkle.api.site import router as site_router
from ekkle.api.webhooks import router as webhooks_router


def create_app(
    *,
    resolver: Optional[TenantResolver] = None,
    session_refresher: Optional[SessionRefresher] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
) -> FastAPI:
    app = FastAPI(title="Ekkle")
    app.state.rate_limit_store = rate_limit_store or build_rate_limit_store()

    for router in (church_router, site_router, webhooks_router):
        app.include_router(router)

    @app.get("/ping")
    def ping():
        return {"message": "pong"}

    # /metrics endpoint (Prometheus scraping)
    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Starlette runs the last middleware added first. Resolution sits
    # innermost so the request id and logging wrap the rewritten request.
    app.add_middleware(
        TenantResolverMiddleware,
        resolver=resolver,
        session_refresher=session_refresher,
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(APILoggingMiddleware)
    app.add_middleware(RequestContextMiddleware)
    return app


# Create DB tables right away so the webhook handlers don't hit a missing
# schema. Skipped when migrations are managed elsewhere.
if os.getenv("SKIP_MIGRATIONS") != "1":
    Base.metadata.create_all(bind=engine)

app = create_app()
