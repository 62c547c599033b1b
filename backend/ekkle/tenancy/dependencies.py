"""
FastAPI dependency helpers for reading the resolved church context.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from ekkle.tenancy.constants import CHURCH_ID_HEADER, CHURCH_SLUG_HEADER
from ekkle.tenancy.context import TenantContext


def get_tenant_context(request: Request) -> Optional[TenantContext]:
    """
    Read the church headers injected by TenantResolverMiddleware.

    The middleware strips client-supplied copies, so anything present here
    was put there by the resolver.
    """
    slug = request.headers.get(CHURCH_SLUG_HEADER)
    if not slug:
        return None
    return TenantContext(slug=slug, id=request.headers.get(CHURCH_ID_HEADER) or None)


def require_tenant_context(
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
) -> TenantContext:
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Igreja não identificada",
        )
    return tenant
