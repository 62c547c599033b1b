from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ekkle.schemas.tenancy import SitePageResponse
from ekkle.tenancy.context import TenantContext
from ekkle.tenancy.dependencies import get_tenant_context


router = APIRouter(prefix="/site", tags=["site"])


def _site_page(slug: str, path: str, tenant: Optional[TenantContext]) -> SitePageResponse:
    # A church subdomain may only ever land on its own namespace.
    if tenant is not None and tenant.slug != slug:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Página não encontrada")
    return SitePageResponse(
        church_slug=slug,
        church_id=tenant.id if tenant else None,
        path="/" + path.lstrip("/"),
    )


@router.get("/{slug}", response_model=SitePageResponse)
@router.get("/{slug}/", response_model=SitePageResponse)
def read_site_home(slug: str, tenant: Optional[TenantContext] = Depends(get_tenant_context)):
    return _site_page(slug, "/", tenant)


@router.get("/{slug}/{path:path}", response_model=SitePageResponse)
def read_site_page(
    slug: str,
    path: str,
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    return _site_page(slug, path, tenant)
