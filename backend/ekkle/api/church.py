from fastapi import APIRouter, Depends

from ekkle.api.dependencies import rate_limited
from ekkle.schemas.tenancy import ChurchContextResponse
from ekkle.tenancy.context import TenantContext
from ekkle.tenancy.dependencies import require_tenant_context


router = APIRouter(prefix="/api", tags=["church"])


@router.get(
    "/church",
    response_model=ChurchContextResponse,
    dependencies=[Depends(rate_limited("api"))],
)
def read_church_context(tenant: TenantContext = Depends(require_tenant_context)):
    return ChurchContextResponse(slug=tenant.slug, id=tenant.id)
