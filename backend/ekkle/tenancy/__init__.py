"Tenancy utilities: host resolution, route classification and request context."

from .constants import CHURCH_ID_HEADER, CHURCH_SLUG_HEADER, PATHNAME_HEADER  # noqa: F401
from .context import TenantContext  # noqa: F401
from .errors import TenantResolutionError  # noqa: F401
from .resolver import Resolution, ResolutionKind, TenantResolver  # noqa: F401
from .routes import DEFAULT_ROUTE_TABLE, RouteRule, RouteTable, check_route_tree  # noqa: F401
from .session import PassThroughSessionRefresher, SessionOutcome, SessionRefresher  # noqa: F401
from .middleware import RequestContextMiddleware, TenantResolverMiddleware  # noqa: F401
