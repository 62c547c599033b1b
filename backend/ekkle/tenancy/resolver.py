"""
Host and path to routing decision, without touching the database.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from ipaddress import ip_address
from typing import Iterable, Mapping, Optional

from ekkle.tenancy.constants import CHURCH_ID_HEADER, CHURCH_SLUG_HEADER, PATHNAME_HEADER
from ekkle.tenancy.context import TenantContext
from ekkle.tenancy.errors import TenantResolutionError
from ekkle.tenancy.routes import DEFAULT_ROUTE_TABLE, RouteTable

_SLUG_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")


class ResolutionKind(str, Enum):
    ROOT_DOMAIN = "root_domain"
    TENANT_BYPASS = "tenant_bypass"
    TENANT_REWRITE = "tenant_rewrite"


@dataclass(frozen=True)
class Resolution:
    kind: ResolutionKind
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    tenant: Optional[TenantContext] = None
    # Prefix prepended to the original path on a rewrite, empty otherwise.
    namespace: str = ""

    @property
    def rewritten(self) -> bool:
        return self.kind is ResolutionKind.TENANT_REWRITE


def normalize_host(raw: str | None) -> str:
    if raw is None:
        raise TenantResolutionError("Missing host header")
    host = raw.split(",")[0].strip().lower()
    if host.startswith("["):
        end = host.find("]")
        if end == -1:
            raise TenantResolutionError(f"Malformed host header: {raw!r}")
        host = host[1:end]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    host = host.rstrip(".")
    if not host:
        raise TenantResolutionError("Missing host header")
    return host


def _is_ip_literal(host: str) -> bool:
    try:
        ip_address(host)
    except ValueError:
        return False
    return True


class TenantResolver:
    def __init__(
        self,
        *,
        root_hostnames: Iterable[str],
        route_table: RouteTable = DEFAULT_ROUTE_TABLE,
        site_prefix: str = "/site",
        church_ids: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.root_hostnames = frozenset(h.strip().lower() for h in root_hostnames if h and h.strip())
        self.route_table = route_table
        self.site_prefix = "/" + site_prefix.strip("/")
        self.church_ids = dict(church_ids or {})

    def classify_host(self, host: str) -> Optional[str]:
        """
        Return the church slug carried by the host, or None on a root host
        or a bare IP address.
        """
        if host in self.root_hostnames or _is_ip_literal(host):
            return None
        slug = host.split(".", 1)[0]
        if not _SLUG_RE.match(slug):
            raise TenantResolutionError(f"Invalid church subdomain: {slug!r}")
        return slug

    def tenant_for(self, slug: str) -> TenantContext:
        return TenantContext(slug=slug, id=self.church_ids.get(slug))

    def resolve(self, host: str | None, path: str) -> Resolution:
        if not path.startswith("/"):
            raise TenantResolutionError(f"Request path must be absolute: {path!r}")
        slug = self.classify_host(normalize_host(host))
        if slug is None:
            return Resolution(
                kind=ResolutionKind.ROOT_DOMAIN,
                path=path,
                headers={PATHNAME_HEADER: path},
            )

        tenant = self.tenant_for(slug)
        headers = {CHURCH_SLUG_HEADER: tenant.slug}
        if tenant.id:
            headers[CHURCH_ID_HEADER] = tenant.id

        if self.route_table.is_tenant_agnostic(path):
            return Resolution(
                kind=ResolutionKind.TENANT_BYPASS,
                path=path,
                headers=headers,
                tenant=tenant,
            )
        namespace = f"{self.site_prefix}/{slug}"
        return Resolution(
            kind=ResolutionKind.TENANT_REWRITE,
            path=namespace + path,
            namespace=namespace,
            headers=headers,
            tenant=tenant,
        )
