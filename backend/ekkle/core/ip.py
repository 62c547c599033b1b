"""
Client address helpers shared by the rate limiter and the tenant resolver.

Forwarded headers (client IP and ``x-forwarded-host``) are only believed
when proxy trust is switched on and the direct peer is on the
``TRUSTED_PROXY_IPS`` allow-list.
"""

from __future__ import annotations

from ipaddress import ip_address, ip_network
from typing import Iterable, Optional

from starlette.requests import Request

from ekkle.core.config import settings

UNKNOWN_CLIENT = "unknown"


def _parse_ip(value: Optional[str]) -> Optional[str]:
    try:
        return str(ip_address(value.strip())) if value else None
    except ValueError:
        return None


def _peer_address(request: Request) -> Optional[str]:
    return _parse_ip(request.client.host if request.client else None)


def _in_any_network(address: str, networks: Iterable[str]) -> bool:
    candidate = ip_address(address)
    for entry in networks:
        try:
            if candidate in ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def proxy_headers_trusted(request: Request) -> bool:
    if not settings.TRUST_PROXY_HEADERS:
        return False
    # An empty allow-list trusts no peer.
    peer = _peer_address(request)
    return peer is not None and _in_any_network(peer, settings.TRUSTED_PROXY_IPS)


def extract_client_ip(request: Request) -> Optional[str]:
    """
    The first parseable address from the trusted IP headers, in configured
    order, or the direct peer.
    """
    if proxy_headers_trusted(request):
        for header in settings.TRUSTED_IP_HEADERS:
            forwarded = (_parse_ip(part) for part in (request.headers.get(header) or "").split(","))
            found = next((address for address in forwarded if address), None)
            if found:
                return found
    return _peer_address(request)


def client_ip_key(request: Request) -> str:
    """Rate limit key. Peers without a parseable address share one bucket."""
    return extract_client_ip(request) or UNKNOWN_CLIENT
