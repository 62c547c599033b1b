"""
Per-request church context derived from the host name.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TenantContext:
    """
    The church a request is scoped to. Never persisted; rebuilt per request.
    """

    slug: str
    id: Optional[str] = None
