"""
Contract for the session-refresh step that runs before tenant resolution.

Session renewal belongs to the auth provider. The resolver only needs to
know whether the step produced a redirect and which cookies it set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response


@dataclass(frozen=True)
class SessionOutcome:
    redirect_url: Optional[str] = None
    status_code: int = 307
    # Raw Set-Cookie header values, copied verbatim.
    set_cookies: Sequence[str] = ()

    @property
    def is_redirect(self) -> bool:
        return self.redirect_url is not None

    def apply_cookies(self, response: Response) -> Response:
        for cookie in self.set_cookies:
            response.headers.append("set-cookie", cookie)
        return response

    def to_response(self) -> Response:
        if self.redirect_url is None:
            raise ValueError("Session outcome is not a redirect")
        response = RedirectResponse(self.redirect_url, status_code=self.status_code)
        return self.apply_cookies(response)


class SessionRefresher(Protocol):
    async def refresh(self, request: Request) -> SessionOutcome:
        ...


class PassThroughSessionRefresher:
    """Used when no auth provider is wired in: never redirects, sets nothing."""

    async def refresh(self, request: Request) -> SessionOutcome:
        return SessionOutcome()
