from typing import Callable

from fastapi import Depends, HTTPException, Request, Response, status

from ekkle.core.ip import client_ip_key
from ekkle.core.rate_limit import (
    RATE_LIMIT_POLICIES,
    RateLimitExceeded,
    RateLimitResult,
    RateLimitStore,
    build_rate_limit_store,
    limiter_for_policy,
)


def get_rate_limit_store(request: Request) -> RateLimitStore:
    store = getattr(request.app.state, "rate_limit_store", None)
    if store is None:
        store = build_rate_limit_store()
        request.app.state.rate_limit_store = store
    return store


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }


def rate_limited(policy_name: str, *, key_func: Callable[[Request], str] = client_ip_key):
    """
    Dependency enforcing a named rate limit policy, keyed by client IP by default.
    """
    if policy_name not in RATE_LIMIT_POLICIES:
        raise KeyError(f"Unknown rate limit policy: {policy_name}")

    def dependency(
        request: Request,
        response: Response,
        store: RateLimitStore = Depends(get_rate_limit_store),
    ) -> RateLimitResult:
        limiter = limiter_for_policy(store, policy_name)
        try:
            result = limiter.hit(key_func(request))
        except RateLimitExceeded as exc:
            headers = _rate_limit_headers(exc.result)
            headers["Retry-After"] = str(exc.retry_after)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Muitas tentativas. Tente novamente em {exc.retry_after} segundos.",
                headers=headers,
            ) from exc
        response.headers.update(_rate_limit_headers(result))
        return result

    return dependency
