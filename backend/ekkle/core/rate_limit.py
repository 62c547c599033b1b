"""
Fixed-window rate limiting behind a swappable store.

Counters live in a RateLimitStore so the in-process map used in development
can be replaced by Redis without touching call sites. Limiters never reach
for a module-level store; the application owns one and hands it out.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from ekkle.core.config import settings
from ekkle.core.metrics import record_rate_limit_decision


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowState:
    count: int
    resets_in: float


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_after: float

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset_after))

    @property
    def reset_at(self) -> int:
        return int(time.time() + self.reset_after)


class RateLimitExceeded(Exception):
    """Raised when a key has used up its window."""

    def __init__(self, result: RateLimitResult, *, policy: str | None = None) -> None:
        self.result = result
        self.policy = policy
        super().__init__(f"Rate limit exceeded. Try again in {result.retry_after}s")

    @property
    def retry_after(self) -> int:
        return self.result.retry_after


class RateLimitStore(Protocol):
    @property
    def backend_name(self) -> str:
        ...

    def increment(self, key: str, window_seconds: float) -> WindowState:
        ...

    def sweep(self) -> int:
        ...

    def reset(self) -> None:
        ...


@dataclass
class _Window:
    count: int
    ends_at: float


class InMemoryRateLimitStore:
    """
    Process-local counters keyed by string.

    Concurrent increments of the same key are not serialized, so a burst
    may slip a few extra calls through. Expired windows are swept at most
    once per sweep interval, piggybacking on increments.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 300.0,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._windows: dict[str, _Window] = {}
        self._last_sweep = clock()

    @property
    def backend_name(self) -> str:
        return "memory"

    def increment(self, key: str, window_seconds: float) -> WindowState:
        now = self._clock()
        if now - self._last_sweep >= self._sweep_interval:
            self._sweep(now)
        window = self._windows.get(key)
        if window is None or window.ends_at <= now:
            window = _Window(count=1, ends_at=now + window_seconds)
            self._windows[key] = window
            return WindowState(count=1, resets_in=float(window_seconds))
        window.count += 1
        return WindowState(count=window.count, resets_in=window.ends_at - now)

    def sweep(self) -> int:
        return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        self._last_sweep = now
        expired = [key for key, window in list(self._windows.items()) if window.ends_at <= now]
        for key in expired:
            self._windows.pop(key, None)
        return len(expired)

    def reset(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)


class RedisRateLimitStore:
    """
    Shared counters for multi-instance deployments. Redis key expiry closes
    the window, so sweeping is a no-op.
    """

    def __init__(self, url: str | None = None, *, namespace: str | None = None, client=None) -> None:
        if client is None:
            try:
                import redis  # type: ignore
            except Exception as exc:  # pragma: no cover - optional dependency
                raise RuntimeError("redis package is required for Redis rate limit backend") from exc
            if not url:
                raise ValueError("A Redis URL or client is required")
            client = redis.Redis.from_url(url, decode_responses=True)
        self._client = client
        self._namespace = namespace or settings.RATE_LIMIT_NAMESPACE

    @property
    def backend_name(self) -> str:
        return "redis"

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def increment(self, key: str, window_seconds: float) -> WindowState:
        redis_key = self._key(key)
        window_ms = max(1, int(window_seconds * 1000))
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.pttl(redis_key)
        count, ttl_ms = pipe.execute()
        if ttl_ms is None or ttl_ms < 0:
            self._client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms
        return WindowState(count=int(count), resets_in=ttl_ms / 1000.0)

    def sweep(self) -> int:
        return 0

    def reset(self) -> None:
        for key in self._client.scan_iter(f"{self._namespace}:*"):
            self._client.delete(key)


def build_rate_limit_store(backend_name: str | None = None) -> RateLimitStore:
    backend_name = (backend_name or settings.RATE_LIMIT_BACKEND or "memory").lower()
    if backend_name == "redis":
        if not settings.REDIS_URL:
            logger.warning("Redis rate limiting enabled but REDIS_URL is missing; using memory store.")
        else:
            try:
                return RedisRateLimitStore(settings.REDIS_URL)
            except Exception as exc:
                logger.warning("Failed to initialize Redis rate limit store; using memory store. %s", exc)
    elif backend_name != "memory":
        logger.warning("Unknown rate limit backend %r; using memory store.", backend_name)
    return InMemoryRateLimitStore(
        sweep_interval_seconds=float(settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS),
    )


class RateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        *,
        limit: int,
        window_seconds: float,
        prefix: str = "",
        policy: str | None = None,
    ) -> None:
        if limit <= 0 or window_seconds <= 0:
            raise ValueError("limit and window_seconds must be positive")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix
        self.policy = policy

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    def check(self, key: str) -> RateLimitResult:
        state = self.store.increment(self._key(key), self.window_seconds)
        allowed = state.count <= self.limit
        record_rate_limit_decision(self.policy, allowed)
        return RateLimitResult(
            success=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - state.count),
            reset_after=max(0.0, state.resets_in),
        )

    def hit(self, key: str) -> RateLimitResult:
        result = self.check(key)
        if not result.success:
            raise RateLimitExceeded(result, policy=self.policy)
        return result


@dataclass(frozen=True)
class RateLimitPolicy:
    prefix: str
    limit: int
    window_seconds: int


RATE_LIMIT_POLICIES: dict[str, RateLimitPolicy] = {
    "whatsapp": RateLimitPolicy(prefix="whatsapp", limit=10, window_seconds=60),
    "api": RateLimitPolicy(prefix="api", limit=30, window_seconds=60),
    "church_registration": RateLimitPolicy(prefix="register:church", limit=5, window_seconds=60 * 60),
    "member_registration": RateLimitPolicy(prefix="register:member", limit=10, window_seconds=60 * 60),
    "login": RateLimitPolicy(prefix="login", limit=5, window_seconds=15 * 60),
    "password_reset": RateLimitPolicy(prefix="password:reset", limit=3, window_seconds=60 * 60),
    "photo_upload": RateLimitPolicy(prefix="upload:photo", limit=10, window_seconds=60 * 60),
}


def limiter_for_policy(store: RateLimitStore, policy_name: str) -> RateLimiter:
    policy = RATE_LIMIT_POLICIES.get(policy_name)
    if policy is None:
        raise KeyError(f"Unknown rate limit policy: {policy_name}")
    return RateLimiter(
        store,
        limit=policy.limit,
        window_seconds=policy.window_seconds,
        prefix=policy.prefix,
        policy=policy_name,
    )
