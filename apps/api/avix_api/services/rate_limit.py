"""Fixed-window request throttling.

``InMemoryRateLimiter`` keeps its counters in process memory, so limits apply per
worker. Deployments with several instances should provide a ``RateLimiter`` backed by
a shared counter store instead.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Protocol

from fastapi import HTTPException, Request, status

from ..core.config import settings


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


class RateLimiter(Protocol):
    def check(self, key: str) -> RateLimitDecision: ...


@dataclass
class _Window:
    count: int
    started_at: float


class InMemoryRateLimiter:
    """Single-instance limiter with periodic eviction of stale windows."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = 300.0,
    ) -> None:
        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()
        self._windows: Dict[str, _Window] = {}

    def check(self, key: str) -> RateLimitDecision:
        now = self._clock()
        self._evict_expired(now)

        window = self._windows.get(key)
        if window is None or now - window.started_at > self._window:
            self._windows[key] = _Window(count=1, started_at=now)
            return RateLimitDecision(True, self._limit, self._limit - 1, now + self._window)

        window.count += 1
        reset_at = window.started_at + self._window
        if window.count > self._limit:
            return RateLimitDecision(False, self._limit, 0, reset_at)
        return RateLimitDecision(True, self._limit, self._limit - window.count, reset_at)

    def _evict_expired(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        expired = [key for key, entry in self._windows.items() if now - entry.started_at > self._window * 2]
        for key in expired:
            self._windows.pop(key, None)


def client_ip(request: Request) -> str:
    """Best-effort client address behind common proxies."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("cf-connecting-ip", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            return value
    return request.client.host if request.client else "unknown"


def enforce(limiter: RateLimiter, key: str) -> RateLimitDecision:
    """Raise a 429 carrying ``Retry-After`` when the key is over quota."""

    decision = limiter.check(key)
    if not decision.allowed:
        retry_after = max(0, math.ceil(decision.reset_at - time.time()))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "Troppe richieste. Riprova più tardi.",
                "code": "RATE_LIMIT_EXCEEDED",
                "retryAfter": retry_after,
            },
            headers={"Retry-After": str(retry_after), **decision.headers()},
        )
    return decision


calendar_limiter: RateLimiter = InMemoryRateLimiter(settings.rate_limit_calendar, settings.rate_limit_window_seconds)
