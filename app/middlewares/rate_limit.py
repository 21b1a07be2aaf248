import time
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Depends, Request, Response

from app.config.settings import settings
from app.providers.counter_store import (
    CounterStore,
    CounterStoreError,
    InMemoryCounterStore,
    RedisCounterStore,
)
from app.utils.errors import RateLimitExceededError
from app.utils.logging import get_logger

logger = get_logger()


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int


class RateLimiter:
    """Fixed-window request counter over an injected CounterStore."""

    def __init__(self, store: CounterStore, limit: int, window_seconds: int, scope: str):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.scope = scope

    async def hit(self, client_key: str) -> RateLimitResult:
        try:
            count, reset_in = await self.store.increment(
                f"{self.scope}:{client_key}", self.window_seconds
            )
        except CounterStoreError as e:
            # Counter backend down: let the request through
            logger.warning(f"Rate limit store unavailable for {self.scope}: {str(e)}")
            return RateLimitResult(True, self.limit, self.limit, 0, 0)

        return RateLimitResult(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=int(time.time()) + reset_in,
            retry_after=reset_in,
        )


def build_counter_store() -> CounterStore:
    """Create the store configured by RATE_LIMIT_BACKEND. Called from the app lifespan."""
    if settings.RATE_LIMIT_BACKEND == "redis":
        return RedisCounterStore(settings.redis_url)
    return InMemoryCounterStore()


def get_counter_store(request: Request) -> CounterStore:
    """Dependency returning the store held in ``app.state``"""
    return request.app.state.counter_store


def client_identifier(
    request: Request, trusted_proxies: Optional[Iterable[str]] = None
) -> str:
    """
    Key a client by its address.

    Forwarding headers are only read when the direct peer is a configured
    proxy; otherwise any caller could pick its own key.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = settings.TRUSTED_PROXY_HOSTS if trusted_proxies is None else trusted_proxies
    if peer not in trusted:
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return peer


def rate_limit(limit: int, window_seconds: int, scope: str):
    """Build a route dependency enforcing ``limit`` requests per window per client."""

    async def dependency(
        request: Request,
        response: Response,
        store: CounterStore = Depends(get_counter_store),
    ) -> RateLimitResult:
        limiter = RateLimiter(store, limit, window_seconds, scope)
        client_key = client_identifier(request)
        result = await limiter.hit(client_key)
        if not result.allowed:
            logger.warning(f"Rate limit exceeded on {request.url.path} by {client_key}")
            raise RateLimitExceededError(limit=result.limit, retry_after=result.retry_after)

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_at)
        return result

    return dependency


cron_rate_limit = rate_limit(
    settings.CRON_RATE_LIMIT_REQUESTS, settings.CRON_RATE_LIMIT_WINDOW_SECONDS, "cron"
)
api_rate_limit = rate_limit(
    settings.API_RATE_LIMIT_REQUESTS, settings.API_RATE_LIMIT_WINDOW_SECONDS, "api"
)
