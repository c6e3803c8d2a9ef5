"""
Fixed-window rate limiting on the `limits` library.

Each limiter is a FastAPI dependency keyed by limiter name and client IP.
Counters live in the storage named by RATE_LIMIT_STORAGE_URI.
"""
import asyncio
import logging
import math
import time

from fastapi import Request
from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from fitness_api.config import settings
from fitness_api.middleware.audit import client_ip
from fitness_api.utils.errors import RateLimitError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later"

storage = storage_from_string(settings.RATE_LIMIT_STORAGE_URI)
limiter = FixedWindowRateLimiter(storage)


def reset_rate_limits() -> None:
    """Clear every counter in the rate limit storage"""
    storage.reset()


class RateLimit:
    """
    Args:
        name: Namespace for the counters
        limit: Requests allowed per window
        window: Window length in seconds
        skip_successful: Only requests recorded through hit() count
    """

    def __init__(self, name: str, limit: int, window: int, skip_successful: bool = False):
        self.name = name
        self.limit = limit
        self.window = window
        self.skip_successful = skip_successful
        self.item = RateLimitItemPerSecond(limit, window, namespace=name)

    async def __call__(self, request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        ip = client_ip(request)
        if self.skip_successful:
            allowed = limiter.test(self.item, ip)
        else:
            allowed = limiter.hit(self.item, ip)
        if not allowed:
            self._reject(request, ip)

    async def hit(self, request: Request) -> None:
        """Count one request against the window (used for failed attempts)"""
        if settings.RATE_LIMIT_ENABLED:
            limiter.hit(self.item, client_ip(request))

    def _reject(self, request: Request, ip: str) -> None:
        stats = limiter.get_window_stats(self.item, ip)
        reset_time = int(stats.reset_time)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        logger.warning("Rate limit %s exceeded for %s on %s", self.item, ip, request.url.path)
        raise RateLimitError(
            RATE_LIMIT_MESSAGE,
            retry_after=retry_after,
            code="RATE_LIMIT_EXCEEDED",
            details={
                "retry_after": retry_after,
                "limit": self.limit,
                "remaining": stats.remaining,
                "reset_time": reset_time,
            },
        )


MINUTE = 60
HOUR = 60 * MINUTE

general_rate_limit = RateLimit(
    "general", settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS
)
auth_rate_limit = RateLimit("auth", 5, 15 * MINUTE)
login_rate_limit = RateLimit("login", 5, 15 * MINUTE, skip_successful=True)
register_rate_limit = RateLimit("register", 3, HOUR)
password_reset_rate_limit = RateLimit("password-reset", 3, HOUR)
email_rate_limit = RateLimit("email", 5, HOUR)
nutrition_rate_limit = RateLimit("nutrition", 50, 15 * MINUTE)
strict_rate_limit = RateLimit("strict", 10, 15 * MINUTE)


class ProgressiveDelay:
    """Slow down repeated failures: one second per prior failure, capped"""

    # Ceiling on counted failures, well above what max_delay needs
    CAPACITY = 1000

    def __init__(self, name: str = "auth-failures", window: int = 5 * MINUTE, step: float = 1.0,
                 max_delay: float = 5.0):
        self.step = step
        self.max_delay = max_delay
        self.item = RateLimitItemPerSecond(self.CAPACITY, window, namespace=name)

    def failures(self, request: Request) -> int:
        stats = limiter.get_window_stats(self.item, client_ip(request))
        return self.CAPACITY - stats.remaining

    async def __call__(self, request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        failures = self.failures(request)
        delay = min(failures * self.step, self.max_delay)
        if delay > 0:
            logger.info("Delaying %s by %ss after %d failures", client_ip(request), delay, failures)
            await asyncio.sleep(delay)

    async def record_failure(self, request: Request) -> None:
        if settings.RATE_LIMIT_ENABLED:
            limiter.hit(self.item, client_ip(request))

    async def reset(self, request: Request) -> None:
        limiter.clear(self.item, client_ip(request))


login_delay = ProgressiveDelay()
