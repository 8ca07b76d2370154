"""
Request rate limiting.

`limiter` is the slowapi limiter shared by main.py and route decorators.
`FailedLoginTracker` counts failed login attempts per client IP in a moving
window held in process memory; counts reset on restart.
"""

import logging
import time

from fastapi import HTTPException, Request
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])

FAILED_LOGIN_NAMESPACE = "failed-login"


def get_client_ip(request: Request) -> str:
    """Client IP as seen through proxies: X-Forwarded-For, X-Real-IP, CF-Connecting-IP, then the peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class FailedLoginTracker:
    """Moving window of failed logins per key, built on the limits library slowapi uses."""

    def __init__(self, max_attempts: int, window_seconds: int):
        self.item = RateLimitItemPerSecond(max_attempts, window_seconds)
        self.storage = MemoryStorage()
        self.window = MovingWindowRateLimiter(self.storage)

    def check(self, key: str) -> None:
        """Raise 429 when the key has used up its failed attempts in the current window."""
        if self.window.test(self.item, FAILED_LOGIN_NAMESPACE, key):
            return
        reset_time, _ = self.window.get_window_stats(self.item, FAILED_LOGIN_NAMESPACE, key)
        retry_after = max(1, int(reset_time - time.time()))
        logger.warning(f"Failed login limit reached for {key}")
        raise HTTPException(
            status_code=429,
            detail=f"Too many failed login attempts. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )

    def record_failure(self, key: str) -> None:
        self.window.hit(self.item, FAILED_LOGIN_NAMESPACE, key)

    def reset(self) -> None:
        self.storage.reset()


failed_login_tracker = FailedLoginTracker(
    max_attempts=settings.login_max_failed_attempts,
    window_seconds=settings.login_failed_window_seconds,
)
