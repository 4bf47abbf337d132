"""
security/rate_limiter.py
------------------------
Sliding-window rate limiting for the login endpoint.

Counts attempts per client address inside a time window; once the limit is
reached further attempts are answered with 429 until old ones expire.
The limiter is in-memory, so each worker process keeps its own counts.
"""

import time
from collections import defaultdict
from typing import Callable, Dict, List

from fastapi import Depends, HTTPException, Request, status

from config import ENV, RATE_LIMIT_ATTEMPTS, RATE_LIMIT_WINDOW_SECONDS
from utils.logger import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Attempts per key inside a sliding window.

    Configuration (via env):
        RATE_LIMIT_ATTEMPTS: Max attempts per window (default: 5).
        RATE_LIMIT_WINDOW_SECONDS: Window duration in seconds (default: 60).

    A limiter built with ``enabled=False`` (the default when ``ENV=test``)
    lets everything through.
    """

    def __init__(
        self,
        max_attempts: int = RATE_LIMIT_ATTEMPTS,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        enabled: bool = ENV != "test",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.enabled = enabled
        self.clock = clock
        # {key: [timestamp1, timestamp2, ...]}
        self._attempts: Dict[str, List[float]] = defaultdict(list)

    def _cleanup(self, now: float) -> None:
        """Remove expired timestamps, and keys left with none."""
        cutoff = now - self.window_seconds
        for key in list(self._attempts):
            recent = [t for t in self._attempts[key] if t > cutoff]
            if recent:
                self._attempts[key] = recent
            else:
                del self._attempts[key]

    def hit(self, key: str) -> bool:
        """Record an attempt; False when the key is already at its limit."""
        if not self.enabled:
            return True
        now = self.clock()
        self._cleanup(now)
        if len(self._attempts.get(key, ())) >= self.max_attempts:
            return False
        self._attempts[key].append(now)
        return True

    def reset(self) -> None:
        self._attempts.clear()


def get_login_limiter(request: Request) -> RateLimiter:
    """The limiter owned by the running app, created at startup in main.py."""
    return request.app.state.login_limiter


async def limit_login(request: Request, limiter: RateLimiter = Depends(get_login_limiter)) -> None:
    """FastAPI dependency guarding the login route, keyed by client address."""
    client = request.client.host if request.client else "unknown"
    if not limiter.hit(f"login:{client}"):
        logger.warning(f"Rate limit hit for {client} on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts, try again later",
        )
