"""
Rate Limiting
=============

Fixed-window request limiter keyed by client address, applied to the
screenshot endpoint.
"""

from typing import Callable, Dict, Tuple
import math
import time

from fastapi import HTTPException, Request

from screenshot_service.config.logging import get_logger

logger = get_logger(__name__)


class FixedWindowRateLimiter:
    """Allows ``max_requests`` per ``window_seconds`` for each key."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def hit(self, key: str) -> Tuple[bool, float]:
        """
        Count a request for ``key``.

        Returns:
            ``(allowed, retry_after_seconds)``
        """
        now = self._clock()
        window_start, count = self._windows.get(key, (now, 0))
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0

        if count >= self.max_requests:
            self._windows[key] = (window_start, count)
            return False, window_start + self.window_seconds - now

        self._windows[key] = (window_start, count + 1)
        self._prune(now)
        return True, 0.0

    def _prune(self, now: float) -> None:
        if len(self._windows) < 1024:
            return
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]


async def screenshot_rate_limit(request: Request) -> None:
    """Dependency enforcing the screenshot rate limit."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return

    client = request.client.host if request.client else "unknown"
    allowed, retry_after = limiter.hit(client)
    if not allowed:
        logger.warning("Rate limit exceeded", client=client)
        raise HTTPException(
            status_code=429,
            detail={
                "error": "Screenshot rate limit exceeded",
                "message": "Please wait before making more screenshot requests",
            },
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )
