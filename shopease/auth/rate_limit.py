"""
Per-IP request limiting for the auth routes.

A sliding window kept in memory; limits reset when the process restarts.
"""
import asyncio
import time
from collections import defaultdict, deque
from typing import Callable, Deque, DefaultDict

from fastapi import Request

from shopease.auth.exceptions import RateLimited


class RateLimiter:
    """Allows at most `max_requests` per client IP every `window_seconds`."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: DefaultDict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._clock = clock
        self._cleanup_interval = window_seconds
        self._last_cleanup = clock()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    @staticmethod
    def client_key(request: Request) -> str:
        return request.client.host if request.client else "anonymous"

    def _cleanup_old_keys(self, now: float) -> None:
        """Forget clients whose hits have all left the window."""
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        window_start = now - self.window_seconds
        keys_to_remove = []

        for key, hits in self._hits.items():
            while hits and hits[0] <= window_start:
                hits.popleft()
            if not hits:
                keys_to_remove.append(key)

        for key in keys_to_remove:
            del self._hits[key]

    async def hit(self, key: str) -> None:
        """Record a request for `key`, raising RateLimited when over the limit."""
        now = self._clock()
        window_start = now - self.window_seconds
        async with self._lock:
            self._cleanup_old_keys(now)
            hits = self._hits[key]
            while hits and hits[0] <= window_start:
                hits.popleft()
            if len(hits) >= self.max_requests:
                retry_after = max(1, int(self.window_seconds - (now - hits[0])))
                raise RateLimited(retry_after)
            hits.append(now)

    def reset(self) -> None:
        self._hits.clear()


async def rate_limit(request: Request) -> None:
    """Router dependency applying the app's limiter to every auth route."""
    limiter: RateLimiter = request.app.state.rate_limiter
    await limiter.hit(limiter.client_key(request))
