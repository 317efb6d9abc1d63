import time
from typing import Callable

from fastapi import HTTPException, Request, status


class FixedWindowRateLimiter:
    """In-memory request counter per client key, reset every window."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, dict] = {}

    def _purge(self, now_ts: float) -> None:
        if len(self._windows) < 5000:
            return
        expired = [key for key, item in self._windows.items() if item["expires_at"] <= now_ts]
        for key in expired:
            self._windows.pop(key, None)

    def hit(self, key: str) -> tuple[bool, int]:
        """Count one request. Returns (allowed, seconds until the window resets)."""
        now_ts = self._clock()
        self._purge(now_ts)

        window = self._windows.get(key)
        if not window or window["expires_at"] <= now_ts:
            window = {"count": 0, "expires_at": now_ts + self.window_seconds}
            self._windows[key] = window
        window["count"] += 1
        retry_after = max(int(window["expires_at"] - now_ts), 0)
        return window["count"] <= self.limit, retry_after

    def check(self, request: Request) -> None:
        """Raise 429 when the calling client is over its limit."""
        key = request.client.host if request.client else "unknown"
        allowed, retry_after = self.hit(key)
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests, please try again later.",
                headers={"Retry-After": str(retry_after)},
            )
