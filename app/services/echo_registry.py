import threading
import time
from typing import Callable


class EchoRegistry:
    """Message ids this service sent itself, awaiting their echo.

    The platform reports our own sends back through the inbound stream. An id
    is registered right after the send succeeds and consumed exactly once when
    its echo arrives. Ids never echoed are forgotten after ``ttl_seconds``.
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._deadlines: dict[str, float] = {}
        self._lock = threading.Lock()

    def register(self, message_id: str | None) -> None:
        if not message_id:
            return
        with self._lock:
            now = self._clock()
            self._purge(now)
            self._deadlines[message_id] = now + self.ttl_seconds

    def consume_if_present(self, message_id: str | None) -> bool:
        """Remove the id and return True if it was outstanding."""
        if not message_id:
            return False
        with self._lock:
            self._purge(self._clock())
            return self._deadlines.pop(message_id, None) is not None

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge(self._clock())

    def _purge(self, now: float) -> int:
        expired = [key for key, deadline in self._deadlines.items() if deadline <= now]
        for key in expired:
            del self._deadlines[key]
        return len(expired)

    def __contains__(self, message_id: object) -> bool:
        with self._lock:
            self._purge(self._clock())
            return message_id in self._deadlines

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._deadlines)
