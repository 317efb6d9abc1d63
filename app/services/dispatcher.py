import asyncio
from typing import Optional

from app.logging_config import get_logger
from app.schemas.webhook import InboundEvent
from app.services.message_router import MessageRouter

logger = get_logger("dispatcher")

_CLOSE = object()


class EventDispatcher:
    """Single consumer of inbound events, processed in arrival order."""

    def __init__(self, router: MessageRouter, maxsize: int = 0):
        self.router = router
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, event: InboundEvent) -> bool:
        if self._closed:
            logger.warning("Dispatcher closed, event dropped", extra={"context": {"message_id": event.key.id}})
            return False
        self._queue.put_nowait(event)
        return True

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._closed = False
            self._task = asyncio.create_task(self.run())
            logger.info("Event dispatcher started")

    async def run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _CLOSE:
                    return
                await self.router.handle_event(item)
            except Exception as exc:
                logger.error("Dispatcher failed on event", extra={"context": {"error": str(exc)}})
            finally:
                self._queue.task_done()

    async def close(self, timeout: float = 10.0) -> None:
        """Stop accepting events and drain what is already queued."""
        self._closed = True
        if self._task is None:
            return
        self._queue.put_nowait(_CLOSE)
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Dispatcher drain timed out, abandoning queued events", extra={"context": {"pending": self.pending}})
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
