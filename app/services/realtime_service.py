import asyncio
from typing import Any

from fastapi import WebSocket

from app.logging_config import get_logger

logger = get_logger("realtime")


class RealtimeHub:
    """Fan-out of session lifecycle signals to connected websocket clients."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    @property
    def connections(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        logger.info("Realtime client connected", extra={"context": {"clients": self.connections}})

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)
        logger.info("Realtime client disconnected", extra={"context": {"clients": self.connections}})

    async def broadcast(self, event: str, data: dict[str, Any]) -> int:
        """Send to every client; clients that fail are dropped. Returns deliveries."""
        payload = {"event": event, "data": data}
        targets = list(self._connections)
        results = await asyncio.gather(*(ws.send_json(payload) for ws in targets), return_exceptions=True)
        delivered = 0
        for websocket, result in zip(targets, results):
            if isinstance(result, Exception):
                self._connections.discard(websocket)
            else:
                delivered += 1
        return delivered
