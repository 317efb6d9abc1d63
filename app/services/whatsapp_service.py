"""Client for the WhatsApp bridge that owns the actual platform connection."""

import re
from typing import Any, Optional

import httpx

from app.errors import PlatformError, SessionNotStartedError
from app.logging_config import get_logger

logger = get_logger("whatsapp_service")


def to_jid(value: Optional[str]) -> Optional[str]:
    """Phone number or address -> platform address (digits@s.whatsapp.net)."""
    if not value or isinstance(value, (dict, list, tuple)):
        return None
    text = str(value).strip()
    if not text:
        return None
    if "@" in text:
        return text
    digits = re.sub(r"\D", "", text)
    if not digits:
        return None
    return f"{digits}@s.whatsapp.net"


def extract_message_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    key = payload.get("key")
    if isinstance(key, dict) and key.get("id"):
        return str(key["id"])
    data = payload.get("data")
    if isinstance(data, dict):
        return extract_message_id(data)
    return None


class WhatsAppClient:
    """Async HTTP client for the bridge's session and send endpoints."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, session_id: str, json: Optional[dict] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise PlatformError(f"Bridge request failed: {e}") from e

        if response.status_code == 404:
            raise SessionNotStartedError(session_id)
        if response.status_code >= 400:
            raise PlatformError(
                f"Bridge returned {response.status_code} for {method} {path}",
                status_code=response.status_code,
                details=response.text[:500],
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def _send(self, session_id: str, kind: str, payload: dict) -> Optional[str]:
        result = await self._request("POST", f"/sessions/{session_id}/messages/{kind}", session_id, json=payload)
        message_id = extract_message_id(result)
        logger.info(
            "Bridge send ok",
            extra={"context": {"session_id": session_id, "kind": kind, "to": payload.get("to"), "id": message_id}},
        )
        return message_id

    async def send_text(self, session_id: str, to: str, text: str) -> Optional[str]:
        """Send text; returns the platform-assigned message id."""
        return await self._send(session_id, "text", {"to": to, "text": text})

    async def send_image(self, session_id: str, to: str, media: str, text: str = "") -> Optional[str]:
        return await self._send(session_id, "image", {"to": to, "text": text, "media": media})

    async def send_voice_note(self, session_id: str, to: str, media: str) -> Optional[str]:
        return await self._send(session_id, "voice-note", {"to": to, "media": media})

    async def send_video(self, session_id: str, to: str, media: str, text: str = "") -> Optional[str]:
        return await self._send(session_id, "video", {"to": to, "text": text, "media": media})

    async def send_typing(self, session_id: str, to: str, duration_ms: int) -> None:
        await self._request("POST", f"/sessions/{session_id}/typing", session_id, json={"to": to, "duration": duration_ms})

    async def get_session(self, session_id: str) -> Optional[dict]:
        """Session info, or None when the bridge has no such session."""
        try:
            result = await self._request("GET", f"/sessions/{session_id}", session_id)
        except SessionNotStartedError:
            return None
        return result if isinstance(result, dict) else {}

    async def delete_session(self, session_id: str) -> None:
        try:
            await self._request("DELETE", f"/sessions/{session_id}", session_id)
        except SessionNotStartedError:
            logger.info(f"Session {session_id} already gone on bridge")
