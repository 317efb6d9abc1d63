import asyncio
import hmac
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from app.config import settings
from app.logging_config import get_logger
from app.runtime import Runtime, get_runtime
from app.schemas.webhook import InboundEvent, SessionEvent, WebhookResponse

logger = get_logger("webhook")

router = APIRouter(prefix="/webhook")

SESSION_DELETE_DELAY_SECONDS = 1.0


def require_bridge_secret(x_bridge_token: Optional[str] = Header(default=None, alias="X-Bridge-Token")) -> None:
    expected = settings.webhook_secret
    if not expected:
        return
    if not x_bridge_token or not hmac.compare_digest(x_bridge_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bridge token")


def _unpack_events(payload: Any) -> list[Any]:
    """Bridges post one event, a list, or {"messages": [...]}."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("messages"), list):
        session_id = payload.get("sessionId") or payload.get("session_id")
        items = []
        for item in payload["messages"]:
            if isinstance(item, dict) and session_id and "sessionId" not in item and "session_id" not in item:
                item = {**item, "sessionId": session_id}
            items.append(item)
        return items
    return [payload]


@router.post("/message", response_model=WebhookResponse, dependencies=[Depends(require_bridge_secret)])
async def receive_message(request: Request, runtime: Runtime = Depends(get_runtime)):
    """Queue inbound message events for the dispatcher; routing happens off-request."""
    try:
        payload = await request.json()
    except ValueError:
        return WebhookResponse(success=False, message="Invalid JSON")

    queued = 0
    invalid = 0
    for raw in _unpack_events(payload):
        try:
            event = InboundEvent.model_validate(raw)
        except ValidationError as e:
            invalid += 1
            logger.warning("Invalid inbound event skipped", extra={"context": {"errors": e.errors()[:3]}})
            continue
        if runtime.dispatcher.submit(event):
            queued += 1

    message = f"Queued {queued} event(s)"
    if invalid:
        message += f", skipped {invalid} invalid"
    return WebhookResponse(success=queued > 0 or invalid == 0, message=message, queued=queued)


async def _forget_session(runtime: Runtime, session_id: str) -> None:
    # The bridge may still hold the credential files for a moment after the drop.
    await asyncio.sleep(SESSION_DELETE_DELAY_SECONDS)
    try:
        await runtime.client.delete_session(session_id)
        logger.info(f"Session and credentials deleted for: {session_id}")
    except Exception as e:
        logger.error(f"Failed to delete session {session_id}: {e}")
    await runtime.hub.broadcast("logout", {"sessionId": session_id})


@router.post("/session", response_model=WebhookResponse, dependencies=[Depends(require_bridge_secret)])
async def receive_session_event(
    event: SessionEvent,
    background_tasks: BackgroundTasks,
    runtime: Runtime = Depends(get_runtime),
):
    """Forward bridge lifecycle signals to realtime subscribers."""
    logger.info(f"Session event: {event.event}", extra={"context": {"session_id": event.session_id}})

    if event.event == "connected":
        await runtime.hub.broadcast("login", {"success": 1, "sessionId": event.session_id})
    elif event.event == "qr":
        await runtime.hub.broadcast("qr", {"qr": event.qr, "sessionId": event.session_id})
    else:
        background_tasks.add_task(_forget_session, runtime, event.session_id)

    return WebhookResponse(success=True, message=f"Session event {event.event} forwarded")
