from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.logging_config import append_json_line, get_logger
from app.runtime import Runtime, get_runtime
from app.schemas.send import SendRequest, SendResponse
from app.services.auth_service import require_token
from app.services.outbound_service import human_pause
from app.services.text_randomizer import randomize_text
from app.services.whatsapp_service import to_jid

logger = get_logger("send")


def enforce_rate_limit(request: Request, runtime: Runtime = Depends(get_runtime)) -> None:
    runtime.rate_limiter.check(request)


# Every route here can reach the bridge, so all of them share one per-client budget.
router = APIRouter(dependencies=[Depends(enforce_rate_limit)])


def _session_id(id: Optional[str]) -> str:
    return id or settings.default_session_id


@router.get("/")
async def root():
    return {"success": 1, "message": "Server connected"}


@router.get("/status")
async def session_status(id: Optional[str] = Query(default=None), runtime: Runtime = Depends(get_runtime)):
    session_id = _session_id(id)
    if await runtime.client.get_session(session_id) is not None:
        return {"success": 1, "status": 1, "message": "Session started"}
    return {"success": 1, "status": 0, "message": "Session not started"}


@router.get("/test")
async def send_test_message(
    id: Optional[str] = Query(default=None),
    typing: Optional[int] = Query(default=None, ge=0),
    runtime: Runtime = Depends(get_runtime),
):
    """Send a greeting to the configured developer phone."""
    session_id = _session_id(id)
    if await runtime.client.get_session(session_id) is None:
        return {"success": 1, "status": 0, "message": "Server not started"}

    if not settings.dev_phone:
        logger.warning("Test phone not defined")
        return JSONResponse(status_code=400, content={"success": 0, "message": "Test phone not defined"})

    phone = to_jid(settings.dev_phone)
    text = f"Hola, {settings.dev_name or 'Desarrollador'}"

    if typing:
        await runtime.client.send_typing(session_id, phone, typing)
    else:
        await human_pause(0.5, 1.5)

    await runtime.client.send_text(session_id, phone, randomize_text(text))
    logger.info("Test message sent", extra={"context": {"session_id": session_id}})
    return {"success": 1, "status": 1, "message": "Message sent", "phone": settings.dev_phone, "text": text}


@router.post(
    "/send",
    response_model=SendResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_token)],
)
async def send_message(
    body: SendRequest,
    id: Optional[str] = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
):
    """Operator send: text, image, voice note or video to a phone number."""
    session_id = _session_id(id)
    if await runtime.client.get_session(session_id) is None:
        return JSONResponse(status_code=404, content={"success": 0, "message": "Session not started"})

    to = to_jid(body.phone)
    if not to:
        return JSONResponse(status_code=400, content={"error": 1, "message": 'The "phone" parameter is required'})

    clean_text = str(body.text or "").strip()
    await human_pause(1.0, 3.0)
    safe_text = randomize_text(clean_text)

    if body.image_url:
        await runtime.client.send_image(session_id, to, body.image_url, text=safe_text)
        response = SendResponse(success=1, message="Message sent", phone=body.phone, text=body.text, image_url=body.image_url)
    elif body.audio_url:
        await runtime.client.send_voice_note(session_id, to, body.audio_url)
        response = SendResponse(success=1, message="Message sent", phone=body.phone, audio_url=body.audio_url)
    elif body.video_url:
        await runtime.client.send_video(session_id, to, body.video_url, text=safe_text)
        response = SendResponse(success=1, message="Message sent", phone=body.phone, text=body.text, video_url=body.video_url)
    else:
        await runtime.client.send_text(session_id, to, safe_text)
        response = SendResponse(success=1, message="Message sent", phone=body.phone, text=body.text)

    append_json_line(
        settings.message_log_path,
        {
            "phone": body.phone,
            "text": body.text,
            "imageUrl": body.image_url,
            "audioUrl": body.audio_url,
            "videoUrl": body.video_url,
            "date": datetime.now(timezone.utc).isoformat(),
        },
    )
    logger.info("Message sent", extra={"context": {"session_id": session_id, "phone": body.phone}})
    return response
