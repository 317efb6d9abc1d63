from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models import GroupMessage, Message, MessageSource

IGNORED_MESSAGE_TYPES = frozenset({"protocolMessage", "senderKeyDistributionMessage"})

_PLACEHOLDERS = {
    "audioMessage": "[Audio]",
    "stickerMessage": "[Sticker]",
    "contactMessage": "[Contact]",
    "locationMessage": "[Location]",
}


def get_message_type(message: Optional[dict]) -> str:
    if not message:
        return "unknown"
    return next(iter(message), "unknown")


def extract_message_text(message: Optional[dict]) -> Optional[str]:
    """Best-effort text for any inbound content.

    Media without a caption and unknown types become a bracketed placeholder.
    Returns None for protocol-level messages that carry no content.
    """
    message = message or {}
    text = message.get("conversation")
    if not text:
        extended = message.get("extendedTextMessage") or {}
        text = extended.get("text") if isinstance(extended, dict) else None
    if text:
        return str(text)

    message_type = get_message_type(message)
    if message_type in IGNORED_MESSAGE_TYPES:
        return None

    payload: Any = message.get(message_type)
    payload = payload if isinstance(payload, dict) else {}

    if message_type == "imageMessage":
        return payload.get("caption") or "[Image]"
    if message_type == "videoMessage":
        return payload.get("caption") or "[Video]"
    if message_type == "documentMessage":
        return payload.get("fileName") or "[Document]"
    if message_type in _PLACEHOLDERS:
        return _PLACEHOLDERS[message_type]
    return f"[Message type: {message_type}]"


def is_placeholder_text(text: Optional[str]) -> bool:
    """Empty text or anything starting with "[" gets no bot reply."""
    cleaned = (text or "").strip()
    return not cleaned or cleaned.startswith("[")


def save_message(
    db: Session,
    user_id: int,
    message_text: Optional[str],
    source: MessageSource,
    *,
    wa_message_id: Optional[str] = None,
    message_type: Optional[str] = None,
    sent_at: Optional[datetime] = None,
) -> Message:
    """Append a message to a contact conversation."""
    message = Message(
        user_id=user_id,
        message_text=message_text,
        source=MessageSource(source).value,
        wa_message_id=wa_message_id,
        message_type=message_type,
        sent_at=sent_at,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message


def save_group_message(
    db: Session,
    group_id: int,
    sender_jid: Optional[str],
    message_text: Optional[str],
    source: MessageSource,
    *,
    sender_name: Optional[str] = None,
    wa_message_id: Optional[str] = None,
    message_type: Optional[str] = None,
    sent_at: Optional[datetime] = None,
) -> GroupMessage:
    message = GroupMessage(
        group_id=group_id,
        sender_jid=sender_jid,
        sender_name=sender_name,
        message_text=message_text,
        source=MessageSource(source).value,
        wa_message_id=wa_message_id,
        message_type=message_type,
        sent_at=sent_at,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message
