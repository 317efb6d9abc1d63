from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

STATUS_BROADCAST_JID = "status@broadcast"
GROUP_JID_SUFFIX = "@g.us"


class MessageKey(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    remote_jid: str = Field(validation_alias=AliasChoices("remoteJid", "remote_jid"))
    from_me: bool = Field(default=False, validation_alias=AliasChoices("fromMe", "from_me"))
    id: Optional[str] = None
    participant: Optional[str] = None


class InboundEvent(BaseModel):
    """A message event as delivered by the WhatsApp bridge."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(default="default", validation_alias=AliasChoices("sessionId", "session_id"))
    key: MessageKey
    message: Optional[dict[str, Any]] = None
    participant: Optional[str] = None
    push_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("pushName", "push_name"))
    message_timestamp: Optional[Union[int, float, dict[str, Any]]] = Field(
        default=None,
        validation_alias=AliasChoices("messageTimestamp", "message_timestamp"),
    )

    @property
    def is_status_broadcast(self) -> bool:
        return self.key.remote_jid == STATUS_BROADCAST_JID

    @property
    def is_group(self) -> bool:
        return self.key.remote_jid.endswith(GROUP_JID_SUFFIX)

    @property
    def sender_participant(self) -> Optional[str]:
        return self.key.participant or self.participant

    @property
    def sent_at(self) -> datetime:
        """Platform timestamp; protobuf longs arrive as {"low": ..., "high": ...}."""
        value = self.message_timestamp
        if isinstance(value, dict):
            value = value.get("low")
        if isinstance(value, (int, float)) and value > 0:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return datetime.now(timezone.utc)


class SessionEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event: Literal["connected", "disconnected", "qr"]
    session_id: str = Field(validation_alias=AliasChoices("sessionId", "session_id"))
    qr: Optional[str] = None


class WebhookResponse(BaseModel):
    success: bool
    message: str
    queued: int = 0
