from app.schemas.send import SendRequest, SendResponse
from app.schemas.webhook import InboundEvent, MessageKey, SessionEvent, WebhookResponse

__all__ = ["InboundEvent", "MessageKey", "SessionEvent", "WebhookResponse", "SendRequest", "SendResponse"]
