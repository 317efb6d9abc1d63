import asyncio
import random
from dataclasses import dataclass
from typing import Callable, Optional

from app.errors import PlatformError
from app.logging_config import get_logger
from app.services.alert_service import alert_critical
from app.services.echo_registry import EchoRegistry
from app.services.text_randomizer import debug_view, randomize_text
from app.services.whatsapp_service import WhatsAppClient

logger = get_logger("outbound_service")


@dataclass(frozen=True)
class SentMessage:
    message_id: Optional[str]
    text: str


class BotSender:
    """Single outbound path for bot-authored text.

    Randomizes the text, sends it, and registers the returned id so the echo
    is recognized as ours when it comes back through the inbound stream.
    """

    def __init__(
        self,
        client: WhatsAppClient,
        echoes: EchoRegistry,
        randomize: Callable[[str], str] = randomize_text,
    ):
        self.client = client
        self.echoes = echoes
        self.randomize = randomize

    async def send_text(self, session_id: str, to: str, text: str) -> SentMessage:
        """Raises PlatformError when the bridge does not accept the message."""
        text_to_send = self.randomize(text)
        try:
            message_id = await self.client.send_text(session_id, to, text_to_send)
        except PlatformError as e:
            logger.error(
                f"Bot send failed: {e}",
                extra={"context": {"session_id": session_id, "to": to, "status_code": e.status_code}},
            )
            await asyncio.to_thread(alert_critical, "WhatsApp send failed", {"to": to, "error": str(e)})
            raise

        self.echoes.register(message_id)
        logger.info(
            "Bot message sent",
            extra={"context": {"session_id": session_id, "to": to, "id": message_id, "raw": debug_view(text_to_send)}},
        )
        return SentMessage(message_id=message_id, text=text_to_send)


async def human_pause(low: float, high: float) -> None:
    """Sleep a random interval so sends do not arrive with machine regularity."""
    await asyncio.sleep(random.uniform(low, high))
