import asyncio
import random
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import MessageSource
from app.services.alert_service import alert_error
from app.services.conversation_service import TimedOutUser, check_agent_timeouts
from app.services.message_service import save_message
from app.services.outbound_service import BotSender
from app.services.state_machine import MSG_AGENT_TIMEOUT

logger = get_logger("agent_timeout")


class AgentTimeoutSupervisor:
    """Returns contacts to the menu when no agent has replied in time."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        sender: BotSender,
        *,
        timeout_minutes: int = 30,
        interval_seconds: float = 60.0,
        pause_range: tuple[float, float] = (0.5, 1.5),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.sender = sender
        self.timeout_minutes = timeout_minutes
        self.interval_seconds = max(interval_seconds, 0.1)
        self.pause_range = pause_range
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Agent timeout supervisor started", extra={"context": {"interval": self.interval_seconds}})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Agent timeout tick failed", extra={"context": {"error": str(exc)}})
                await asyncio.to_thread(alert_error, "Agent timeout tick failed", {"error": str(exc)})

    async def run_once(self) -> dict:
        """One sweep: reset stale handoffs, then notify each user in turn."""
        db = self.session_factory()
        try:
            try:
                timed_out = check_agent_timeouts(db, self.timeout_minutes)
                db.commit()
            except Exception:
                db.rollback()
                raise

            results = {"total": len(timed_out), "notified": 0, "failed": 0}
            for index, user in enumerate(timed_out):
                if index:
                    await self._sleep(random.uniform(*self.pause_range))
                if await self._notify(db, user):
                    results["notified"] += 1
                else:
                    results["failed"] += 1
            logger.debug("Checked agent timeouts", extra={"context": results})
            return results
        finally:
            db.close()

    async def _notify(self, db: Session, user: TimedOutUser) -> bool:
        try:
            sent = await self.sender.send_text(user.session_id, user.contact_id, MSG_AGENT_TIMEOUT)
            save_message(
                db,
                user.id,
                sent.text,
                MessageSource.BOT,
                wa_message_id=sent.message_id,
                message_type="conversation",
                sent_at=datetime.now(timezone.utc),
            )
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.error(
                "Agent timeout notice failed",
                extra={"context": {"user_id": user.id, "phone": user.phone_number, "error": str(exc)}},
            )
            return False

        logger.info(
            "User returned to main menu after agent inactivity",
            extra={"context": {"user_id": user.id, "phone": user.phone_number}},
        )
        return True
