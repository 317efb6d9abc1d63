from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from sqlalchemy.orm import Session

from app.errors import PlatformError
from app.logging_config import LoggerAdapter, get_logger
from app.models import MessageSource, User
from app.schemas.webhook import InboundEvent
from app.services.conversation_service import (
    find_or_create_group,
    find_or_create_user,
    get_user,
    update_user_interaction_time,
    update_user_state,
)
from app.services.echo_registry import EchoRegistry
from app.services.locks import UserLockRegistry
from app.services.message_service import (
    IGNORED_MESSAGE_TYPES,
    extract_message_text,
    get_message_type,
    is_placeholder_text,
    save_group_message,
    save_message,
)
from app.services.outbound_service import BotSender
from app.services.state_machine import ConversationState, advance

logger = get_logger("message_router")


class RouteOutcome(str, Enum):
    IGNORED = "ignored"
    GROUP = "group"
    AGENT = "agent"
    ECHO = "echo"
    MANUAL = "manual"
    NO_REPLY = "no_reply"
    REPLIED = "replied"
    SEND_FAILED = "send_failed"
    ERROR = "error"


class MessageRouter:
    """Decides what happens to each inbound event.

    Group chats are only logged. Contacts handed off to an agent are logged
    and refreshed for the timeout supervisor. Our own sends are matched
    against the echo registry; anything else we sent is a manual message.
    Everything left is a user talking to the menu bot.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        sender: BotSender,
        echoes: EchoRegistry,
        locks: UserLockRegistry,
    ):
        self.session_factory = session_factory
        self.sender = sender
        self.echoes = echoes
        self.locks = locks

    async def handle_event(self, event: InboundEvent) -> RouteOutcome:
        """Route one event. Never raises: failures are logged and the event dropped."""
        log = LoggerAdapter(
            logger,
            {
                "session_id": event.session_id,
                "remote_jid": event.key.remote_jid,
                "message_id": event.key.id,
                "from_me": event.key.from_me,
            },
        )
        db = self.session_factory()
        try:
            outcome = await self._route(db, event, log)
            log.debug("Inbound event routed", context={"outcome": outcome.value})
            return outcome
        except Exception:
            db.rollback()
            log.exception("Inbound event failed")
            return RouteOutcome.ERROR
        finally:
            db.close()

    async def _route(self, db: Session, event: InboundEvent, log: LoggerAdapter) -> RouteOutcome:
        if event.is_status_broadcast:
            return RouteOutcome.IGNORED

        message_type = get_message_type(event.message)
        if message_type in IGNORED_MESSAGE_TYPES:
            return RouteOutcome.IGNORED

        wa_message_id = event.key.id
        if not wa_message_id:
            log.info("Inbound event without message id dropped")
            return RouteOutcome.IGNORED

        text = extract_message_text(event.message) or ""
        meta = {"wa_message_id": wa_message_id, "message_type": message_type, "sent_at": event.sent_at}

        if event.is_group:
            return self._route_group(db, event, text, meta, log)

        if event.key.from_me:
            contact_id = event.key.remote_jid
            user = find_or_create_user(db, contact_id, event.session_id)
        else:
            contact_id = event.sender_participant or event.key.remote_jid
            user = find_or_create_user(db, contact_id, event.session_id, event.push_name)
        db.commit()
        log = log.bind(user_id=user.id)

        if user.state == ConversationState.AWAITING_AGENT.value:
            return self._route_agent_mode(db, event, user, text, meta, log)

        if event.key.from_me:
            if self.echoes.consume_if_present(wa_message_id):
                log.info("Bot reply echo confirmed (already stored)")
                return RouteOutcome.ECHO
            save_message(db, user.id, text, MessageSource.MANUAL, **meta)
            db.commit()
            log.info("Manual message stored", context={"phone": user.phone_number, "text": text})
            return RouteOutcome.MANUAL

        save_message(db, user.id, text, MessageSource.USER, **meta)
        db.commit()
        log.info("User message stored", context={"phone": user.phone_number, "state": user.state, "text": text})

        if is_placeholder_text(text):
            return RouteOutcome.NO_REPLY

        return await self._reply(db, event, user, text, log)

    def _route_group(self, db: Session, event: InboundEvent, text: str, meta: dict, log: LoggerAdapter) -> RouteOutcome:
        group = find_or_create_group(db, event.key.remote_jid, event.session_id)

        sender_jid = event.sender_participant
        sender_name = event.push_name
        source = MessageSource.USER
        if event.key.from_me:
            sender_jid = "me"
            sender_name = None
            source = MessageSource.BOT if self.echoes.consume_if_present(event.key.id) else MessageSource.MANUAL

        save_group_message(db, group.id, sender_jid, text, source, sender_name=sender_name, **meta)
        db.commit()
        log.info("Group message stored", context={"group": group.group_jid, "sender": sender_jid, "source": source.value})
        return RouteOutcome.GROUP

    def _route_agent_mode(
        self,
        db: Session,
        event: InboundEvent,
        user: User,
        text: str,
        meta: dict,
        log: LoggerAdapter,
    ) -> RouteOutcome:
        update_user_interaction_time(db, user.id)

        if event.key.from_me:
            if self.echoes.consume_if_present(event.key.id):
                db.commit()
                return RouteOutcome.ECHO
            save_message(db, user.id, text, MessageSource.MANUAL, **meta)
            log.info("Agent message stored", context={"phone": user.phone_number, "text": text})
        else:
            save_message(db, user.id, text, MessageSource.USER, **meta)
            log.info("User message for agent stored", context={"phone": user.phone_number, "text": text})

        db.commit()
        return RouteOutcome.AGENT

    async def _reply(self, db: Session, event: InboundEvent, user: User, text: str, log: LoggerAdapter) -> RouteOutcome:
        async with self.locks.hold(user.id):
            current = get_user(db, user.id)
            state_before = ConversationState(current.state)
            if state_before == ConversationState.AWAITING_AGENT:
                # Handed off between the first read and now; the agent owns it.
                return RouteOutcome.AGENT
            transition = advance(state_before, text)

        try:
            sent = await self.sender.send_text(event.session_id, event.key.remote_jid, transition.reply)
        except PlatformError:
            return RouteOutcome.SEND_FAILED

        save_message(
            db,
            user.id,
            sent.text,
            MessageSource.BOT,
            wa_message_id=sent.message_id,
            message_type="conversation",
            sent_at=datetime.now(timezone.utc),
        )

        async with self.locks.hold(user.id):
            applied = True
            if transition.next_state != state_before:
                applied = update_user_state(db, user.id, transition.next_state, expected_state=state_before)
            if applied and transition.touch_interaction:
                update_user_interaction_time(db, user.id)
            db.commit()

        if not applied:
            log.warning(
                "State changed while replying; transition skipped",
                context={"expected": state_before.value, "wanted": transition.next_state.value},
            )
        log.info(
            "Bot reply sent",
            context={"phone": user.phone_number, "from": state_before.value, "to": transition.next_state.value},
        )
        return RouteOutcome.REPLIED
