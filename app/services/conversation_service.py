from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import insert
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import ChatSession, Group, User
from app.services.state_machine import ConversationState

logger = get_logger("conversation_service")


@dataclass(frozen=True)
class TimedOutUser:
    """Snapshot of a user row taken before the timeout reset."""

    id: int
    contact_id: str
    phone_number: str
    session_id: str
    last_interaction_at: Optional[datetime]


def derive_phone_number(contact_id: str) -> str:
    """5215512345678:3@s.whatsapp.net -> 5215512345678"""
    return contact_id.split("@", 1)[0].split(":", 1)[0]


def _insert_ignore(db: Session, model, values: dict, index_elements: list[str]) -> None:
    """INSERT that silently keeps the existing row on a unique-key conflict."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        stmt = pg_insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        stmt = sqlite_insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    else:
        stmt = insert(model).values(**values).prefix_with("IGNORE")
    db.execute(stmt)


def find_or_create_session(db: Session, session_id: str) -> ChatSession:
    _insert_ignore(
        db,
        ChatSession,
        {"session_id": session_id, "created_at": datetime.now(timezone.utc)},
        ["session_id"],
    )
    return db.query(ChatSession).filter(ChatSession.session_id == session_id).one()


def find_or_create_user(db: Session, contact_id: str, session_id: str, name: Optional[str] = None) -> User:
    """Find user by (contact_id, session_id) or create it in state initial."""
    find_or_create_session(db, session_id)
    phone_number = derive_phone_number(contact_id)

    _insert_ignore(
        db,
        User,
        {
            "contact_id": contact_id,
            "phone_number": phone_number,
            "session_id": session_id,
            "name": name,
            "state": ConversationState.INITIAL.value,
            "created_at": datetime.now(timezone.utc),
        },
        ["contact_id", "session_id"],
    )
    user = db.query(User).filter(User.contact_id == contact_id, User.session_id == session_id).one()

    # Older rows stored the full address as phone number.
    if "@" in (user.phone_number or ""):
        user.phone_number = phone_number
    if name and user.name != name:
        user.name = name
    db.flush()
    return user


def find_or_create_group(db: Session, group_jid: str, session_id: str) -> Group:
    find_or_create_session(db, session_id)
    _insert_ignore(
        db,
        Group,
        {"group_jid": group_jid, "session_id": session_id, "created_at": datetime.now(timezone.utc)},
        ["group_jid", "session_id"],
    )
    return db.query(Group).filter(Group.group_jid == group_jid, Group.session_id == session_id).one()


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).populate_existing().first()


def update_user_state(
    db: Session,
    user_id: int,
    state: ConversationState,
    expected_state: Optional[ConversationState] = None,
) -> bool:
    """Set the user's state. With expected_state, only if the row still holds it.

    Returns False when the compare-and-set found a different state.
    """
    query = db.query(User).filter(User.id == user_id)
    if expected_state is not None:
        query = query.filter(User.state == ConversationState(expected_state).value)
    updated = query.update({User.state: ConversationState(state).value}, synchronize_session="fetch")
    return updated > 0


def update_user_interaction_time(db: Session, user_id: int, at: Optional[datetime] = None) -> None:
    db.query(User).filter(User.id == user_id).update(
        {User.last_interaction_at: at or datetime.now(timezone.utc)},
        synchronize_session="fetch",
    )


def check_agent_timeouts(
    db: Session,
    timeout_minutes: int = 30,
    now: Optional[datetime] = None,
) -> list[TimedOutUser]:
    """Reset stale agent handoffs to initial and return the rows as they were.

    Each reset re-checks state and timestamp so a user who talked to the agent
    after the select is left alone.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=timeout_minutes)

    candidates = (
        db.query(User)
        .filter(
            User.state == ConversationState.AWAITING_AGENT.value,
            User.last_interaction_at.isnot(None),
            User.last_interaction_at < cutoff,
        )
        .all()
    )

    reset: list[TimedOutUser] = []
    for user in candidates:
        snapshot = TimedOutUser(
            id=user.id,
            contact_id=user.contact_id,
            phone_number=user.phone_number,
            session_id=user.session_id,
            last_interaction_at=user.last_interaction_at,
        )
        updated = (
            db.query(User)
            .filter(
                User.id == user.id,
                User.state == ConversationState.AWAITING_AGENT.value,
                User.last_interaction_at < cutoff,
            )
            .update({User.state: ConversationState.INITIAL.value}, synchronize_session="fetch")
        )
        if updated:
            reset.append(snapshot)

    db.flush()
    if reset:
        logger.info(
            "Agent handoffs timed out",
            extra={"context": {"count": len(reset), "user_ids": [item.id for item in reset]}},
        )
    return reset
