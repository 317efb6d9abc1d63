from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from app.database import Base


class ChatSession(Base):
    """A WhatsApp connection (tenant). Owns its users and groups."""

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    users = relationship("User", back_populates="session", cascade="all, delete-orphan", passive_deletes=True)
    groups = relationship("Group", back_populates="session", cascade="all, delete-orphan", passive_deletes=True)
