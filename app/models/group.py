from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (UniqueConstraint("group_jid", "session_id", name="unique_group_session"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_jid = Column(String(255), nullable=False)
    session_id = Column(String(255), ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    session = relationship("ChatSession", back_populates="groups")
    messages = relationship("GroupMessage", back_populates="group", cascade="all, delete-orphan", passive_deletes=True)
