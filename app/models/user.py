from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("contact_id", "session_id", name="unique_user_session"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(String(255), nullable=False)
    phone_number = Column(String(255), nullable=False)
    session_id = Column(String(255), ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255))
    state = Column(String(64), nullable=False, default="initial")  # initial, awaiting_menu_choice, awaiting_recharge_amount, awaiting_agent
    last_interaction_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    session = relationship("ChatSession", back_populates="users")
    messages = relationship("Message", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
