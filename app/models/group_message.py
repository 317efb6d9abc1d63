from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base


class GroupMessage(Base):
    __tablename__ = "group_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    sender_jid = Column(String(255))
    sender_name = Column(String(255))
    message_text = Column(Text)
    source = Column(String(16), nullable=False)  # user, bot, manual
    wa_message_id = Column(String(255))
    message_type = Column(String(64))
    sent_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    group = relationship("Group", back_populates="messages")
