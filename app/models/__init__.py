from app.models.chat_session import ChatSession
from app.models.group import Group
from app.models.group_message import GroupMessage
from app.models.message import Message, MessageSource
from app.models.user import User

__all__ = [
    "ChatSession",
    "User",
    "Group",
    "Message",
    "MessageSource",
    "GroupMessage",
]
