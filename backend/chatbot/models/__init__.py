"""Models package."""
from .message import Conversation, Message, TextReply
from .session import (
    MAX_CONSECUTIVE_NOT_UNDERSTAND,
    Session,
    SessionRecord,
    SessionResponse,
)

__all__ = [
    "MAX_CONSECUTIVE_NOT_UNDERSTAND",
    "Conversation",
    "Message",
    "Session",
    "SessionRecord",
    "SessionResponse",
    "TextReply",
]
