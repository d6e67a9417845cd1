"""Inbound message and NLU conversation models."""
from typing import Any, Optional

from pydantic import BaseModel, Field


class Message(BaseModel):
    """A message delivered by the Bot Connector webhook."""
    conversation_id: str = Field(min_length=1)
    type: str = "text"
    content: Any = None
    sender_id: Optional[str] = None
    chat_id: Optional[str] = None
    participant: Optional[str] = None
    raw: dict = Field(default_factory=dict)


class Conversation(BaseModel):
    """Result of a converse-by-text call."""
    replies: list[str] = Field(default_factory=list)
    conversation_token: Optional[str] = None
    action: Optional[dict] = None
    intents: list[dict] = Field(default_factory=list)
    raw: dict = Field(default_factory=dict)

    def reply(self) -> Optional[str]:
        """First non-empty reply, if the NLU produced one."""
        for r in self.replies:
            if r:
                return r
        return None


class TextReply(BaseModel):
    """Response of the text entrypoint."""
    reply: str
    conversation_token: Optional[str] = None
    no_reply: bool = False
