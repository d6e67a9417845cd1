"""Session models for conversation state."""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import DateTime
from sqlmodel import Field as SQLField, SQLModel

MAX_CONSECUTIVE_NOT_UNDERSTAND = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """
    Accumulated state for one conversation.

    Every assignment is validated, so `consecutive_not_understand` is clamped
    to [0, MAX_CONSECUTIVE_NOT_UNDERSTAND] on every write path, whether the
    dispatcher or a middleware performs it.
    """

    model_config = ConfigDict(validate_assignment=True)

    conversation_id: str = Field(frozen=True)
    consecutive_not_understand: int = 0
    message_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("consecutive_not_understand")
    @classmethod
    def _clamp(cls, v: int) -> int:
        return max(0, min(v, MAX_CONSECUTIVE_NOT_UNDERSTAND))

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands timestamps back without tzinfo; they were written as UTC
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SessionRecord(SQLModel, table=True):
    """Database row for a conversation session."""

    __tablename__ = "chatbot_sessions"

    conversation_id: str = SQLField(primary_key=True)
    consecutive_not_understand: int = 0
    message_count: int = 0
    created_at: datetime = SQLField(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = SQLField(default_factory=utcnow, sa_type=DateTime(timezone=True))


class SessionResponse(SQLModel):
    """Schema for session API response."""
    conversation_id: str
    consecutive_not_understand: int
    message_count: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
