"""Exception hierarchy for the chatbot turn pipeline."""
from typing import Optional


class ChatbotError(Exception):
    """Base class for all chatbot errors."""


class ConfigurationError(ChatbotError):
    """Invalid or missing configuration detected at construction time."""


class NotFoundError(ChatbotError):
    """No session is stored for the requested conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Session with id {conversation_id} not found.")
        self.conversation_id = conversation_id


class PersistenceError(ChatbotError):
    """The session backend failed to read or write."""


class DuplicateSessionError(PersistenceError):
    """A session already exists for the conversation being created."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Session with id {conversation_id} already exists.")
        self.conversation_id = conversation_id


class MiddlewareError(ChatbotError):
    """A middleware raised while handling a turn."""

    def __init__(self, middleware: str, message: Optional[str] = None):
        super().__init__(message or f"Middleware {middleware} failed")
        self.middleware = middleware


class NluError(ChatbotError):
    """The NLU service could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidPayloadError(ChatbotError):
    """An inbound payload could not be turned into a message."""
