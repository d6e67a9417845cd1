"""Conversation turn pipeline for NLU-driven chatbots."""
__version__ = "0.1.0"

from .bot import Chatbot  # noqa: E402
from .config import ChatbotConfig, DatabaseConfig  # noqa: E402
from .errors import (  # noqa: E402
    ChatbotError,
    ConfigurationError,
    DuplicateSessionError,
    InvalidPayloadError,
    MiddlewareError,
    NluError,
    NotFoundError,
    PersistenceError,
)
from .pipeline import TurnContext, TurnDispatcher  # noqa: E402

__all__ = [
    "Chatbot",
    "ChatbotConfig",
    "ChatbotError",
    "ConfigurationError",
    "DatabaseConfig",
    "DuplicateSessionError",
    "InvalidPayloadError",
    "MiddlewareError",
    "NluError",
    "NotFoundError",
    "PersistenceError",
    "TurnContext",
    "TurnDispatcher",
]
