"""Services package."""
from .nlu_client import NluClient
from .session_store import InMemorySessionStore, SessionStore, SqlSessionStore

__all__ = [
    "InMemorySessionStore",
    "NluClient",
    "SessionStore",
    "SqlSessionStore",
]
