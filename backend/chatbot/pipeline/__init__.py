"""Middleware pipeline package."""
from .context import Middleware, Next, TurnContext
from .dispatcher import TurnDispatcher

__all__ = [
    "Middleware",
    "Next",
    "TurnContext",
    "TurnDispatcher",
]
