"""Per-turn context passed through the middleware chain."""
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from chatbot.config import ChatbotConfig
from chatbot.models import Message, Session

if TYPE_CHECKING:
    from chatbot.services import NluClient


@dataclass(frozen=True)
class TurnContext:
    """
    State shared by every middleware of a single turn.

    The request side (message, NLU handle, config, session snapshot) is fixed
    once the chain starts. `replies` collects the messages to send back and
    `state` is free space for middlewares to hand data to each other. The
    session itself stays mutable so middlewares can update and save it.
    """
    message: Message
    nlu: "NluClient"
    config: ChatbotConfig
    session: Optional[Session] = None
    # consecutive_not_understand as it was before this turn reset it
    previous_not_understand: Optional[int] = None
    replies: list[dict] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)

    @property
    def conversation_id(self) -> str:
        return self.message.conversation_id

    def reply(self, content: Any, type: str = "text") -> None:
        """Queue a reply for the Bot Connector."""
        self.replies.append({"type": type, "content": content})


Next = Callable[[], Awaitable[None]]
Middleware = Callable[[TurnContext, Next], Awaitable[Any]]
