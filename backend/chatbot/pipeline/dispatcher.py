"""Turn dispatcher: session bookkeeping followed by the middleware chain."""
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional, Sequence

from chatbot.config import ChatbotConfig
from chatbot.errors import ChatbotError, MiddlewareError
from chatbot.models import Message
from chatbot.services import SessionStore

from .context import Middleware, Next, TurnContext

if TYPE_CHECKING:
    from chatbot.services import NluClient

logger = logging.getLogger(__name__)


class TurnDispatcher:
    """
    Runs every inbound message through session tracking and the middlewares.

    Turn flow:

        Idle
          │ (persistence disabled) ───────────────┐
          ▼                                       │
        SessionResolving   find-or-create         │
          ▼                                       │
        SessionUpdating    snapshot, reset, count │
          ▼                                       │
        SessionPersisting  save                   │
          ▼                                       ▼
        MiddlewareRunning[0..n] ──────────────► Done

    Any step may fail; the error reaches the caller of `on_message` and
    nothing after the failing step runs.
    """

    def __init__(
        self,
        config: ChatbotConfig,
        nlu: "NluClient",
        store: Optional[SessionStore] = None,
    ):
        self.config = config
        self.nlu = nlu
        self.store = store
        self.middlewares: list[Middleware] = []

    @property
    def persistence_enabled(self) -> bool:
        return self.store is not None and self.config.persistence_enabled

    def use(self, middleware: Middleware) -> "TurnDispatcher":
        """Append a middleware to the chain. Returns self for chaining."""
        if not callable(middleware):
            raise TypeError(f"Middleware must be callable, got {type(middleware).__name__}")
        self.middlewares.append(middleware)
        return self

    async def on_message(self, message: Message) -> TurnContext:
        """Handle one turn and return its context once the chain resolves."""
        ctx = TurnContext(message=message, nlu=self.nlu, config=self.config)

        if self.persistence_enabled:
            ctx = await self._track_session(ctx)

        chain = tuple(self.middlewares)
        logger.debug(
            "Turn %s: running %d middleware(s)", message.conversation_id, len(chain)
        )
        await self._continuation(ctx, chain, 0)()
        logger.debug("Turn %s: done", message.conversation_id)
        return ctx

    async def _track_session(self, ctx: TurnContext) -> TurnContext:
        conversation_id = ctx.conversation_id

        logger.debug("Turn %s: resolving session", conversation_id)
        session = await self.store.find_or_create_by_id(conversation_id)

        previous = session.consecutive_not_understand
        session.consecutive_not_understand = 0
        session.message_count += 1

        logger.debug("Turn %s: persisting session", conversation_id)
        await self.store.save(session)

        return replace(ctx, session=session, previous_not_understand=previous)

    def _continuation(
        self,
        ctx: TurnContext,
        chain: Sequence[Middleware],
        index: int,
    ) -> Next:
        called = False

        async def next_() -> None:
            nonlocal called
            if called:
                logger.warning(
                    "Turn %s: next() called more than once after middleware %d, ignoring",
                    ctx.conversation_id,
                    index - 1,
                )
                return
            called = True
            if index >= len(chain):
                return
            await self._run(ctx, chain, index)

        return next_

    async def _run(self, ctx: TurnContext, chain: Sequence[Middleware], index: int) -> None:
        middleware = chain[index]
        name = getattr(middleware, "__name__", repr(middleware))
        try:
            await middleware(ctx, self._continuation(ctx, chain, index + 1))
        except ChatbotError:
            raise
        except Exception as e:
            logger.error("Turn %s: middleware %s failed: %s", ctx.conversation_id, name, e)
            raise MiddlewareError(name, f"Middleware {name} failed: {e}") from e
