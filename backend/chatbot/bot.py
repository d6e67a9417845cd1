"""Chatbot facade wiring configuration, NLU, session storage and middlewares."""
import logging
from typing import Any, Optional

from sqlalchemy.engine import Engine

from chatbot.config import ChatbotConfig, DatabaseConfig
from chatbot.db import create_db_engine
from chatbot.errors import ConfigurationError, InvalidPayloadError
from chatbot.models import Message, TextReply
from chatbot.pipeline import Middleware, TurnContext, TurnDispatcher
from chatbot.services import NluClient, SessionStore, SqlSessionStore

logger = logging.getLogger(__name__)

NO_REPLY = "No reply :("


class Chatbot:
    """
    Entry point of the bot.

    Builds the NLU client and, when a database descriptor is configured, the
    session store. Inbound webhook messages go through the TurnDispatcher;
    text requests go straight to the NLU.
    """

    def __init__(
        self,
        config: ChatbotConfig | dict,
        nlu: Optional[NluClient] = None,
        store: Optional[SessionStore] = None,
    ):
        self.config = ChatbotConfig.parse(config)
        if store is not None and not self.config.persistence_enabled:
            raise ConfigurationError(
                "A session store was given without a database descriptor"
            )
        self.nlu = nlu or NluClient(
            request_token=self.config.request_token,
            language=self.config.language,
            connect_token=self.config.connect_token,
            api_url=self.config.nlu_api_url,
            connect_url=self.config.connect_api_url,
            timeout=self.config.nlu_timeout,
        )
        self.engine: Optional[Engine] = None
        self.dispatcher = TurnDispatcher(self.config, self.nlu, store)

        if store is None and self.config.database is not None:
            self.connect_database(self.config.database)

    @property
    def store(self) -> Optional[SessionStore]:
        return self.dispatcher.store

    @property
    def persistence_enabled(self) -> bool:
        return self.dispatcher.persistence_enabled

    def use(self, middleware: Middleware) -> "Chatbot":
        self.dispatcher.use(middleware)
        return self

    def connect_database(self, config: DatabaseConfig) -> SqlSessionStore:
        """Attach a SQL session store and enable session tracking."""
        config.enabled = True
        self.config.database = config
        self.engine = create_db_engine(config)
        store = SqlSessionStore(self.engine)
        self.dispatcher.store = store
        logger.info("Session persistence enabled")
        return store

    async def startup(self) -> None:
        if isinstance(self.store, SqlSessionStore):
            self.store.create_tables()

    async def shutdown(self) -> None:
        await self.nlu.aclose()
        if self.engine is not None:
            self.engine.dispose()

    async def on_message(self, message: Message) -> TurnContext:
        return await self.dispatcher.on_message(message)

    async def handle_webhook(self, body: Any) -> TurnContext:
        """Run one webhook delivery through the pipeline and send its replies."""
        message = self.nlu.parse_message(body)
        ctx = await self.on_message(message)
        if ctx.replies:
            await self.nlu.send_messages(message.conversation_id, ctx.replies)
        return ctx

    async def converse_text(
        self,
        text: str,
        conversation_token: Optional[str] = None,
    ) -> TextReply:
        """Ask the NLU for a reply to free text."""
        conversation = await self.nlu.converse_text(text, conversation_token=conversation_token)
        reply = conversation.reply()
        if reply is None:
            return TextReply(
                reply=NO_REPLY,
                conversation_token=conversation.conversation_token,
                no_reply=True,
            )
        return TextReply(reply=reply, conversation_token=conversation.conversation_token)

    async def bot_hosting_entrypoint(self, body: Any) -> dict:
        """Handle a bot-hosting payload carrying either a message or text."""
        if not isinstance(body, dict):
            raise InvalidPayloadError("No text provided")

        if body.get("message"):
            await self.handle_webhook(body)
            return {"result": "Bot answered :)"}

        if body.get("text"):
            result = await self.converse_text(
                body["text"],
                conversation_token=body.get("conversation_token"),
            )
            return {
                "reply": result.reply,
                "conversationToken": result.conversation_token,
                "noReply": result.no_reply,
            }

        raise InvalidPayloadError("No text provided")
