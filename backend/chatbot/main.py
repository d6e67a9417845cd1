"""Main FastAPI application for the chatbot."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatbot import __version__
from chatbot.api import router
from chatbot.bot import Chatbot
from chatbot.config import settings


def create_app(bot: Optional[Chatbot] = None) -> FastAPI:
    """Build the FastAPI app serving a chatbot (built from settings if not given)."""
    if bot is None:
        bot = Chatbot(settings.chatbot_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        print("🚀 Starting chatbot...")
        await bot.startup()
        print(f"✅ Ready (session persistence {'on' if bot.persistence_enabled else 'off'})")

        yield

        print("🛑 Shutting down...")
        await bot.shutdown()
        print("✅ Shutdown complete")

    app = FastAPI(
        title="Chatbot",
        description="Conversation turn pipeline behind an NLU webhook",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.chatbot = bot

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "chatbot.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )
