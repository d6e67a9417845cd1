"""API routes for the chatbot."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel

from chatbot.bot import Chatbot
from chatbot.errors import (
    ChatbotError,
    InvalidPayloadError,
    NluError,
    NotFoundError,
    PersistenceError,
)
from chatbot.models import SessionResponse, TextReply

logger = logging.getLogger(__name__)

router = APIRouter()


class ConverseRequest(BaseModel):
    """Request for the text entrypoint."""
    text: str
    conversation_token: Optional[str] = None


class WebhookResponse(BaseModel):
    """Result of a webhook delivery."""
    conversation_id: str
    replies: int


def get_chatbot(request: Request) -> Chatbot:
    return request.app.state.chatbot


def to_http_error(e: ChatbotError) -> HTTPException:
    """Map a chatbot error to the HTTP response the transport should send."""
    if isinstance(e, InvalidPayloadError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, NluError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("/", response_model=WebhookResponse)
async def webhook(
    body: Any = Body(...),
    bot: Chatbot = Depends(get_chatbot),
):
    """Bot Connector webhook. Runs the message through the middleware chain."""
    try:
        ctx = await bot.handle_webhook(body)
    except ChatbotError as e:
        logger.error("Webhook delivery failed: %s", e)
        raise to_http_error(e) from e
    return WebhookResponse(conversation_id=ctx.conversation_id, replies=len(ctx.replies))


@router.post("/api/converse", response_model=TextReply)
async def converse(request: ConverseRequest, bot: Chatbot = Depends(get_chatbot)):
    """Text entrypoint. Returns the NLU reply, or a no-reply marker."""
    try:
        return await bot.converse_text(request.text, request.conversation_token)
    except ChatbotError as e:
        logger.error("Converse request failed: %s", e)
        raise to_http_error(e) from e


@router.post("/api/bot-hosting")
async def bot_hosting(body: Any = Body(...), bot: Chatbot = Depends(get_chatbot)):
    """Bot-hosting entrypoint accepting either a message or plain text."""
    try:
        return await bot.bot_hosting_entrypoint(body)
    except ChatbotError as e:
        logger.error("Bot hosting request failed: %s", e)
        raise to_http_error(e) from e


@router.get("/api/session/{conversation_id}", response_model=SessionResponse)
async def get_session(conversation_id: str, bot: Chatbot = Depends(get_chatbot)):
    """Get the stored session for a conversation."""
    if not bot.persistence_enabled:
        raise HTTPException(status_code=503, detail="Session persistence is disabled")
    try:
        session = await bot.store.find_by_id(conversation_id)
    except ChatbotError as e:
        raise to_http_error(e) from e
    return SessionResponse(**session.model_dump())
