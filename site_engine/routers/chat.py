"""
Chat API router for the site's assistant widget.

One Gemini completion per message; rate-limited upstream failures are
retried a bounded number of times before the widget gets an error reply.
"""
from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel
from typing import List, Dict

from config import settings
from logging_config import logger
from rate_limit import limiter
from routers.deps import http_error
from services.gemini_chat import QUICK_REPLIES, WELCOME_MESSAGE
from sync.errors import ValidationError

router = APIRouter()

# nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499


class ChatMessageRequest(BaseModel):
    """Request model for sending a chat message"""
    message: str


class ChatMessageResponse(BaseModel):
    """Response model for a chat reply"""
    success: bool
    role: str = "ai"
    content: str
    status: str


class ChatConfigResponse(BaseModel):
    """Response model for widget start-up data"""
    welcome_message: str
    quick_replies: List[Dict[str, str]]


@router.get("/chat/config", response_model=ChatConfigResponse)
async def chat_config():
    """Welcome message and quick-reply buttons for the widget"""
    return ChatConfigResponse(welcome_message=WELCOME_MESSAGE, quick_replies=QUICK_REPLIES)


@router.post("/chat", response_model=ChatMessageResponse)
@limiter.limit(settings.CHAT_RATE_LIMIT)
async def send_chat_message(request: Request, data: ChatMessageRequest):
    """
    Send a message to the assistant.

    Failures of the model call come back as a normal reply whose `status`
    names the failure kind, so the widget can show them inline.
    """
    chat = request.app.state.chat

    async def is_alive() -> bool:
        return not await request.is_disconnected()

    try:
        result = await chat.reply(data.message, is_alive=is_alive)
    except ValidationError as e:
        raise http_error(e)

    if result is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    logger.info("Chat reply sent", status=result["status"], length=len(result["content"]))
    return ChatMessageResponse(success=result["status"] == "ok", **result)
