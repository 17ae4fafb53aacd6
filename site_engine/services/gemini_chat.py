"""
Chat assistant for the site widget, backed by Google Gemini.
"""
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import google.generativeai as genai

from config import settings
from logging_config import logger
from services.resilient_caller import CallError, CallErrorKind, ResilientCaller
from sync.errors import ValidationError
from sync.records import Tool, ToolStatus

WELCOME_MESSAGE = "👋 Hey! I am your SnapAI Assistant. How can I help you today?"

QUICK_REPLIES = [
    {"label": "🔧 Tools", "message": "🔧 Explore AI Tools"},
    {"label": "📝 Request", "message": "📝 Request a New Tool"},
    {"label": "📄 Resume", "message": "📄 Try AI Resume Builder"},
]

ERROR_MESSAGES = {
    CallErrorKind.AUTH_FAILURE: "⚠️ API key issue. Please check your Gemini API key.",
    CallErrorKind.RATE_LIMITED: "⚠️ API quota exceeded. Please try again later.",
    CallErrorKind.CONTENT_BLOCKED: "⚠️ Response was blocked by safety filters. Try rephrasing.",
}

SYSTEM_INSTRUCTION = """You are SnapAI Assistant, the helpful AI chatbot for SnapAI Labs — an AI tools company that builds on-demand AI tools every 15 days.

Current tools:
{tools}

Key facts about SnapAI Labs:
- We build AI tools based on user requests
- New tool every 15 days
- 50+ requests fulfilled
- {rating} rating
- Users can request custom AI tools

Keep responses concise (2-3 sentences max), friendly, and helpful. Use emojis occasionally."""


def describe_tools(tools: Iterable[Tool]) -> str:
    lines = []
    for tool in tools:
        if tool.status is ToolStatus.LIVE:
            lines.append(f"- {tool.name} (LIVE) — {tool.description}")
        else:
            launch = f" — {tool.launch_days}" if tool.launch_days else ""
            lines.append(f"- {tool.name} (Coming Soon{launch})")
    return "\n".join(lines) or "- New tools are on the way"


def error_message(error: CallError) -> str:
    """User-visible text for a failed chat call"""
    if error.kind in ERROR_MESSAGES:
        return ERROR_MESSAGES[error.kind]
    return f"❌ Connection error: {error.detail or 'Unknown error'}. Please try again."


class GeminiChatService:
    """One Gemini completion per widget message; no conversation state kept"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        tools_provider: Optional[Callable[[], List[Tool]]] = None,
        rating_provider: Optional[Callable[[], str]] = None,
        caller: Optional[ResilientCaller] = None,
        max_attempts: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model_name = model_name or settings.GEMINI_CHAT_MODEL
        self.tools_provider = tools_provider
        self.rating_provider = rating_provider
        self.max_attempts = max_attempts or settings.CHAT_MAX_ATTEMPTS
        self.caller = caller or ResilientCaller(
            self._generate, backoff_seconds=settings.CHAT_BACKOFF_SECONDS
        )

        if self.api_key:
            genai.configure(api_key=self.api_key)
        else:
            logger.warning("GEMINI_API_KEY not configured, chat replies will fail")

        logger.info(f"Initialized GeminiChatService with model: {self.model_name}")

    def system_instruction(self) -> str:
        tools = self.tools_provider() if self.tools_provider else []
        rating = self.rating_provider() if self.rating_provider else "4.9★"
        return SYSTEM_INSTRUCTION.format(tools=describe_tools(tools), rating=rating)

    async def _generate(self, text: str) -> str:
        if not self.api_key:
            raise RuntimeError("API_KEY not configured")

        model = genai.GenerativeModel(self.model_name, system_instruction=self.system_instruction())
        response = await model.generate_content_async(text)

        # Check if response has valid content
        if not response.candidates or not response.candidates[0].content.parts:
            finish_reason = response.candidates[0].finish_reason if response.candidates else "Unknown"
            feedback = getattr(response, "prompt_feedback", None)
            raise ValueError(f"Response blocked. Finish reason: {finish_reason}. Feedback: {feedback}")

        return response.text.strip()

    async def reply(
        self,
        message: str,
        is_alive: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> Optional[Dict[str, str]]:
        """
        Produce the assistant's reply to one widget message.

        Returns None when `is_alive` reports the requester has gone away
        while the call (and its backoff waits) were in flight.
        """
        if not message or not message.strip():
            raise ValidationError("Message is empty", field="message")

        try:
            text = await self.caller.call(message.strip(), max_attempts=self.max_attempts)
            result = {"role": "ai", "content": text, "status": "ok"}
        except CallError as e:
            logger.error("Chat call failed", kind=e.kind.value, attempts=e.attempts, error=e.detail)
            result = {"role": "ai", "content": error_message(e), "status": e.kind.value}

        if is_alive is not None and not await is_alive():
            logger.info("Chat requester gone, discarding reply", status=result["status"])
            return None
        return result
