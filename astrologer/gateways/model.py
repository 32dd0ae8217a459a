from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from astrologer.core.errors import MalformedResponseError, wrap_gateway_error
from astrologer.core.models import Speaker, Turn
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

# Gemini conversations have to open with a user turn, so the system-priming
# turn goes out as a human message.
_HUMAN_SPEAKERS = {Speaker.USER, Speaker.SYSTEM_PRIMING}


def to_lc_messages(turns: Sequence[Turn]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for turn in turns:
        if turn.speaker in _HUMAN_SPEAKERS:
            messages.append(HumanMessage(content=turn.text))
        else:
            messages.append(AIMessage(content=turn.text))
    return messages


def extract_reply_text(result: Any) -> str:
    content = getattr(result, "content", None)
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(part.get("text") or "")
        content = "".join(parts)
    if not isinstance(content, str) or not content.strip():
        raise MalformedResponseError("Model returned an empty or unexpected response")
    return content.strip()


def build_llm(settings: Settings) -> ChatGoogleGenerativeAI:
    if not settings.google_api_key:
        raise RuntimeError(
            "GOOGLE_API_KEY not set. Please configure it in environment or .env"
        )
    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.google_api_key,
        temperature=settings.temperature,
        top_p=settings.top_p,
        top_k=settings.top_k,
        max_output_tokens=settings.max_output_tokens,
        max_retries=1,
    )


class GeminiModelGateway:
    """Sends the assembled conversation to Gemini and returns the reply text."""

    name = "language model"

    def __init__(self, settings: Optional[Settings] = None, llm: Any = None):
        self.settings = settings or get_settings()
        self.llm = llm if llm is not None else build_llm(self.settings)
        self.timeout = self.settings.model_timeout_seconds

    async def generate(self, turns: Sequence[Turn]) -> str:
        messages = to_lc_messages(turns)
        logger.info("Calling model: model=%s turns=%s", self.settings.gemini_model, len(messages))
        try:
            result = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
        except Exception as exc:
            raise wrap_gateway_error(self.name, exc) from exc
        return extract_reply_text(result)
