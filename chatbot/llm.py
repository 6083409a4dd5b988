from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from langchain_core.messages import BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from chatbot.errors import ProviderFailure


logger = logging.getLogger("gemini_chatbot.llm")


class ModelProvider(Protocol):
    """Opaque generative model: prompt in, text out, or ProviderFailure."""

    async def generate(self, prompt: str, *, temperature: float, max_output_tokens: int) -> str: ...


def message_text(message: Any) -> str:
    content = message.content if isinstance(message, BaseMessage) else message
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text") or ""))
        return "".join(parts)
    return ""


class GeminiProvider:
    def __init__(self, model: str, api_key: Optional[str]) -> None:
        self.model = model
        self._api_key = api_key

    def build_llm(self, temperature: float, max_output_tokens: int) -> ChatGoogleGenerativeAI:
        if not self._api_key:
            raise ProviderFailure("GEMINI_API_KEY not set. Please configure it in environment or .env")
        return ChatGoogleGenerativeAI(
            model=self.model,
            google_api_key=self._api_key,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )

    async def generate(self, prompt: str, *, temperature: float, max_output_tokens: int) -> str:
        llm = self.build_llm(temperature, max_output_tokens)
        try:
            result = await llm.ainvoke([HumanMessage(content=prompt)])
        except Exception as exc:
            raise ProviderFailure(f"Gemini call failed: {exc}", cause=exc) from exc

        text = message_text(result).strip()
        if not text:
            raise ProviderFailure("No response from AI")
        return text
