from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from chatbot.core.memory import ConversationStore
from chatbot.core.personas import Persona, PersonaRegistry, load_personas
from chatbot.core.prompt import compose, render
from chatbot.core.usage import UsageTracker
from chatbot.errors import ProviderFailure
from chatbot.llm import GeminiProvider, ModelProvider
from chatbot.models import ANONYMOUS_USER_ID, ChatRequest, ChatResult, ConversationRecord
from chatbot.observability import InteractionEvent, InteractionSink, LoggingInteractionSink, context_type
from config.settings import Settings


logger = logging.getLogger("gemini_chatbot.agent")


class ChatOrchestrator:
    """Runs one chat request through quota, prompt, model and history.

    Usage and history are only written after the model returned text; the
    provider call itself runs without holding any bookkeeping lock.
    """

    def __init__(
        self,
        registry: PersonaRegistry,
        usage: UsageTracker,
        store: ConversationStore,
        provider: ModelProvider,
        model_id: str,
        sink: Optional[InteractionSink] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.registry = registry
        self.usage = usage
        self.store = store
        self.provider = provider
        self.model_id = model_id
        self.sink = sink if sink is not None else LoggingInteractionSink()
        self.timeout_seconds = timeout_seconds
        self._started = time.monotonic()

    def limit_message(self, reset_at: Optional[datetime]) -> str:
        when = reset_at.strftime("%Y-%m-%d %H:%M %Z").strip() if reset_at else "midnight"
        return (
            f"You've reached your daily limit of {self.usage.daily_limit} messages. "
            f"Your limit resets at {when}."
        )

    def _fallback(self, persona: Persona) -> ChatResult:
        return ChatResult(response_text=persona.fallback_text, model_id=self.model_id, failed=True)

    async def _invoke(self, persona: Persona, prompt: str) -> str:
        text = await asyncio.wait_for(
            self.provider.generate(
                prompt,
                temperature=persona.temperature,
                max_output_tokens=persona.max_output_tokens,
            ),
            timeout=self.timeout_seconds,
        )
        if not text or not text.strip():
            raise ProviderFailure("No response from AI")
        return text

    async def handle(self, request: ChatRequest) -> ChatResult:
        user_id = request.user_id or ANONYMOUS_USER_ID
        persona = self.registry.get(request.persona)

        if self.usage.applies(user_id):
            decision = self.usage.check_allowed(user_id)
            if not decision.allowed:
                logger.info("Daily limit reached for user %s", user_id)
                return ChatResult(
                    response_text=self.limit_message(decision.reset_at),
                    model_id=self.model_id,
                    failed=True,
                )

        prompt = compose(render(persona, request.context), request.message)

        try:
            response_text = await self._invoke(persona, prompt)
        except asyncio.TimeoutError:
            logger.warning(
                "Model call timed out after %ss (user=%s persona=%s)", self.timeout_seconds, user_id, persona.id
            )
            return self._fallback(persona)
        except ProviderFailure as exc:
            logger.warning("Model call failed (user=%s persona=%s): %s", user_id, persona.id, exc.message)
            return self._fallback(persona)
        except Exception:
            logger.exception("Unexpected model error (user=%s persona=%s)", user_id, persona.id)
            return self._fallback(persona)

        self.usage.record_use(user_id)
        if request.conversation_id:
            self.store.append(
                request.conversation_id,
                user_id,
                request.message,
                response_text,
                request.context,
            )

        try:
            self.sink.record(
                InteractionEvent(
                    timestamp=datetime.now(timezone.utc).isoformat(),
                    user_id=user_id,
                    persona=persona.id,
                    has_context=request.context is not None,
                    context_type=context_type(request.context),
                )
            )
        except Exception:
            logger.exception("Interaction sink failed (user=%s persona=%s)", user_id, persona.id)

        return ChatResult(
            response_text=response_text,
            model_id=self.model_id,
            conversation_id=request.conversation_id,
        )

    def usage_info(self, user_id: str) -> Dict[str, Any]:
        snapshot = self.usage.get_info(user_id)
        return {
            "questionsUsed": snapshot.used,
            "questionsRemaining": snapshot.remaining,
            "resetDate": snapshot.reset_at.isoformat(),
            "model": self.model_id,
            "dailyLimit": snapshot.daily_limit,
        }

    def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        return self.store.get(conversation_id)

    def list_conversations(self, user_id: str) -> List[ConversationRecord]:
        return self.store.list_by_user(user_id)

    def delete_conversation(self, conversation_id: str) -> bool:
        return self.store.delete(conversation_id)

    def reset_usage(self, user_id: str) -> None:
        self.usage.reset(user_id)

    def service_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self.store.stats())
        stats["activeUsersToday"] = self.usage.active_users()
        stats["serviceUptime"] = round(time.monotonic() - self._started, 3)
        return stats


def build_orchestrator(
    settings: Settings,
    provider: Optional[ModelProvider] = None,
    sink: Optional[InteractionSink] = None,
) -> ChatOrchestrator:
    registry = PersonaRegistry(load_personas(settings.custom_personas), settings.default_persona)
    if provider is None:
        provider = GeminiProvider(settings.gemini_model, settings.google_api_key)
    return ChatOrchestrator(
        registry=registry,
        usage=UsageTracker(settings.daily_limit, enabled=settings.usage_tracking),
        store=ConversationStore(cap=settings.conversation_cap),
        provider=provider,
        model_id=settings.gemini_model,
        sink=sink,
        timeout_seconds=settings.model_timeout_seconds,
    )
