"""
Shared pytest fixtures for the chat backend.

Provides a controllable clock, a scripted model provider and a recording
interaction sink so the orchestrator and HTTP layer can be exercised
without network access.
"""

import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo
from typing import List, Optional, Union

import pytest

from chatbot.agent import ChatOrchestrator
from chatbot.core.memory import ConversationStore
from chatbot.core.personas import PersonaRegistry, load_personas
from chatbot.core.usage import UsageTracker

# ===== TEST DOUBLES =====


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class ScriptedProvider:
    """Model provider returning queued replies; exceptions in the queue are raised."""

    def __init__(self, replies: Optional[List[Union[str, BaseException]]] = None, delay: float = 0.0) -> None:
        self.replies = list(replies or [])
        self.delay = delay
        self.calls: List[dict] = []

    async def generate(self, prompt: str, *, temperature: float, max_output_tokens: int) -> str:
        self.calls.append(
            {"prompt": prompt, "temperature": temperature, "max_output_tokens": max_output_tokens}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else "Default reply"
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingSink:
    def __init__(self) -> None:
        self.events = []

    def record(self, event) -> None:
        self.events.append(event)


# ===== FIXTURES =====


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 10, 15, 30, tzinfo=ZoneInfo("UTC")))


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def registry() -> PersonaRegistry:
    return PersonaRegistry(load_personas(), "assistant")


@pytest.fixture
def make_orchestrator(registry, provider, sink, clock):
    """Factory building an isolated orchestrator around the shared doubles."""

    def _make(daily_limit: int = 2, enabled: bool = True, timeout_seconds: float = 5.0, cap: int = 100):
        return ChatOrchestrator(
            registry=registry,
            usage=UsageTracker(daily_limit, enabled=enabled, clock=clock),
            store=ConversationStore(cap=cap, clock=clock),
            provider=provider,
            model_id="gemini-test",
            sink=sink,
            timeout_seconds=timeout_seconds,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator) -> ChatOrchestrator:
    return make_orchestrator()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable Settings reads so defaults apply."""
    for name in (
        "APP_ENV",
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "GEMINI_MODEL",
        "DEFAULT_PERSONA",
        "USAGE_TRACKING",
        "DAILY_MESSAGE_LIMIT",
        "RATE_LIMIT_WINDOW_MS",
        "RATE_LIMIT_MAX_REQUESTS",
        "ADMIN_TOKEN",
        "ALLOWED_ORIGINS",
        "CUSTOM_PERSONAS",
        "MODEL_TIMEOUT_SECONDS",
        "CONVERSATION_CAP",
        "LOG_LEVEL",
        "PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
