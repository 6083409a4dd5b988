"""Tests for the Gemini provider wrapper, with the SDK client patched out."""

import pytest
from langchain_core.messages import AIMessage

from chatbot import llm
from chatbot.errors import ProviderFailure
from chatbot.llm import GeminiProvider, message_text


class FakeChatModel:
    instances = []
    reply = AIMessage(content="Hello!")

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.prompts = []
        FakeChatModel.instances.append(self)

    async def ainvoke(self, messages):
        self.prompts.append(messages)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def fake_model(monkeypatch):
    FakeChatModel.instances = []
    FakeChatModel.reply = AIMessage(content="Hello!")
    monkeypatch.setattr(llm, "ChatGoogleGenerativeAI", FakeChatModel)
    return FakeChatModel


@pytest.mark.parametrize(
    "content, expected",
    [
        ("plain", "plain"),
        (["a", {"type": "text", "text": "b"}, {"type": "image_url", "image_url": "x"}], "ab"),
        ([], ""),
    ],
)
def test_message_text(content, expected):
    assert message_text(AIMessage(content=content)) == expected


@pytest.mark.asyncio
async def test_generate_passes_persona_parameters(fake_model):
    provider = GeminiProvider("gemini-2.0-flash", "key")

    text = await provider.generate("PROMPT", temperature=0.4, max_output_tokens=500)

    assert text == "Hello!"
    model = fake_model.instances[0]
    assert model.kwargs == {
        "model": "gemini-2.0-flash",
        "google_api_key": "key",
        "temperature": 0.4,
        "max_output_tokens": 500,
    }
    assert model.prompts[0][0].content == "PROMPT"


@pytest.mark.asyncio
async def test_empty_reply_is_failure(fake_model):
    fake_model.reply = AIMessage(content="  ")

    with pytest.raises(ProviderFailure, match="No response"):
        await GeminiProvider("m", "key").generate("p", temperature=0.5, max_output_tokens=10)


@pytest.mark.asyncio
async def test_sdk_error_is_wrapped(fake_model):
    fake_model.reply = RuntimeError("403 API key invalid")

    with pytest.raises(ProviderFailure) as info:
        await GeminiProvider("m", "key").generate("p", temperature=0.5, max_output_tokens=10)
    assert isinstance(info.value.cause, RuntimeError)


@pytest.mark.asyncio
async def test_missing_key_never_builds_client(fake_model):
    with pytest.raises(ProviderFailure):
        await GeminiProvider("m", None).generate("p", temperature=0.5, max_output_tokens=10)
    assert fake_model.instances == []
