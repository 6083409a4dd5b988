"""Error taxonomy shared by the chat service and the HTTP layer."""

from __future__ import annotations

from typing import Optional


class ChatbotError(Exception):
    """Base class for every error raised by the chatbot packages."""

    status_code: int = 500
    title: str = "Internal server error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.title


class ConfigurationError(ChatbotError):
    """Invalid configuration detected while loading settings or personas."""

    title = "Configuration error"


class InvalidRequest(ChatbotError):
    status_code = 400
    title = "Invalid request"


class RateLimited(ChatbotError):
    status_code = 429
    title = "Too many requests"

    def __init__(self, retry_after: int, message: str = "Rate limit exceeded. Please try again later.") -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ProviderFailure(ChatbotError):
    """The model call raised, timed out, or returned no text."""

    title = "Model provider failure"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConversationNotFound(ChatbotError):
    status_code = 404
    title = "Not found"

    def __init__(self, conversation_id: str) -> None:
        super().__init__("Conversation not found")
        self.conversation_id = conversation_id


class Unauthorized(ChatbotError):
    status_code = 401
    title = "Unauthorized"

    def __init__(self, message: str = "Valid admin token required") -> None:
        super().__init__(message)
