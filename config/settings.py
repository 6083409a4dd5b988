from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from chatbot.errors import ConfigurationError


load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here. Values are read when
    the instance is created so tests can build isolated settings.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.google_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.default_persona: str = os.getenv("DEFAULT_PERSONA", "assistant")
        self.usage_tracking: bool = os.getenv("USAGE_TRACKING", "true").strip().lower() != "false"
        self.daily_limit: int = _env_int("DAILY_MESSAGE_LIMIT", 50)
        self.rate_limit_window_ms: int = _env_int("RATE_LIMIT_WINDOW_MS", 15 * 60 * 1000)
        self.rate_limit_max_requests: int = _env_int("RATE_LIMIT_MAX_REQUESTS", 10)
        self.admin_token: Optional[str] = os.getenv("ADMIN_TOKEN") or None
        self.allowed_origins: List[str] = _env_list(
            "ALLOWED_ORIGINS", ["http://localhost:3000", "http://localhost:3001"]
        )
        self.custom_personas: Optional[str] = os.getenv("CUSTOM_PERSONAS") or None
        self.model_timeout_seconds: float = _env_float("MODEL_TIMEOUT_SECONDS", 30.0)
        self.conversation_cap: int = _env_int("CONVERSATION_CAP", 100)
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.port: int = _env_int("PORT", 3001)

        if self.daily_limit < 0:
            raise ConfigurationError("DAILY_MESSAGE_LIMIT must not be negative")
        if self.rate_limit_window_ms <= 0 or self.rate_limit_max_requests <= 0:
            raise ConfigurationError("Rate limit window and max requests must be positive")
        if self.model_timeout_seconds <= 0:
            raise ConfigurationError("MODEL_TIMEOUT_SECONDS must be positive")
        if self.conversation_cap <= 0:
            raise ConfigurationError("CONVERSATION_CAP must be positive")

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() in {"dev", "development", "local"}

    def environment_info(self, available_personas: List[str]) -> Dict[str, Any]:
        """Non-secret configuration snapshot for debugging endpoints."""
        return {
            "environment": self.app_env,
            "port": self.port,
            "hasApiKey": bool(self.google_api_key),
            "model": self.gemini_model,
            "defaultPersona": self.default_persona,
            "availablePersonas": available_personas,
            "dailyLimit": self.daily_limit,
            "usageTracking": self.usage_tracking,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
