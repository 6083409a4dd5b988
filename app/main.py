from __future__ import annotations

import hmac
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatbot.agent import ChatOrchestrator, build_orchestrator
from chatbot.core.rate_limit import RateLimiter
from chatbot.errors import ChatbotError, ConversationNotFound, InvalidRequest, RateLimited, Unauthorized
from chatbot.models import ANONYMOUS_USER_ID, ChatRequest
from config.settings import Settings, get_settings


logging.basicConfig(level=get_settings().log_level, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("gemini_chatbot")

APP_VERSION = "1.0.0"


def _client_id(request: Request) -> str:
    return request.client.host if request.client and request.client.host else "unknown"


def _validation_message(exc: RequestValidationError) -> str:
    for error in exc.errors():
        if "message" in error.get("loc", ()):
            return "Message is required and must be a string"
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid value')}" if location else "Malformed request body"


def _error_response(exc: ChatbotError) -> JSONResponse:
    body: Dict[str, Any] = {"error": exc.title, "message": exc.message}
    headers = None
    if isinstance(exc, RateLimited):
        body["retryAfter"] = exc.retry_after
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[ChatOrchestrator] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or get_settings()
    orchestrator = orchestrator or build_orchestrator(settings)
    rate_limiter = rate_limiter or RateLimiter(settings.rate_limit_window_ms, settings.rate_limit_max_requests)
    started = time.monotonic()

    if not settings.admin_token:
        logger.warning("ADMIN_TOKEN not set; admin endpoints will reject every request")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info("Gemini ChatBot API starting on port %s", settings.port)
        logger.info("Model: %s", orchestrator.model_id)
        logger.info("Default persona: %s", orchestrator.registry.default_id)
        logger.info("Available personas: %s", ", ".join(orchestrator.registry.ids()))
        logger.info("Daily limit: %s messages (tracking=%s)", settings.daily_limit, settings.usage_tracking)
        logger.info("Gemini API key configured: %s", bool(settings.google_api_key))
        yield

    app = FastAPI(title="Gemini ChatBot API", version=APP_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.rate_limiter = rate_limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatbotError)
    async def chatbot_error_handler(_: Request, exc: ChatbotError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(InvalidRequest(_validation_message(exc)))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if settings.is_development else "Something went wrong",
            },
        )

    def enforce_rate_limit(request: Request) -> None:
        decision = rate_limiter.check(_client_id(request))
        if not decision.allowed:
            logger.info("Rate limit exceeded for client %s", _client_id(request))
            raise RateLimited(decision.retry_after)

    def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
        expected = settings.admin_token
        if not expected or not authorization:
            raise Unauthorized()
        if not hmac.compare_digest(authorization.encode(), f"Bearer {expected}".encode()):
            raise Unauthorized()

    # ====================================
    # CHAT ENDPOINTS
    # ====================================

    @app.post("/chat", dependencies=[Depends(enforce_rate_limit)])
    async def chat(req: ChatRequest, request: Request) -> Dict[str, Any]:
        if not req.user_id:
            host = request.client.host if request.client else None
            req = req.model_copy(update={"user_id": host or ANONYMOUS_USER_ID})
        logger.info(
            "Incoming chat: user_id=%s persona=%s conversation_id=%s has_context=%s",
            req.user_id,
            req.persona,
            req.conversation_id,
            req.context is not None,
        )
        result = await orchestrator.handle(req)
        body: Dict[str, Any] = {"response": result.response_text, "model": result.model_id}
        if result.failed:
            body["error"] = True
        elif result.conversation_id:
            body["conversationId"] = result.conversation_id
        return body

    @app.get("/chat/usage/{user_id}")
    def usage(user_id: str) -> Dict[str, Any]:
        return orchestrator.usage_info(user_id)

    @app.get("/chat/conversation/{conversation_id}")
    def get_conversation(conversation_id: str) -> Dict[str, Any]:
        record = orchestrator.get_conversation(conversation_id)
        if record is None:
            raise ConversationNotFound(conversation_id)
        return record.model_dump(mode="json", by_alias=True)

    @app.get("/chat/conversations/{user_id}")
    def list_conversations(user_id: str) -> Dict[str, Any]:
        records = orchestrator.list_conversations(user_id)
        return {"conversations": [record.model_dump(mode="json", by_alias=True) for record in records]}

    @app.delete("/chat/conversation/{conversation_id}")
    def delete_conversation(conversation_id: str) -> Dict[str, Any]:
        if not orchestrator.delete_conversation(conversation_id):
            raise ConversationNotFound(conversation_id)
        return {"message": "Conversation deleted successfully"}

    # ====================================
    # ADMIN ENDPOINTS
    # ====================================

    @app.get("/admin/stats", dependencies=[Depends(require_admin)])
    def admin_stats() -> Dict[str, Any]:
        stats = orchestrator.service_stats()
        stats["config"] = settings.environment_info(orchestrator.registry.ids())
        return stats

    @app.post("/admin/reset-usage/{user_id}", dependencies=[Depends(require_admin)])
    def reset_usage(user_id: str) -> Dict[str, Any]:
        orchestrator.reset_usage(user_id)
        return {"message": f"Usage reset successfully for user {user_id}"}

    # ====================================
    # UTILITY ENDPOINTS
    # ====================================

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": APP_VERSION,
            "uptime": round(time.monotonic() - started, 3),
        }

    @app.get("/config")
    def public_config() -> Dict[str, Any]:
        # Only non-secret values.
        return {
            "model": orchestrator.model_id,
            "defaultPersona": orchestrator.registry.default_id,
            "availablePersonas": orchestrator.registry.ids(),
            "dailyLimit": orchestrator.usage.daily_limit,
            "usageTracking": orchestrator.usage.enabled,
            "environment": settings.app_env,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=get_settings().port, log_level="info")
