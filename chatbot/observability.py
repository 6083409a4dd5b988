from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from chatbot.models import ChatContext


logger = logging.getLogger("gemini_chatbot.interactions")


@dataclass(frozen=True)
class InteractionEvent:
    timestamp: str
    user_id: str
    persona: str
    has_context: bool
    context_type: str


def context_type(context: Optional[ChatContext]) -> str:
    if context is None:
        return "general"
    if context.subject:
        return context.subject
    if context.problem is not None and context.problem.title:
        return context.problem.title
    return "general"


class InteractionSink(Protocol):
    def record(self, event: InteractionEvent) -> None: ...


class LoggingInteractionSink:
    """Writes one JSON line per successful chat interaction."""

    def record(self, event: InteractionEvent) -> None:
        logger.info(
            "Chat interaction: %s",
            json.dumps(
                {
                    "timestamp": event.timestamp,
                    "userId": event.user_id,
                    "persona": event.persona,
                    "hasContext": event.has_context,
                    "contextType": event.context_type,
                }
            ),
        )
