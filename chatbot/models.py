"""Pydantic schemas for chat requests, results and stored conversations.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ANONYMOUS_USER_ID = "anonymous"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Problem(CamelModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    difficulty: Optional[str] = None
    research_topics: List[str] = Field(default_factory=list)


class ChatContext(CamelModel):
    """Caller-supplied hints injected into the persona prompt.

    Known fields are typed; anything else goes in ``custom_data``.
    """

    model_config = ConfigDict(extra="forbid")

    subject: Optional[str] = None
    user_level: Optional[str] = None
    current_topic: Optional[str] = None
    problem: Optional[Problem] = None
    user_code: Optional[str] = None
    hints_used: Optional[int] = Field(default=None, ge=0)
    custom_data: Dict[str, str] = Field(default_factory=dict)


class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1, description="User's latest message")
    user_id: Optional[str] = Field(default=None, description="Quota and history owner")
    conversation_id: Optional[str] = Field(default=None, description="History key; nothing is stored when absent")
    persona: Optional[str] = Field(default=None, description="Persona id; unknown ids use the default")
    context: Optional[ChatContext] = None


class ChatResult(CamelModel):
    response_text: str
    model_id: str
    conversation_id: Optional[str] = None
    failed: bool = False


class ChatTurn(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    message: str
    response: str
    timestamp: datetime
    user_id: str
    conversation_id: str


class ConversationRecord(CamelModel):
    id: str
    user_id: str
    messages: List[ChatTurn] = Field(default_factory=list)
    started_at: datetime
    last_message_at: datetime
    context: Optional[ChatContext] = None
