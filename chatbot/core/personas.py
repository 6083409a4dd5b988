from __future__ import annotations

import json
import logging
import threading
from typing import Dict, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from chatbot.errors import ConfigurationError


logger = logging.getLogger("gemini_chatbot.personas")


class Persona(BaseModel):
    """Behavioral profile the assistant adopts for one request.

    Overrides may use either the Python field names or the keys of the
    camelCase override format (``name``, ``systemPrompt``, ``maxTokens``,
    ``fallbackResponse``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    id: str = Field(..., min_length=1)
    display_name: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("display_name", "displayName", "name")
    )
    system_prompt_template: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("system_prompt_template", "systemPromptTemplate", "systemPrompt"),
    )
    temperature: float = Field(..., ge=0.0, le=2.0)
    max_output_tokens: int = Field(
        ..., gt=0, validation_alias=AliasChoices("max_output_tokens", "maxOutputTokens", "maxTokens")
    )
    fallback_text: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("fallback_text", "fallbackText", "fallbackResponse"),
    )


BUILTIN_PERSONAS: Dict[str, Persona] = {
    "tutor": Persona(
        id="tutor",
        display_name="AI Tutor",
        system_prompt_template=(
            "You are an educational AI tutor. Your role is to guide learners without giving direct answers.\n"
            "\n"
            "GUIDELINES:\n"
            "1. **Guide, don't solve**: Help students think through problems\n"
            "2. **Ask clarifying questions**: Break down complex topics\n"
            "3. **Encourage exploration**: Point to relevant concepts to research\n"
            "4. **Be supportive**: Celebrate progress and normalize struggling\n"
            "5. **Provide context**: Connect concepts to real-world applications\n"
            "\n"
            "Keep responses concise, encouraging, and focused on learning."
        ),
        temperature=0.7,
        max_output_tokens=300,
        fallback_text=(
            "I'm having trouble right now, but try breaking down the problem into smaller steps. "
            "What specific part would you like to explore first?"
        ),
    ),
    "assistant": Persona(
        id="assistant",
        display_name="AI Assistant",
        system_prompt_template=(
            "You are a helpful AI assistant. Provide clear, accurate, and useful responses.\n"
            "\n"
            "GUIDELINES:\n"
            "1. **Be helpful**: Focus on solving the user's immediate need\n"
            "2. **Be accurate**: Provide factual and up-to-date information\n"
            "3. **Be concise**: Keep responses focused and to the point\n"
            "4. **Be professional**: Maintain a friendly but professional tone\n"
            "\n"
            "Adapt your communication style to the user's level and context."
        ),
        temperature=0.6,
        max_output_tokens=400,
        fallback_text=(
            "I apologize, but I'm experiencing technical difficulties. "
            "Please try rephrasing your question or try again in a moment."
        ),
    ),
    "support": Persona(
        id="support",
        display_name="Support Agent",
        system_prompt_template=(
            "You are a customer support agent. Help users resolve their issues efficiently and courteously.\n"
            "\n"
            "GUIDELINES:\n"
            "1. **Listen actively**: Understand the user's specific problem\n"
            "2. **Provide solutions**: Offer clear, actionable steps\n"
            "3. **Be empathetic**: Acknowledge frustration and show understanding\n"
            "4. **Follow up**: Ensure the solution addresses their needs\n"
            "5. **Escalate when needed**: Know when to refer to human support\n"
            "\n"
            "Always prioritize user satisfaction and problem resolution."
        ),
        temperature=0.5,
        max_output_tokens=350,
        fallback_text=(
            "I apologize for the inconvenience. Let me help you with that. "
            "Could you please describe the specific issue you're experiencing?"
        ),
    ),
    "codeReviewer": Persona(
        id="codeReviewer",
        display_name="Code Reviewer",
        system_prompt_template=(
            "You are an expert code reviewer. Provide constructive feedback on code quality, "
            "best practices, and improvements.\n"
            "\n"
            "GUIDELINES:\n"
            "1. **Review systematically**: Check logic, style, performance, and security\n"
            "2. **Be constructive**: Point out what works well before suggesting improvements\n"
            "3. **Explain reasoning**: Help users understand why changes are beneficial\n"
            "4. **Suggest alternatives**: Provide multiple approaches when applicable\n"
            "5. **Focus on learning**: Help users improve their coding skills\n"
            "\n"
            "Balance thoroughness with practicality in your reviews."
        ),
        temperature=0.4,
        max_output_tokens=500,
        fallback_text=(
            "I'm having trouble analyzing your code right now. "
            "Please ensure your code is properly formatted and try again."
        ),
    ),
}


def parse_custom_personas(raw: Optional[str]) -> Dict[str, Persona]:
    """Parse the CUSTOM_PERSONAS JSON object into validated personas.

    Raises ConfigurationError on malformed JSON or an invalid entry.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"CUSTOM_PERSONAS is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("CUSTOM_PERSONAS must be a JSON object keyed by persona id")

    personas: Dict[str, Persona] = {}
    for persona_id, body in data.items():
        if not isinstance(body, dict):
            raise ConfigurationError(f"Persona override {persona_id!r} must be a JSON object")
        try:
            personas[persona_id] = Persona.model_validate({**body, "id": persona_id})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid persona override {persona_id!r}: {exc}") from exc
    return personas


def load_personas(custom_json: Optional[str] = None) -> Dict[str, Persona]:
    personas = dict(BUILTIN_PERSONAS)
    overrides = parse_custom_personas(custom_json)
    if overrides:
        logger.info("Loaded %s persona override(s): %s", len(overrides), ", ".join(overrides))
    personas.update(overrides)
    return personas


class PersonaRegistry:
    def __init__(self, personas: Mapping[str, Persona], default_persona_id: str) -> None:
        if default_persona_id not in personas:
            raise ConfigurationError(
                f"Default persona {default_persona_id!r} is not defined; "
                f"available: {', '.join(personas) or 'none'}"
            )
        self._personas: Dict[str, Persona] = dict(personas)
        self._default_id = default_persona_id
        self._lock = threading.Lock()

    @property
    def default_id(self) -> str:
        return self._default_id

    def get(self, persona_id: Optional[str]) -> Persona:
        persona = self._personas.get(persona_id) if persona_id else None
        if persona is None:
            if persona_id:
                logger.info("Unknown persona %r, using default %r", persona_id, self._default_id)
            return self._personas[self._default_id]
        return persona

    def upsert(self, persona_id: str, persona: Persona) -> None:
        if persona.id != persona_id:
            persona = persona.model_copy(update={"id": persona_id})
        with self._lock:
            self._personas[persona_id] = persona

    def ids(self) -> List[str]:
        return list(self._personas)

    def __contains__(self, persona_id: object) -> bool:
        return persona_id in self._personas
