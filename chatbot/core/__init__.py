from chatbot.core.memory import ConversationStore
from chatbot.core.personas import Persona, PersonaRegistry, load_personas
from chatbot.core.prompt import render
from chatbot.core.rate_limit import RateLimiter
from chatbot.core.usage import UsageTracker

__all__ = [
    "ConversationStore",
    "Persona",
    "PersonaRegistry",
    "RateLimiter",
    "UsageTracker",
    "load_personas",
    "render",
]
