from __future__ import annotations

from typing import List, Optional

from chatbot.core.personas import Persona
from chatbot.models import ChatContext, Problem


CONTEXT_HEADER = "CURRENT CONTEXT:"
CODE_HEADER = "USER'S CURRENT CODE:"
CUSTOM_HEADER = "ADDITIONAL CONTEXT:"


def _problem_lines(problem: Problem) -> List[str]:
    lines: List[str] = []
    if problem.title:
        summary = f'- Problem: "{problem.title}"'
        if problem.difficulty:
            summary += f" ({problem.difficulty})"
        lines.append(summary)
    elif problem.difficulty:
        lines.append(f"- Problem Difficulty: {problem.difficulty}")
    if problem.description:
        lines.append(f"- Problem Description: {problem.description}")
    if problem.research_topics:
        lines.append(f"- Research Topics: {', '.join(problem.research_topics)}")
    return lines


def render_context(context: Optional[ChatContext]) -> str:
    """Render the labeled context block, or "" when no field is set."""
    if context is None:
        return ""

    lines: List[str] = []
    if context.subject:
        lines.append(f"- Subject: {context.subject}")
    if context.user_level:
        lines.append(f"- User Level: {context.user_level}")
    if context.current_topic:
        lines.append(f"- Current Topic: {context.current_topic}")
    if context.problem is not None:
        lines.extend(_problem_lines(context.problem))
    if context.user_code:
        lines.append(f"\n{CODE_HEADER}\n```\n{context.user_code}\n```")
    if context.hints_used is not None:
        lines.append(f"- Hints Used: {context.hints_used}")
    if context.custom_data:
        lines.append(f"\n{CUSTOM_HEADER}")
        lines.extend(f"- {key}: {value}" for key, value in context.custom_data.items())

    if not lines:
        return ""
    return CONTEXT_HEADER + "\n" + "\n".join(lines)


def render(persona: Persona, context: Optional[ChatContext] = None) -> str:
    """System prompt for ``persona`` with the set context fields appended.

    Pure: identical inputs always produce byte-identical output.
    """
    block = render_context(context)
    if not block:
        return persona.system_prompt_template
    return f"{persona.system_prompt_template}\n\n{block}"


def compose(system_prompt: str, message: str) -> str:
    return f"{system_prompt}\n\nUser Message: {message}"
