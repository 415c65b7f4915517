"""Prompt builder for the agent."""

import json
from typing import Any

from ..memory import MemoryContext
from ..terminal.gate import ALLOWED_COMMANDS

SYSTEM_PROMPT_BASE = """You are Shellkeeper, a helpful assistant with persistent memory that can hold a conversation, write code, or propose terminal commands to run on the user's machine.

Answer with exactly one of:
- "response": a conversational reply, with optional follow-up questions
- "code": generated code with its language and a short explanation
- "terminalCommand": a single shell command, with your reasoning

Rules for terminal commands:
- Only these programs are available: {allowed_commands}
- One command only. No pipes, redirections, command chaining or substitution
- Set requiresApproval to true for anything that deletes, overwrites or changes permissions

You have access to summaries of past conversations and can reference important facts and decisions.

Always return valid JSON matching this schema:
{schema}"""


def build_system_prompt(schema: dict[str, Any]) -> str:
    return SYSTEM_PROMPT_BASE.format(
        allowed_commands=", ".join(sorted(ALLOWED_COMMANDS)),
        schema=json.dumps(schema, indent=2),
    )


def format_memory(memory: MemoryContext) -> str:
    """Render personality, summaries and live interactions, oldest first."""
    sections = []

    if memory.personality is not None and memory.personality.traits:
        traits = json.dumps(memory.personality.traits, ensure_ascii=False)
        sections.append(f"[Personality]\n{traits}")

    if memory.summaries:
        lines = [
            f"- ({s.range.start_id}-{s.range.end_id}) {s.text}"
            for s in memory.summaries
        ]
        sections.append("[Conversation Summaries]\n" + "\n".join(lines))

    if memory.interactions:
        lines = [f"{i.role}: {i.text}" for i in memory.interactions]
        sections.append("[Recent Conversation]\n" + "\n".join(lines))

    return "\n\n".join(sections)


def build_prompt(
    message: str,
    memory: MemoryContext | None = None,
    context: dict[str, Any] | None = None,
) -> str:
    """Build the user prompt for one turn.

    Args:
        message: The user's message.
        memory: Session memory to include ahead of the message.
        context: Extra client-supplied context, appended as a JSON block.

    Returns:
        Complete prompt string.
    """
    parts = []
    if memory is not None:
        rendered = format_memory(memory)
        if rendered:
            parts.append(rendered)

    text = message
    if context:
        text += "\n\n[Additional Context]\n" + json.dumps(context, indent=2, ensure_ascii=False)
    parts.append(f"[User Message]\n{text}")

    return "\n\n".join(parts)
