"""Structured agent responses.

The agent answers with exactly one of three shapes, discriminated by
``choice``: a conversational reply, generated code, or a proposed shell
command.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from ..errors import UpstreamError

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "choice": {
            "type": "string",
            "enum": ["response", "code", "terminalCommand"],
            "description": "Which kind of answer this is.",
        },
        "response": {"type": "string", "description": "Conversational reply."},
        "questions": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Follow-up questions for the user.",
        },
        "missingContext": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Information needed to answer better.",
        },
        "code": {"type": "string"},
        "language": {"type": "string"},
        "explanation": {"type": "string"},
        "terminalCommand": {
            "type": "string",
            "description": "A single shell command, no pipes or redirections.",
        },
        "reasoning": {"type": "string", "description": "Why this command."},
        "requiresApproval": {
            "type": "boolean",
            "description": "True if the command changes or deletes anything.",
        },
    },
    "required": ["choice"],
}


@dataclass(frozen=True)
class ChatReply:
    choice: ClassVar[str] = "response"

    response: str
    questions: list[str] = field(default_factory=list)
    missing_context: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "choice": self.choice,
            "response": self.response,
            "questions": list(self.questions),
            "missingContext": list(self.missing_context),
        }


@dataclass(frozen=True)
class CodeReply:
    choice: ClassVar[str] = "code"

    code: str
    language: str = ""
    explanation: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "choice": self.choice,
            "code": self.code,
            "language": self.language,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class CommandReply:
    choice: ClassVar[str] = "terminalCommand"

    command: str
    reasoning: str = ""
    requires_approval: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "choice": self.choice,
            "terminalCommand": self.command,
            "reasoning": self.reasoning,
            "requiresApproval": self.requires_approval,
        }


AgentResponse = Union[ChatReply, CodeReply, CommandReply]


def _string(data: dict[str, Any], key: str, *, required: bool = False) -> str:
    value = data.get(key)
    if value is None:
        if required:
            raise UpstreamError(f"Agent response missing '{key}'")
        return ""
    if not isinstance(value, str):
        raise UpstreamError(f"Agent response field '{key}' must be a string")
    return value


def _strings(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise UpstreamError(f"Agent response field '{key}' must be a list")
    return [str(item) for item in value]


def parse_agent_response(data: Any) -> AgentResponse:
    """Build a typed response from the decoded JSON payload.

    Raises:
        UpstreamError: The payload does not match any response shape.
    """
    if not isinstance(data, dict):
        raise UpstreamError("Agent response must be a JSON object")

    choice = data.get("choice")
    if choice == ChatReply.choice:
        return ChatReply(
            response=_string(data, "response", required=True),
            questions=_strings(data, "questions"),
            missing_context=_strings(data, "missingContext"),
        )
    if choice == CodeReply.choice:
        return CodeReply(
            code=_string(data, "code", required=True),
            language=_string(data, "language"),
            explanation=_string(data, "explanation"),
        )
    if choice == CommandReply.choice:
        command = _string(data, "terminalCommand", required=True).strip()
        if not command:
            raise UpstreamError("Agent proposed an empty command")
        return CommandReply(
            command=command,
            reasoning=_string(data, "reasoning"),
            requires_approval=bool(data.get("requiresApproval", False)),
        )
    raise UpstreamError(f"Unknown agent response choice: {choice!r}")
