"""Agent call, prompt building and per-turn orchestration."""

from .client import AgentClient
from .orchestrator import AgentOrchestrator, ChatExecutionOutcome
from .prompt import build_prompt, build_system_prompt
from .responses import (
    RESPONSE_SCHEMA,
    AgentResponse,
    ChatReply,
    CodeReply,
    CommandReply,
    parse_agent_response,
)

__all__ = [
    "RESPONSE_SCHEMA",
    "AgentClient",
    "AgentOrchestrator",
    "AgentResponse",
    "ChatExecutionOutcome",
    "ChatReply",
    "CodeReply",
    "CommandReply",
    "build_prompt",
    "build_system_prompt",
    "parse_agent_response",
]
