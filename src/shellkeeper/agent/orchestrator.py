"""Agent orchestrator: memory, agent call and command execution per turn."""

import json
import logging
from dataclasses import dataclass
from typing import Any, assert_never

from ..audit import AuditLogger
from ..config import MemoryConfig
from ..memory import MemoryManager, Session
from ..session import SessionHandle, SessionRegistry
from ..terminal.approval import ApprovalWorkflow, WorkflowOutcome
from .client import AgentClient
from .prompt import build_prompt
from .responses import AgentResponse, ChatReply, CodeReply, CommandReply

logger = logging.getLogger(__name__)


@dataclass
class ChatExecutionOutcome:
    """A chat reply and, when the agent proposed a command, what became of it."""

    reply: AgentResponse
    workflow: WorkflowOutcome | None = None


class AgentOrchestrator:
    """Runs chat turns against a session.

    Every method expects the caller to hold the session's lock (see
    ``SessionRegistry.acquire``).
    """

    def __init__(
        self,
        agent: AgentClient,
        memory: MemoryManager,
        registry: SessionRegistry,
        audit: AuditLogger,
        workflow: ApprovalWorkflow,
        config: MemoryConfig,
    ) -> None:
        self.agent = agent
        self.memory = memory
        self.registry = registry
        self.audit = audit
        self.workflow = workflow
        self.config = config

    async def chat(
        self,
        handle: SessionHandle,
        message: str,
        *,
        user_id: str | None,
        context: dict[str, Any] | None = None,
    ) -> AgentResponse:
        """One conversational turn.

        The user message and the reply are appended only after the agent
        answered, and together: if either append fails the session is
        restored, so a failed turn leaves it unchanged.

        Raises:
            UpstreamError: The agent call failed.
            StorageError: The session could not be persisted.
        """
        session = handle.session
        prompt = build_prompt(message, self.memory.build_context(session), context)
        reply = await self.agent.invoke(prompt)

        snapshot = session.to_dict()
        try:
            await self.memory.append(
                session, "user", message,
                interaction_window=self.config.interaction_window,
                summary_window=self.config.summary_window,
            )
            await self.memory.append(
                session, "assistant", json.dumps(reply.to_dict(), ensure_ascii=False),
                interaction_window=self.config.interaction_window,
                summary_window=self.config.summary_window,
            )
        except BaseException:
            handle.session = Session.from_dict(snapshot)
            raise
        self.registry.persist(handle)

        self.audit.log_chat(
            user_id=user_id,
            session_id=handle.key,
            user_message=message,
            response_type=reply.choice,
            has_command=isinstance(reply, CommandReply),
        )
        logger.debug("Session %s: %s reply", handle.key, reply.choice)
        return reply

    async def chat_and_execute(
        self,
        handle: SessionHandle,
        message: str,
        *,
        user_id: str | None,
        approval: bool = False,
        approved_command: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> ChatExecutionOutcome:
        """Chat, then route a proposed command through the approval workflow."""
        reply = await self.chat(handle, message, user_id=user_id, context=context)

        match reply:
            case CommandReply():
                outcome = await self.workflow.submit(
                    handle,
                    reply.command,
                    user_id=user_id,
                    approved=approval,
                    agent_hint=reply.requires_approval,
                    approved_command=approved_command,
                )
                return ChatExecutionOutcome(reply=reply, workflow=outcome)
            case ChatReply() | CodeReply():
                return ChatExecutionOutcome(reply=reply)
            case _:
                assert_never(reply)

    async def execute(
        self,
        handle: SessionHandle,
        command: str,
        *,
        user_id: str | None,
        approval: bool = False,
    ) -> WorkflowOutcome:
        """Run a caller-supplied command through the gate and workflow."""
        return await self.workflow.submit(
            handle,
            command,
            user_id=user_id,
            approved=approval,
        )
