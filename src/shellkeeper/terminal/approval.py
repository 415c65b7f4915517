"""Two-step approval protocol for agent-proposed commands.

A command that is dangerous, high-risk or flagged by the agent is not run
on first submission. The caller gets a pending outcome carrying the command
and must resubmit with ``approved=True``. Nothing about the pending state is
stored server-side; the approval flag travels with the request.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from ..audit import AuditLogger
from ..errors import CommandNotAllowed, RateLimited
from .executor import CommandExecutor, ExecutionResult
from .gate import RateLimiter, classify, is_high_risk

if TYPE_CHECKING:
    from ..session import SessionHandle

logger = logging.getLogger(__name__)

DANGEROUS_WARNING = "This is a dangerous command that modifies the filesystem"
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Wait at least {interval:g}s between commands."

Spawner = Callable[[Coroutine[Any, Any, ExecutionResult]], "asyncio.Future[ExecutionResult]"]


class WorkflowState(Enum):
    DIRECT = "direct"
    AWAITING_APPROVAL = "awaiting_approval"


@dataclass
class WorkflowOutcome:
    """Result of submitting a command.

    Either the command ran (``result`` set) or it awaits approval.
    """

    state: WorkflowState
    command: str
    result: ExecutionResult | None = None
    reason: str | None = None
    approved: bool = False

    @property
    def pending_approval(self) -> bool:
        return self.state is WorkflowState.AWAITING_APPROVAL


class ApprovalWorkflow:
    """Gate, approve, rate-limit, execute, record and audit a command."""

    def __init__(
        self,
        executor: CommandExecutor,
        audit: AuditLogger,
        rate_limiter: RateLimiter | None = None,
        spawn: Spawner | None = None,
    ) -> None:
        """Initialize the workflow.

        Args:
            executor: Runs commands that pass every check.
            audit: Receives approval, rejection and execution events.
            rate_limiter: Per-session minimum interval between executions.
            spawn: Schedules the execution task. Defaults to
                ``asyncio.ensure_future``; the server passes the session
                registry's tracker so shutdown waits for running commands.
        """
        self.executor = executor
        self.audit = audit
        self.rate_limiter = rate_limiter or RateLimiter()
        self._spawn = spawn or asyncio.ensure_future

    async def submit(
        self,
        handle: "SessionHandle",
        command: str,
        *,
        user_id: str | None,
        approved: bool,
        agent_hint: bool = False,
        approved_command: str | None = None,
    ) -> WorkflowOutcome:
        """Submit a command for execution. The caller holds ``handle.lock``.

        Raises:
            CommandNotAllowed: The command is off the allow-list. Checked
                before approval, so approving cannot unlock it.
            RateLimited: The session ran a command too recently.
        """
        session_id = handle.key
        command = command.strip()

        classification = classify(command)
        if not classification.allowed:
            self.audit.log_terminal_command(
                user_id=user_id,
                session_id=session_id,
                command=command,
                success=False,
                requires_approval=classification.dangerous,
                approved=approved,
                rejected_reason=classification.reason,
            )
            logger.info("Rejected command for session %s: %s", session_id, classification.reason)
            raise CommandNotAllowed(classification.reason)

        needs_approval = classification.dangerous or is_high_risk(command) or agent_hint

        if needs_approval:
            if approved and approved_command is not None:
                approved = approved_command.strip() == command
            self.audit.log_approval(
                user_id=user_id,
                session_id=session_id,
                command=command,
                approved=approved,
            )
            if not approved:
                return WorkflowOutcome(
                    state=WorkflowState.AWAITING_APPROVAL,
                    command=command,
                    reason=f'This command requires approval: "{command}"',
                )

        if not self.rate_limiter.check(session_id):
            message = RATE_LIMIT_MESSAGE.format(interval=self.rate_limiter.min_interval)
            self.audit.log_terminal_command(
                user_id=user_id,
                session_id=session_id,
                command=command,
                success=False,
                requires_approval=needs_approval,
                approved=approved and needs_approval,
                rejected_reason=message,
            )
            raise RateLimited(message)

        warning = DANGEROUS_WARNING if classification.dangerous else None
        record = handle.history.start(command, warning=warning, approved=approved and needs_approval)

        async def run_and_record() -> ExecutionResult:
            logger.info("Executing for session %s: %s", session_id, command)
            result = await self.executor.run(command)
            result.warning = warning
            result.execution_id = record.id
            handle.history.finish(record, result)
            self.audit.log_terminal_command(
                user_id=user_id,
                session_id=session_id,
                command=command,
                success=result.success,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                requires_approval=needs_approval,
                approved=record.approved,
                warning=warning,
                duration_ms=result.duration_ms,
            )
            return result

        # A client disconnect cancels the request, not the subprocess
        task = self._spawn(run_and_record())
        result = await asyncio.shield(task)

        return WorkflowOutcome(
            state=WorkflowState.DIRECT,
            command=command,
            result=result,
            approved=record.approved,
        )
