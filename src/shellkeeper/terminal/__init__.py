"""Command safety gate, execution and approval workflow."""

from .approval import ApprovalWorkflow, WorkflowOutcome, WorkflowState
from .executor import CommandExecutor, ExecutionResult
from .gate import (
    ALLOWED_COMMANDS,
    DANGEROUS_COMMANDS,
    HIGH_RISK_PREFIXES,
    Classification,
    RateLimiter,
    classify,
    is_high_risk,
    require_allowed,
)
from .history import CommandExecutionRecord, CommandHistory, ExecutionStatus

__all__ = [
    "ALLOWED_COMMANDS",
    "DANGEROUS_COMMANDS",
    "HIGH_RISK_PREFIXES",
    "ApprovalWorkflow",
    "Classification",
    "CommandExecutionRecord",
    "CommandExecutor",
    "CommandHistory",
    "ExecutionResult",
    "ExecutionStatus",
    "RateLimiter",
    "WorkflowOutcome",
    "WorkflowState",
    "classify",
    "is_high_risk",
    "require_allowed",
]
