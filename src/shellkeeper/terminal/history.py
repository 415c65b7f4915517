"""In-memory per-session command execution history."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .executor import ExecutionResult


class ExecutionStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class CommandExecutionRecord:
    """One execution attempt. Frozen in practice once its status is terminal."""

    id: int
    timestamp: str
    session_id: str
    command: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    warning: str | None = None
    error: str | None = None
    approved: bool = False
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class CommandHistory:
    """Ordered execution records for one session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._records: list[CommandExecutionRecord] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._records)

    @property
    def has_pending(self) -> bool:
        """True while any execution has not finished."""
        return any(r.status is ExecutionStatus.PENDING for r in self._records)

    def start(
        self,
        command: str,
        *,
        warning: str | None = None,
        approved: bool = False,
    ) -> CommandExecutionRecord:
        """Append a pending record for an execution about to start."""
        record = CommandExecutionRecord(
            id=self._next_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            session_id=self.session_id,
            command=command,
            warning=warning,
            approved=approved,
        )
        self._next_id += 1
        self._records.append(record)
        return record

    def finish(self, record: CommandExecutionRecord, result: ExecutionResult) -> None:
        """Set the terminal status of a pending record."""
        if record.status is not ExecutionStatus.PENDING:
            raise ValueError(f"Record {record.id} already finished")
        record.stdout = result.stdout
        record.stderr = result.stderr
        record.exit_code = result.exit_code
        record.error = result.error
        record.duration_ms = result.duration_ms
        record.status = ExecutionStatus.SUCCESS if result.success else ExecutionStatus.FAILED

    def recent(self, limit: int = 50) -> list[CommandExecutionRecord]:
        """Most recent records, oldest first."""
        if limit <= 0:
            return []
        return self._records[-limit:]

    def stats(self) -> dict[str, int]:
        return {
            "total_commands": len(self._records),
            "successful": sum(1 for r in self._records if r.status is ExecutionStatus.SUCCESS),
            "failed": sum(1 for r in self._records if r.status is ExecutionStatus.FAILED),
            "pending": sum(1 for r in self._records if r.status is ExecutionStatus.PENDING),
            "dangerous": sum(1 for r in self._records if r.warning),
        }

    def clear(self) -> None:
        self._records.clear()
