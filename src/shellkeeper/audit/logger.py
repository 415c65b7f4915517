"""JSONL audit logger for commands, chats, auth decisions and approvals."""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from .models import AuditEntry, AuditEventType, AuditFilter

logger = logging.getLogger(__name__)

# Longest command text kept in a single audit record
MAX_COMMAND_LENGTH = 500


class AuditLogger:
    """Append-only audit trail, one JSON object per line.

    Writing never raises: a failed write is reported on the operational
    logger so the action being audited still goes ahead. Reading tolerates a
    missing file and partially written lines.
    """

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "auditlog.jsonl",
    ) -> None:
        if log_dir is None:
            log_dir = Path.cwd() / "auditlogs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self._lock = threading.Lock()

    @property
    def log_path(self) -> Path:
        """Current audit file path."""
        return self.log_dir / self.filename

    def write(self, entry: AuditEntry) -> bool:
        """Append an entry. Returns False if it could not be written."""
        line = json.dumps(entry.to_dict(), ensure_ascii=False) + "\n"
        try:
            with self._lock:
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as e:
            logger.error("Failed to write audit entry (%s): %s", entry.type.value, e)
            return False
        return True

    def log_terminal_command(
        self,
        *,
        user_id: str | None,
        session_id: str,
        command: str,
        success: bool,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
        requires_approval: bool = False,
        approved: bool = False,
        warning: str | None = None,
        duration_ms: float | None = None,
        rejected_reason: str | None = None,
    ) -> bool:
        """Log a command execution or a gate rejection.

        Only output lengths are recorded, never the output itself.
        """
        fields: dict[str, Any] = {
            "command": command[:MAX_COMMAND_LENGTH],
            "success": success,
            "exit_code": exit_code,
            "stdout_length": len(stdout) if stdout else 0,
            "stderr_length": len(stderr) if stderr else 0,
            "requires_approval": requires_approval,
            "approved": approved,
            "has_warning": bool(warning),
            "duration_ms": duration_ms,
        }
        if rejected_reason:
            fields["rejected_reason"] = rejected_reason
        return self.write(AuditEntry(
            type=AuditEventType.TERMINAL_COMMAND,
            user_id=user_id,
            session_id=session_id,
            fields=fields,
        ))

    def log_chat(
        self,
        *,
        user_id: str | None,
        session_id: str,
        user_message: str,
        response_type: str,
        has_command: bool,
    ) -> bool:
        """Log a chat turn (message length only, not content)."""
        return self.write(AuditEntry(
            type=AuditEventType.CHAT_MESSAGE,
            user_id=user_id,
            session_id=session_id,
            fields={
                "user_message_length": len(user_message),
                "response_type": response_type,
                "has_command": has_command,
            },
        ))

    def log_auth(
        self,
        *,
        user_id: str | None,
        action: str,
        role: str | None,
        success: bool,
        reason: str | None = None,
    ) -> bool:
        """Log an authentication or authorization decision."""
        return self.write(AuditEntry(
            type=AuditEventType.AUTH,
            user_id=user_id,
            fields={
                "action": action,
                "role": role,
                "success": success,
                "reason": reason,
            },
        ))

    def log_approval(
        self,
        *,
        user_id: str | None,
        session_id: str,
        command: str,
        approved: bool,
    ) -> bool:
        """Log an approval decision for a dangerous command."""
        return self.write(AuditEntry(
            type=AuditEventType.APPROVAL,
            user_id=user_id,
            session_id=session_id,
            fields={
                "command": command[:MAX_COMMAND_LENGTH],
                "approved": approved,
            },
        ))

    def _load_entries(self) -> list[dict[str, Any]]:
        entries: list[dict[str, Any]] = []
        try:
            with open(self.log_path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        # Partial line left by an interrupted write
                        continue
                    if isinstance(data, dict):
                        entries.append(data)
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read audit log %s: %s", self.log_path, e)
            return []
        return entries

    def read(self, filter: AuditFilter | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """Read entries, most recent first.

        Args:
            filter: Optional criteria; entries must match all set fields.
            limit: Maximum number of entries to return.

        Returns:
            Matching entries, newest first. Empty if the log is unavailable.
        """
        if limit <= 0:
            return []

        filter = filter or AuditFilter()
        results = []
        for entry in reversed(self._load_entries()):
            if filter.matches(entry):
                results.append(entry)
                if len(results) >= limit:
                    break
        return results

    def user_stats(self, user_id: str) -> dict[str, Any]:
        """Summarize a user's recorded activity."""
        entries = self.read(AuditFilter(user_id=user_id), limit=1000)
        commands = [e for e in entries if e.get("type") == AuditEventType.TERMINAL_COMMAND.value]

        return {
            "user_id": user_id,
            "total_actions": len(entries),
            "chat_messages": sum(
                1 for e in entries if e.get("type") == AuditEventType.CHAT_MESSAGE.value
            ),
            "terminal_commands": len(commands),
            "successful_commands": sum(1 for e in commands if e.get("success")),
            "failed_commands": sum(1 for e in commands if not e.get("success")),
            "approved_commands": sum(1 for e in commands if e.get("approved")),
            "last_action": entries[0]["timestamp"] if entries else None,
        }
