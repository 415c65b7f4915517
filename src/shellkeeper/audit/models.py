"""Audit record types."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AuditEventType(Enum):
    TERMINAL_COMMAND = "terminal_command"
    CHAT_MESSAGE = "chat_message"
    AUTH = "auth"
    APPROVAL = "approval"


@dataclass(frozen=True)
class AuditEntry:
    """A single audit record, written as one JSON line."""

    type: AuditEventType
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    user_id: str | None = None
    session_id: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a dict, omitting unset identity fields."""
        data: dict[str, Any] = {"timestamp": self.timestamp, "type": self.type.value}
        if self.user_id is not None:
            data["user_id"] = self.user_id
        if self.session_id is not None:
            data["session_id"] = self.session_id
        data.update(self.fields)
        return data


@dataclass
class AuditFilter:
    """Criteria for reading the audit log. Unset fields match everything."""

    type: AuditEventType | None = None
    user_id: str | None = None
    session_id: str | None = None
    since: datetime | None = None
    until: datetime | None = None

    def matches(self, entry: dict[str, Any]) -> bool:
        if self.type is not None and entry.get("type") != self.type.value:
            return False
        if self.user_id is not None and entry.get("user_id") != self.user_id:
            return False
        if self.session_id is not None and entry.get("session_id") != self.session_id:
            return False
        if self.since is not None or self.until is not None:
            ts = _parse_timestamp(entry.get("timestamp"))
            if ts is None:
                return False
            if self.since is not None and ts < _aware(self.since):
                return False
            if self.until is not None and ts > _aware(self.until):
                return False
        return True


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return _aware(datetime.fromisoformat(value))
    except ValueError:
        return None
