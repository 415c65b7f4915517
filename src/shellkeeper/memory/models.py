"""Data models for session memory."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ROLES = ("user", "assistant")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Interaction:
    """One turn in a session's live window.

    Attributes:
        id: Session-local id, strictly increasing.
        role: 'user' or 'assistant'.
        text: The message text.
        timestamp: ISO timestamp when appended.
    """

    id: int
    role: str
    text: str
    timestamp: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Invalid role: {self.role}")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "role": self.role, "text": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Interaction":
        return cls(
            id=int(data["id"]),
            role=data["role"],
            text=str(data["text"]),
            timestamp=data["timestamp"],
        )


@dataclass(frozen=True)
class SummaryRange:
    start_id: int
    end_id: int


@dataclass(frozen=True)
class Summary:
    """Compacted replacement for a contiguous range of evicted interactions."""

    range: SummaryRange
    text: str
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "range": {"start_id": self.range.start_id, "end_id": self.range.end_id},
            "text": self.text,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Summary":
        return cls(
            range=SummaryRange(
                start_id=int(data["range"]["start_id"]),
                end_id=int(data["range"]["end_id"]),
            ),
            text=str(data["text"]),
            timestamp=data["timestamp"],
        )


@dataclass
class Personality:
    """Evolving personality state produced by the evolver."""

    traits: dict[str, Any] = field(default_factory=dict)
    evolved_at: str = field(default_factory=utc_now)
    interaction_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "traits": dict(self.traits),
            "evolved_at": self.evolved_at,
            "interaction_count": self.interaction_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Personality":
        traits = data.get("traits", {})
        if not isinstance(traits, dict):
            raise ValueError("personality traits must be an object")
        return cls(
            traits=traits,
            evolved_at=data["evolved_at"],
            interaction_count=int(data.get("interaction_count", 0)),
        )


@dataclass
class Session:
    """Conversational state for one session key."""

    key: str
    interactions: list[Interaction] = field(default_factory=list)
    summaries: list[Summary] = field(default_factory=list)
    next_interaction_id: int = 1
    personality: Personality | None = None
    personality_evolution_enabled: bool = True
    personality_immutable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "key": self.key,
            "interactions": [i.to_dict() for i in self.interactions],
            "summaries": [s.to_dict() for s in self.summaries],
            "next_interaction_id": self.next_interaction_id,
            "personality": self.personality.to_dict() if self.personality else None,
            "personality_evolution_enabled": self.personality_evolution_enabled,
            "personality_immutable": self.personality_immutable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create from dictionary.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError("session document must be an object")

        personality = data.get("personality")
        session = cls(
            key=str(data["key"]),
            interactions=[Interaction.from_dict(i) for i in data["interactions"]],
            summaries=[Summary.from_dict(s) for s in data["summaries"]],
            next_interaction_id=int(data["next_interaction_id"]),
            personality=Personality.from_dict(personality) if personality else None,
            personality_evolution_enabled=bool(data.get("personality_evolution_enabled", True)),
            personality_immutable=bool(data.get("personality_immutable", False)),
        )
        session.check_ids()
        return session

    def check_ids(self) -> None:
        """Raise ValueError if ids are not strictly increasing."""
        last = 0
        for summary in self.summaries:
            if summary.range.start_id <= last or summary.range.end_id < summary.range.start_id:
                raise ValueError("summary ranges out of order")
            last = summary.range.end_id
        for interaction in self.interactions:
            if interaction.id <= last:
                raise ValueError("interaction ids out of order")
            last = interaction.id
        if self.next_interaction_id <= last:
            raise ValueError("next_interaction_id behind stored ids")


@dataclass(frozen=True)
class MemoryContext:
    """What the agent sees of a session, oldest first."""

    interactions: tuple[Interaction, ...]
    summaries: tuple[Summary, ...]
    personality: Personality | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summaries": [s.to_dict() for s in self.summaries],
            "interactions": [i.to_dict() for i in self.interactions],
            "personality": self.personality.to_dict() if self.personality else None,
        }
