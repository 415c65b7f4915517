"""Runtime configuration loaded from the environment."""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

DEFAULT_HOME = Path.home() / ".shellkeeper"


class SummaryOverflow(Enum):
    """What happens to the oldest summaries once the summary window is full."""

    MERGE = "merge"
    DROP = "drop"


@dataclass
class MemoryConfig:
    """Configuration for the session memory store.

    Attributes:
        sessions_dir: Directory holding one JSON document per session.
        interaction_window: Maximum live interactions kept per session.
        summary_window: Maximum summaries kept per session.
        overflow: Policy applied when summaries exceed the window.
        personality_evolution: Whether new sessions evolve a personality.
        max_summary_chars: Character budget for one summary's text.
        session_ttl: Seconds an idle, unmodified session stays loaded.
        cleanup_interval: Seconds between sweeps for idle sessions.
    """

    sessions_dir: Path | None = None
    interaction_window: int = 21
    summary_window: int = 3
    overflow: SummaryOverflow = SummaryOverflow.MERGE
    personality_evolution: bool = True
    max_summary_chars: int = 2000
    session_ttl: float = 3600  # 1 hour
    cleanup_interval: float = 300  # 5 minutes

    def __post_init__(self) -> None:
        if self.sessions_dir is None:
            self.sessions_dir = DEFAULT_HOME / "sessions"
        if self.interaction_window < 1:
            raise ValueError("interaction_window must be at least 1")
        if self.summary_window < 1:
            raise ValueError("summary_window must be at least 1")
        if self.max_summary_chars < 1:
            raise ValueError("max_summary_chars must be at least 1")
        if self.session_ttl <= 0:
            raise ValueError("session_ttl must be positive")
        if self.cleanup_interval <= 0:
            raise ValueError("cleanup_interval must be positive")


@dataclass
class TerminalConfig:
    """Configuration for command execution."""

    working_directory: Path | None = None
    timeout: float = 30.0
    max_output_bytes: int = 5000
    min_interval: float = 1.0

    def __post_init__(self) -> None:
        if self.working_directory is None:
            self.working_directory = Path.cwd()
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_output_bytes < 1:
            raise ValueError("max_output_bytes must be at least 1")
        if self.min_interval < 0:
            raise ValueError("min_interval cannot be negative")


@dataclass
class AuthConfig:
    """Configuration for credential issuance."""

    jwt_secret: str | None = None
    token_ttl_hours: float = 24.0

    def __post_init__(self) -> None:
        if self.token_ttl_hours <= 0:
            raise ValueError("token_ttl_hours must be positive")


@dataclass
class AgentConfig:
    """Configuration for the upstream agent call."""

    model: str = "llama-3.1-70b-versatile"
    temperature: float = 0.7
    api_key: str | None = None


@dataclass
class Settings:
    """Top-level settings for the server."""

    memory: MemoryConfig = field(default_factory=MemoryConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    audit_dir: Path | None = None
    host: str = "127.0.0.1"
    port: int = 3002
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.audit_dir is None:
            self.audit_dir = DEFAULT_HOME / "auditlogs"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        home = Path(os.getenv("SHELLKEEPER_HOME", str(DEFAULT_HOME)))

        memory = MemoryConfig(
            sessions_dir=Path(os.getenv("SESSIONS_DIR", str(home / "sessions"))),
            interaction_window=int(os.getenv("INTERACTION_WINDOW", "21")),
            summary_window=int(os.getenv("SUMMARY_WINDOW", "3")),
            overflow=SummaryOverflow(os.getenv("SUMMARY_OVERFLOW", "merge").lower()),
            personality_evolution=_env_bool("PERSONALITY_EVOLUTION", True),
            max_summary_chars=int(os.getenv("SUMMARY_MAX_CHARS", "2000")),
            session_ttl=float(os.getenv("SESSION_TTL", "3600")),
            cleanup_interval=float(os.getenv("SESSION_CLEANUP_INTERVAL", "300")),
        )

        working_dir = os.getenv("WORKING_DIRECTORY")
        terminal = TerminalConfig(
            working_directory=Path(working_dir) if working_dir else None,
            timeout=float(os.getenv("COMMAND_TIMEOUT", "30")),
            max_output_bytes=int(os.getenv("MAX_OUTPUT_BYTES", "5000")),
            min_interval=float(os.getenv("MIN_COMMAND_INTERVAL", "1.0")),
        )

        auth = AuthConfig(
            jwt_secret=os.getenv("JWT_SECRET") or None,
            token_ttl_hours=float(os.getenv("TOKEN_TTL_HOURS", "24")),
        )

        agent = AgentConfig(
            model=os.getenv("GROQ_MODEL", "llama-3.1-70b-versatile"),
            temperature=float(os.getenv("AGENT_TEMPERATURE", "0.7")),
            api_key=os.getenv("GROQ_API_KEY"),
        )

        return cls(
            memory=memory,
            terminal=terminal,
            auth=auth,
            agent=agent,
            audit_dir=Path(os.getenv("AUDIT_DIR", str(home / "auditlogs"))),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "3002")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
