"""Command safety gate: allow-list classification and per-session rate limiting."""

import re
import shlex
import time
from dataclasses import dataclass
from typing import Callable

from ..errors import CommandNotAllowed

# Commands the agent may run at all. Everything else is rejected.
ALLOWED_COMMANDS = frozenset({
    # Filesystem inspection
    "ls", "pwd", "cat", "head", "tail", "find", "du", "df", "wc",
    # Filesystem changes
    "mkdir", "touch", "rm", "cp", "mv", "chmod",
    # Text processing
    "grep", "sort", "uniq", "awk", "sed", "echo",
    # Version control and tooling
    "git", "npm", "node",
    # Processes
    "ps", "kill",
    # Archives
    "tar", "zip", "unzip", "gzip", "gunzip",
    # Networking and remote access
    "curl", "ssh", "scp", "ssh-keygen", "ssh-copy-id",
    # Utilities
    "date", "whoami",
})

# Commands that need explicit approval, whether or not they are allowed
DANGEROUS_COMMANDS = frozenset({
    "rm", "rmdir", "dd", "mkfs",
    "kill", "killall", "pkill",
    "chmod", "chown",
    "sudo", "su", "passwd",
    "ssh", "scp", "ssh-keygen", "ssh-copy-id",
    "shutdown", "reboot",
})

# Leading tokens that always need approval
HIGH_RISK_PREFIXES = frozenset({
    "rm", "kill", "apt", "apt-get", "systemctl", "service",
    "ufw", "iptables", "passwd", "reboot", "shutdown",
})

# Shell control operators. Commands run as argv, never through a shell.
FORBIDDEN_PATTERNS = [
    r"\|",      # Pipes and OR
    r"&",       # AND and background
    r";",       # Command separator
    r">",       # Output redirection
    r"<",       # Input redirection
    r"\$\(",    # Command substitution
    r"`",       # Backtick substitution
    r"\$\{",    # Variable expansion with braces
]


@dataclass(frozen=True)
class Classification:
    """Gate verdict for a command.

    Attributes:
        allowed: The command may run (possibly after approval).
        dangerous: The command needs explicit approval.
        reason: Why an unallowed command was rejected.
    """

    allowed: bool
    dangerous: bool
    reason: str | None = None


def split_command(command: str) -> list[str]:
    """Split a command into argv. Raises ValueError on bad quoting."""
    return shlex.split(command)


def leading_token(command: str) -> str | None:
    try:
        argv = split_command(command)
    except ValueError:
        parts = command.split()
        return parts[0] if parts else None
    return argv[0] if argv else None


def classify(command: str) -> Classification:
    """Classify a command against the allow-list and the dangerous set."""
    if not isinstance(command, str) or not command.strip():
        return Classification(allowed=False, dangerous=False, reason="Empty command")

    base_cmd = leading_token(command)
    dangerous = base_cmd in DANGEROUS_COMMANDS

    for pattern in FORBIDDEN_PATTERNS:
        if re.search(pattern, command):
            return Classification(
                allowed=False,
                dangerous=dangerous,
                reason=f"Shell operators not allowed: {pattern}",
            )

    try:
        split_command(command)
    except ValueError as e:
        return Classification(allowed=False, dangerous=dangerous, reason=f"Invalid command syntax: {e}")

    if base_cmd not in ALLOWED_COMMANDS:
        return Classification(
            allowed=False,
            dangerous=dangerous,
            reason=f"Command not allowed: {base_cmd}",
        )

    return Classification(allowed=True, dangerous=dangerous)


def is_high_risk(command: str) -> bool:
    """Check the fixed high-risk prefixes, independent of the allow-list."""
    try:
        tokens = split_command(command)
    except ValueError:
        tokens = command.split()
    if not tokens:
        return False
    return "sudo" in tokens or tokens[0] in HIGH_RISK_PREFIXES


def require_allowed(command: str) -> Classification:
    """Classify, raising CommandNotAllowed for commands off the allow-list."""
    classification = classify(command)
    if not classification.allowed:
        raise CommandNotAllowed(classification.reason)
    return classification


class RateLimiter:
    """Minimum wall-clock interval between executions, per session.

    Not thread-safe; callers hold the session's lock.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._last: dict[str, float] = {}

    def check(self, session_id: str) -> bool:
        """Accept and record now, or reject without touching the baseline."""
        now = self._clock()
        last = self._last.get(session_id)
        if last is not None and now - last < self.min_interval:
            return False
        self._last[session_id] = now
        return True

    def forget(self, session_id: str) -> None:
        self._last.pop(session_id, None)
