"""Role model: which capabilities each role grants."""

from enum import Enum


class Role(str, Enum):
    """Credential roles, ordered public < team < admin."""

    PUBLIC = "public"
    TEAM = "team"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank >= other.rank


_RANKS = {Role.PUBLIC: 0, Role.TEAM: 1, Role.ADMIN: 2}


class Capability(str, Enum):
    CHAT = "chat"
    TERMINAL = "terminal"
    # Issue tokens and read audit data
    AUTH = "auth"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.PUBLIC: frozenset({Capability.CHAT}),
    Role.TEAM: frozenset({Capability.CHAT, Capability.TERMINAL}),
    Role.ADMIN: frozenset({Capability.CHAT, Capability.TERMINAL, Capability.AUTH}),
}


def parse_role(value: str | Role | None) -> Role | None:
    """Return the matching Role, or None if the value names no role."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def authorize(role: str | Role | None, capability: Capability) -> bool:
    """Whether a role grants a capability. Unknown roles grant nothing."""
    parsed = parse_role(role)
    if parsed is None:
        return False
    return capability in ROLE_CAPABILITIES[parsed]
