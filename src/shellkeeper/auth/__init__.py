"""Role-based access control and signed credentials."""

from .roles import ROLE_CAPABILITIES, Capability, Role, authorize, parse_role
from .tokens import Credential, CredentialManager, Principal

__all__ = [
    "ROLE_CAPABILITIES",
    "Capability",
    "Credential",
    "CredentialManager",
    "Principal",
    "Role",
    "authorize",
    "parse_role",
]
