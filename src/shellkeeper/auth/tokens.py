"""Signed, expiring credentials binding a user id to a role."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from ..audit import AuditLogger
from ..errors import InvalidRole, InvalidSubject, MalformedToken, TokenExpired
from .roles import Role, parse_role

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_TYPE = "access-token"


@dataclass(frozen=True)
class Credential:
    """An issued token and what it grants."""

    token: str
    user_id: str
    role: Role
    expires_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "user_id": self.user_id,
            "role": self.role.value,
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class Principal:
    """The verified identity behind a request."""

    user_id: str
    role: Role


class CredentialManager:
    """Issues and verifies HS256 tokens.

    Every issue and verify outcome is written to the audit log when one is
    attached.
    """

    def __init__(
        self,
        secret: str | None = None,
        ttl_hours: float = 24.0,
        audit: AuditLogger | None = None,
    ) -> None:
        if not secret:
            secret = secrets.token_hex(32)
            logger.warning(
                "JWT_SECRET not set; generated a random secret. "
                "Tokens will not survive a restart."
            )
        self.secret = secret
        self.ttl_hours = ttl_hours
        self.audit = audit

    def issue(self, user_id: str, role: str | Role, ttl_hours: float | None = None) -> Credential:
        """Issue a credential.

        Raises:
            InvalidRole: The role is not recognized.
            InvalidSubject: The user id is empty.
        """
        parsed = parse_role(role)
        if parsed is None:
            self._audit(user_id, "issue_token", str(role), False, "invalid role")
            valid = ", ".join(r.value for r in Role)
            raise InvalidRole(f"Invalid role: {role}. Must be one of: {valid}")
        if not isinstance(user_id, str) or not user_id.strip():
            self._audit(None, "issue_token", parsed.value, False, "invalid subject")
            raise InvalidSubject("user_id is required and must be a non-empty string")

        ttl = ttl_hours if ttl_hours is not None else self.ttl_hours
        if ttl <= 0:
            raise ValueError("ttl_hours must be positive")

        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=ttl)
        claims = {
            "sub": user_id,
            "role": parsed.value,
            "type": TOKEN_TYPE,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self.secret, algorithm=ALGORITHM)

        self._audit(user_id, "issue_token", parsed.value, True, None)
        logger.info("Issued %s token for %s", parsed.value, user_id)
        return Credential(
            token=token,
            user_id=user_id,
            role=parsed,
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )

    def verify(self, token: str) -> Principal:
        """Verify a token and return who it belongs to.

        Raises:
            TokenExpired: The token is past its expiry.
            MalformedToken: Bad signature, bad structure or unknown role.
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            self._audit(None, "verify_token", None, False, "expired")
            raise TokenExpired("Token expired")
        except JWTError as e:
            self._audit(None, "verify_token", None, False, "malformed")
            raise MalformedToken(f"Invalid token: {e}")

        user_id = payload.get("sub")
        role = parse_role(payload.get("role"))
        if not isinstance(user_id, str) or not user_id or role is None:
            self._audit(None, "verify_token", None, False, "missing or invalid claims")
            raise MalformedToken("Invalid token: missing or invalid claims")

        self._audit(user_id, "verify_token", role.value, True, None)
        return Principal(user_id=user_id, role=role)

    def _audit(
        self,
        user_id: str | None,
        action: str,
        role: str | None,
        success: bool,
        reason: str | None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.log_auth(
            user_id=user_id,
            action=action,
            role=role,
            success=success,
            reason=reason,
        )
