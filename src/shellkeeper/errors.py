"""Error taxonomy shared by every layer.

Each error carries a stable ``category`` that is exposed across the HTTP
boundary, and the status code the server answers with.
"""


class ShellkeeperError(Exception):
    """Base class for errors surfaced to callers."""

    category = "Error"
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.category)
        self.message = message or self.category


class Unauthorized(ShellkeeperError):
    """Missing or invalid credential."""

    category = "Unauthorized"
    status_code = 401


class TokenExpired(Unauthorized):
    category = "Expired"


class MalformedToken(Unauthorized):
    category = "Malformed"


class Forbidden(ShellkeeperError):
    """Valid credential, insufficient role."""

    category = "Forbidden"
    status_code = 403


class InvalidRole(ShellkeeperError):
    category = "InvalidRole"
    status_code = 400


class InvalidSubject(ShellkeeperError):
    category = "InvalidSubject"
    status_code = 400


class InvalidSessionKey(ShellkeeperError):
    category = "InvalidSessionKey"
    status_code = 400


class CommandNotAllowed(ShellkeeperError):
    """Command is not on the allow-list."""

    category = "CommandNotAllowed"
    status_code = 403


class RateLimited(ShellkeeperError):
    category = "RateLimited"
    status_code = 429


class CommandTimeout(ShellkeeperError):
    category = "Timeout"
    status_code = 504


class UpstreamError(ShellkeeperError):
    """The agent call failed or returned an unusable structure."""

    category = "UpstreamError"
    status_code = 502


class StorageError(ShellkeeperError):
    """Session state could not be read or written."""

    category = "StorageError"
    status_code = 500
