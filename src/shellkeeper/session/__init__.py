"""Session registry and per-session concurrency control."""

from .registry import SessionHandle, SessionRegistry

__all__ = ["SessionHandle", "SessionRegistry"]
