"""Session memory: bounded live window with summary rollup."""

from .manager import MemoryManager
from .models import Interaction, MemoryContext, Personality, Session, Summary, SummaryRange
from .store import SessionStore, validate_session_key
from .summarizer import (
    GroqPersonalityEvolver,
    GroqSummarizer,
    PersonalityEvolver,
    SnapshotEvolver,
    Summarizer,
    TruncatingSummarizer,
)

__all__ = [
    "GroqPersonalityEvolver",
    "GroqSummarizer",
    "Interaction",
    "MemoryContext",
    "MemoryManager",
    "Personality",
    "PersonalityEvolver",
    "Session",
    "SessionStore",
    "SnapshotEvolver",
    "Summarizer",
    "Summary",
    "SummaryRange",
    "TruncatingSummarizer",
    "validate_session_key",
]
