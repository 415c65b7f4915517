"""Memory manager: bounded live window with summary rollup."""

from __future__ import annotations

import logging
from typing import Any

from ..config import SummaryOverflow
from .models import Interaction, MemoryContext, Session, Summary, SummaryRange
from .summarizer import PersonalityEvolver, Summarizer

logger = logging.getLogger(__name__)


class MemoryManager:
    """Orchestrates memory operations on a session.

    Every append checks the live window. When it overflows, the oldest
    excess interactions are summarized in one call and replaced by a
    ``Summary``. Summaries are themselves capped; the overflow policy decides
    whether the oldest are merged or dropped. Each summary's text is held to
    ``max_summary_chars``, so a merge compacts instead of growing without bound.

    The manager never persists anything; callers persist the session after
    mutating it.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        evolver: PersonalityEvolver | None = None,
        overflow: SummaryOverflow = SummaryOverflow.MERGE,
        max_summary_chars: int = 2000,
    ) -> None:
        """Initialize the manager.

        Args:
            summarizer: Produces summary text for evicted interactions.
            evolver: Optional personality evolver, run after each rollup.
            overflow: Policy for summaries beyond the summary window.
            max_summary_chars: Character budget for a single summary's text.
        """
        if max_summary_chars < 1:
            raise ValueError("max_summary_chars must be at least 1")
        self.summarizer = summarizer
        self.evolver = evolver
        self.overflow = overflow
        self.max_summary_chars = max_summary_chars

    async def append(
        self,
        session: Session,
        role: str,
        text: str,
        *,
        interaction_window: int,
        summary_window: int,
    ) -> Interaction:
        """Append an interaction and roll up the window if needed.

        Returns:
            The appended interaction with its assigned id.

        Raises:
            Whatever the summarizer raises. The append is undone first, so the
            session is exactly as it was before the call.
        """
        interaction = Interaction(id=session.next_interaction_id, role=role, text=text)
        session.interactions.append(interaction)
        session.next_interaction_id += 1

        excess = len(session.interactions) - interaction_window
        if excess > 0:
            batch = session.interactions[:excess]
            try:
                summary_text = await self.summarizer.summarize(batch)
            except BaseException:
                # Cancellation included
                session.interactions.pop()
                session.next_interaction_id -= 1
                raise
            del session.interactions[:excess]
            session.summaries.append(Summary(
                range=SummaryRange(start_id=batch[0].id, end_id=batch[-1].id),
                text=self._fit(summary_text),
            ))
            logger.debug(
                "Session %s: summarized interactions %d-%d",
                session.key, batch[0].id, batch[-1].id,
            )
            self._apply_overflow(session, summary_window)
            await self._maybe_evolve(session)

        return interaction

    def _apply_overflow(self, session: Session, summary_window: int) -> None:
        while len(session.summaries) > summary_window:
            if self.overflow is SummaryOverflow.DROP or len(session.summaries) < 2:
                session.summaries.pop(0)
                continue

            first, second = session.summaries[0], session.summaries[1]
            merged = Summary(
                range=SummaryRange(start_id=first.range.start_id, end_id=second.range.end_id),
                text=self._fit(f"{first.text}\n{second.text}"),
                timestamp=second.timestamp,
            )
            session.summaries[0:2] = [merged]

    def _fit(self, text: str) -> str:
        """Keep the most recent part of ``text`` within the summary budget."""
        if len(text) <= self.max_summary_chars:
            return text
        if self.max_summary_chars == 1:
            return text[-1]
        return "\u2026" + text[-(self.max_summary_chars - 1):]

    async def _maybe_evolve(self, session: Session) -> None:
        if self.evolver is None:
            return
        if not session.personality_evolution_enabled or session.personality_immutable:
            return

        session.personality = await self.evolver.evolve(
            session.personality,
            list(session.interactions),
            list(session.summaries),
        )

    def build_context(self, session: Session) -> MemoryContext:
        """Return the live window, summaries and personality, oldest first."""
        return MemoryContext(
            interactions=tuple(session.interactions),
            summaries=tuple(session.summaries),
            personality=session.personality,
        )

    def clear(self, session: Session, *, evolution_enabled: bool = True) -> None:
        """Reset a session to the empty state, keeping its key."""
        session.interactions.clear()
        session.summaries.clear()
        session.next_interaction_id = 1
        session.personality = None
        session.personality_evolution_enabled = evolution_enabled
        session.personality_immutable = False

    def freeze_personality(self, session: Session) -> None:
        """Prevent any further personality evolution."""
        session.personality_immutable = True

    def set_evolution(self, session: Session, enabled: bool) -> None:
        session.personality_evolution_enabled = enabled

    def stats(self, session: Session) -> dict[str, Any]:
        """Session statistics for display."""
        return {
            "interactions": len(session.interactions),
            "summaries": len(session.summaries),
            "next_interaction_id": session.next_interaction_id,
            "personality": "evolved" if session.personality else "not yet evolved",
            "personality_evolution_enabled": session.personality_evolution_enabled,
            "personality_immutable": session.personality_immutable,
        }
