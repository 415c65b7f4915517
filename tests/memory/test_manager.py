"""Tests for MemoryManager."""

import pytest

from shellkeeper.config import SummaryOverflow
from shellkeeper.memory import (
    Interaction,
    MemoryManager,
    Personality,
    Session,
    SnapshotEvolver,
    TruncatingSummarizer,
)


class RecordingSummarizer:
    """Summarizer that records every batch it was given."""

    def __init__(self) -> None:
        self.batches: list[list[int]] = []

    async def summarize(self, interactions):
        ids = [i.id for i in interactions]
        self.batches.append(ids)
        return f"summary {ids[0]}-{ids[-1]}"


class FailingSummarizer:
    async def summarize(self, interactions):
        raise RuntimeError("boom")


class LongSummarizer:
    async def summarize(self, interactions):
        return "y" * 500


class CountingEvolver:
    def __init__(self) -> None:
        self.calls = 0

    async def evolve(self, personality, interactions, summaries):
        self.calls += 1
        return Personality(traits={"calls": self.calls}, interaction_count=len(interactions))


async def fill(manager: MemoryManager, session: Session, count: int, window: int = 3, summaries: int = 2):
    for n in range(count):
        role = "user" if n % 2 == 0 else "assistant"
        await manager.append(session, role, f"message {n}", interaction_window=window, summary_window=summaries)


class TestAppend:
    @pytest.mark.asyncio
    async def test_assigns_increasing_ids(self):
        """append assigns ids 1, 2, ..."""
        manager = MemoryManager(TruncatingSummarizer())
        session = Session(key="s")

        first = await manager.append(session, "user", "a", interaction_window=5, summary_window=2)
        second = await manager.append(session, "assistant", "b", interaction_window=5, summary_window=2)

        assert (first.id, second.id) == (1, 2)
        assert session.next_interaction_id == 3

    @pytest.mark.asyncio
    async def test_window_is_bounded(self):
        """The live window never exceeds its size."""
        manager = MemoryManager(RecordingSummarizer())
        session = Session(key="s")

        await fill(manager, session, 20, window=3, summaries=100)

        assert len(session.interactions) == 3
        assert [i.id for i in session.interactions] == [18, 19, 20]

    @pytest.mark.asyncio
    async def test_ids_strictly_increasing_across_evictions(self):
        """Ids keep increasing through evictions."""
        manager = MemoryManager(RecordingSummarizer())
        session = Session(key="s")

        await fill(manager, session, 12, window=2, summaries=2)

        session.check_ids()
        assert session.next_interaction_id == 13

    @pytest.mark.asyncio
    async def test_summarizer_called_once_per_eviction(self):
        """Each eviction summarizes exactly its batch."""
        summarizer = RecordingSummarizer()
        manager = MemoryManager(summarizer)
        session = Session(key="s")

        await fill(manager, session, 5, window=3, summaries=10)

        assert summarizer.batches == [[1], [2]]
        assert [(s.range.start_id, s.range.end_id) for s in session.summaries] == [(1, 1), (2, 2)]

    @pytest.mark.asyncio
    async def test_summarizer_failure_leaves_window_intact(self):
        """A summarizer failure undoes the append."""
        manager = MemoryManager(FailingSummarizer())
        session = Session(key="s")
        await fill(manager, session, 3, window=3)

        with pytest.raises(RuntimeError):
            await manager.append(session, "user", "overflow", interaction_window=3, summary_window=2)

        assert [i.id for i in session.interactions] == [1, 2, 3]
        assert session.next_interaction_id == 4
        assert session.summaries == []

    @pytest.mark.asyncio
    async def test_append_after_failure_reuses_id(self):
        """The id of a failed append is handed out again."""
        manager = MemoryManager(FailingSummarizer())
        session = Session(key="s")
        await fill(manager, session, 3, window=3)

        with pytest.raises(RuntimeError):
            await manager.append(session, "user", "overflow", interaction_window=3, summary_window=2)
        manager.summarizer = RecordingSummarizer()
        interaction = await manager.append(session, "user", "retry", interaction_window=3, summary_window=2)

        assert interaction.id == 4
        session.check_ids()


class TestOverflow:
    @pytest.mark.asyncio
    async def test_merge_keeps_contiguous_coverage(self):
        """Merged summaries cover ids without gaps."""
        manager = MemoryManager(RecordingSummarizer(), overflow=SummaryOverflow.MERGE)
        session = Session(key="s")

        await fill(manager, session, 10, window=2, summaries=2)

        assert len(session.summaries) == 2
        first, second = session.summaries
        assert first.range.start_id == 1
        assert second.range.start_id == first.range.end_id + 1
        assert second.range.end_id + 1 == session.interactions[0].id

    @pytest.mark.asyncio
    async def test_merge_concatenates_text(self):
        """A merge joins the two oldest texts."""
        manager = MemoryManager(RecordingSummarizer(), overflow=SummaryOverflow.MERGE)
        session = Session(key="s")

        await fill(manager, session, 4, window=1, summaries=2)

        assert session.summaries[0].text == "summary 1-1\nsummary 2-2"

    @pytest.mark.asyncio
    async def test_merged_text_respects_budget(self):
        """Merged text keeps its most recent part within budget."""
        manager = MemoryManager(RecordingSummarizer(), max_summary_chars=20)
        session = Session(key="s")

        await fill(manager, session, 10, window=1, summaries=2)

        assert all(len(s.text) <= 20 for s in session.summaries)
        assert session.summaries[0].text.startswith("\u2026")
        assert session.summaries[0].text.endswith("summary 8-8")

    @pytest.mark.asyncio
    async def test_long_summary_is_cut(self):
        """An oversized summary is cut to the budget."""
        manager = MemoryManager(LongSummarizer(), max_summary_chars=50)
        session = Session(key="s")

        await fill(manager, session, 2, window=1)

        assert len(session.summaries[0].text) == 50

    @pytest.mark.asyncio
    async def test_summary_text_bounded_over_long_conversation(self):
        """Total summary text stays bounded over thousands of turns."""
        manager = MemoryManager(TruncatingSummarizer(), max_summary_chars=500)
        session = Session(key="s")
        totals = {}

        for n in range(1, 2001):
            await manager.append(session, "user", "x" * 200, interaction_window=21, summary_window=3)
            if n in (100, 2000):
                totals[n] = sum(len(s.text) for s in session.summaries)

        assert totals[2000] <= 3 * 500
        assert totals[2000] <= totals[100] + 3 * 500
        session.check_ids()

    def test_invalid_budget(self):
        """A zero budget is rejected."""
        with pytest.raises(ValueError):
            MemoryManager(TruncatingSummarizer(), max_summary_chars=0)

    @pytest.mark.asyncio
    async def test_drop_discards_oldest(self):
        """The drop policy discards the oldest summary."""
        manager = MemoryManager(RecordingSummarizer(), overflow=SummaryOverflow.DROP)
        session = Session(key="s")

        await fill(manager, session, 6, window=2, summaries=2)

        assert [(s.range.start_id, s.range.end_id) for s in session.summaries] == [(3, 3), (4, 4)]

    @pytest.mark.asyncio
    async def test_context_size_is_bounded(self):
        """The context never exceeds both windows."""
        manager = MemoryManager(RecordingSummarizer())
        session = Session(key="s")

        await fill(manager, session, 50, window=4, summaries=3)
        context = manager.build_context(session)

        assert len(context.interactions) <= 4
        assert len(context.summaries) <= 3


class TestPersonality:
    @pytest.mark.asyncio
    async def test_evolves_after_summarization(self):
        """The personality evolves once per summarization."""
        evolver = CountingEvolver()
        manager = MemoryManager(RecordingSummarizer(), evolver)
        session = Session(key="s")

        await fill(manager, session, 3, window=3)
        assert evolver.calls == 0

        await manager.append(session, "user", "more", interaction_window=3, summary_window=2)
        assert evolver.calls == 1
        assert session.personality.traits == {"calls": 1}

    @pytest.mark.asyncio
    async def test_frozen_personality_does_not_evolve(self):
        """A frozen personality is left alone."""
        evolver = CountingEvolver()
        manager = MemoryManager(RecordingSummarizer(), evolver)
        session = Session(key="s")
        manager.freeze_personality(session)

        await fill(manager, session, 10, window=2)

        assert evolver.calls == 0
        assert session.personality is None

    @pytest.mark.asyncio
    async def test_evolution_disabled(self):
        """Disabled evolution never calls the evolver."""
        evolver = CountingEvolver()
        manager = MemoryManager(RecordingSummarizer(), evolver)
        session = Session(key="s")
        manager.set_evolution(session, False)

        await fill(manager, session, 10, window=2)

        assert evolver.calls == 0

    @pytest.mark.asyncio
    async def test_snapshot_evolver_keeps_traits(self):
        """SnapshotEvolver keeps traits and counts interactions."""
        manager = MemoryManager(RecordingSummarizer(), SnapshotEvolver())
        session = Session(key="s")
        session.personality = Personality(traits={"tone": "warm"})

        await fill(manager, session, 4, window=3)

        assert session.personality.traits == {"tone": "warm"}
        assert session.personality.interaction_count == 3


class TestClearAndStats:
    @pytest.mark.asyncio
    async def test_clear_resets(self):
        """clear empties the session but keeps its key."""
        manager = MemoryManager(RecordingSummarizer())
        session = Session(key="s")
        await fill(manager, session, 6, window=2)
        manager.freeze_personality(session)

        manager.clear(session)

        assert session.key == "s"
        assert session.interactions == []
        assert session.summaries == []
        assert session.next_interaction_id == 1
        assert session.personality_immutable is False

    def test_stats(self):
        """stats reports counts and personality state."""
        manager = MemoryManager(TruncatingSummarizer())
        session = Session(key="s", next_interaction_id=2)
        session.interactions.append(Interaction(id=1, role="user", text="hi"))

        stats = manager.stats(session)

        assert stats["interactions"] == 1
        assert stats["summaries"] == 0
        assert stats["next_interaction_id"] == 2
        assert stats["personality"] == "not yet evolved"

    def test_build_context_is_chronological(self):
        """The context lists interactions oldest first."""
        manager = MemoryManager(TruncatingSummarizer())
        session = Session(key="s", next_interaction_id=3)
        session.interactions.extend([
            Interaction(id=1, role="user", text="a"),
            Interaction(id=2, role="assistant", text="b"),
        ])

        context = manager.build_context(session)

        assert [i.id for i in context.interactions] == [1, 2]
        assert context.personality is None
