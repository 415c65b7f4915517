"""Summarization and personality evolution collaborators.

The memory manager only depends on the two protocols below. The placeholder
implementations are deterministic; the Groq-backed ones call the model and
fall back to the placeholder behaviour when the call fails.
"""

import json
import logging
from typing import Any, Protocol, Sequence

from groq import AsyncGroq

from .models import Interaction, Personality, Summary, utc_now

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = """Summarize the following conversation excerpt in a few sentences.
Keep names, decisions, commands that were run and facts the user stated.
Reply with the summary text only.

Conversation:
"""

EVOLUTION_PROMPT = """You maintain the personality of an assistant as a JSON object of traits.
Given the current traits and the recent conversation, return an updated trait map.

Return ONLY valid JSON:
{"traits": {"<trait>": <value>, ...}}

Current traits:
"""


class Summarizer(Protocol):
    async def summarize(self, interactions: Sequence[Interaction]) -> str:
        """Return a summary text for a batch of evicted interactions."""
        ...


class PersonalityEvolver(Protocol):
    async def evolve(
        self,
        personality: Personality | None,
        interactions: Sequence[Interaction],
        summaries: Sequence[Summary],
    ) -> Personality:
        """Return the next personality state."""
        ...


def format_interactions(interactions: Sequence[Interaction], max_chars: int | None = None) -> str:
    lines = []
    for interaction in interactions:
        text = interaction.text
        if max_chars is not None and len(text) > max_chars:
            text = text[:max_chars] + "..."
        lines.append(f"{interaction.role}: {text}")
    return "\n".join(lines)


class TruncatingSummarizer:
    """Deterministic summarizer: truncated ``role: text`` lines."""

    def __init__(self, max_chars_per_interaction: int = 120) -> None:
        self.max_chars = max_chars_per_interaction

    async def summarize(self, interactions: Sequence[Interaction]) -> str:
        return format_interactions(interactions, self.max_chars)


class GroqSummarizer:
    """Summarizes evicted interactions with the Groq model."""

    def __init__(
        self,
        llm_client: AsyncGroq,
        model: str = "llama-3.1-70b-versatile",
        fallback: Summarizer | None = None,
    ) -> None:
        """Initialize the summarizer.

        Args:
            llm_client: The Groq client for LLM calls.
            model: The model to use for summaries.
            fallback: Used when the model call fails.
        """
        self.client = llm_client
        self.model = model
        self.fallback = fallback or TruncatingSummarizer()

    async def summarize(self, interactions: Sequence[Interaction]) -> str:
        if not interactions:
            return ""

        prompt = SUMMARY_PROMPT + format_interactions(interactions)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.2,
            )
            content = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.warning(f"Summarization failed, using fallback: {e}")
            return await self.fallback.summarize(interactions)

        if not content:
            logger.warning("Summarization returned empty text, using fallback")
            return await self.fallback.summarize(interactions)
        return content


class SnapshotEvolver:
    """Placeholder evolver: keeps traits, stamps time and interaction count."""

    async def evolve(
        self,
        personality: Personality | None,
        interactions: Sequence[Interaction],
        summaries: Sequence[Summary],
    ) -> Personality:
        traits = dict(personality.traits) if personality else {}
        return Personality(traits=traits, evolved_at=utc_now(), interaction_count=len(interactions))


class GroqPersonalityEvolver:
    """Evolves the trait map with the Groq model."""

    def __init__(self, llm_client: AsyncGroq, model: str = "llama-3.1-70b-versatile") -> None:
        self.client = llm_client
        self.model = model

    async def evolve(
        self,
        personality: Personality | None,
        interactions: Sequence[Interaction],
        summaries: Sequence[Summary],
    ) -> Personality:
        current = dict(personality.traits) if personality else {}
        prompt = (
            EVOLUTION_PROMPT
            + json.dumps(current, ensure_ascii=False)
            + "\n\nSummaries:\n"
            + "\n".join(s.text for s in summaries)
            + "\n\nRecent conversation:\n"
            + format_interactions(interactions, 300)
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.3,
                response_format={"type": "json_object"},
            )
            traits = self._parse_response(response.choices[0].message.content or "")
        except Exception as e:
            logger.warning(f"Personality evolution failed: {e}")
            traits = None

        return Personality(
            traits=traits if traits is not None else current,
            evolved_at=utc_now(),
            interaction_count=len(interactions),
        )

    def _parse_response(self, content: str) -> dict[str, Any] | None:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse evolution response: {e}")
            return None

        if not isinstance(data, dict) or not isinstance(data.get("traits"), dict):
            logger.warning("Invalid evolution response: missing 'traits' object")
            return None
        return data["traits"]
