"""Tests for summarizers and personality evolvers."""

from unittest.mock import AsyncMock, Mock

import pytest

from shellkeeper.memory import (
    GroqPersonalityEvolver,
    GroqSummarizer,
    Interaction,
    Personality,
    TruncatingSummarizer,
)


@pytest.fixture
def mock_client() -> AsyncMock:
    """Create a mock Groq client."""
    return AsyncMock()


def make_response(content: str) -> Mock:
    """Create a mock LLM response."""
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    return response


def interactions() -> list[Interaction]:
    return [
        Interaction(id=1, role="user", text="my project is called atlas"),
        Interaction(id=2, role="assistant", text="noted"),
    ]


class TestTruncatingSummarizer:
    @pytest.mark.asyncio
    async def test_formats_lines(self):
        """Interactions become role-prefixed lines."""
        text = await TruncatingSummarizer().summarize(interactions())
        assert text == "user: my project is called atlas\nassistant: noted"

    @pytest.mark.asyncio
    async def test_truncates_long_text(self):
        """Long interactions are cut with an ellipsis."""
        long = [Interaction(id=1, role="user", text="x" * 50)]
        text = await TruncatingSummarizer(max_chars_per_interaction=10).summarize(long)
        assert text == "user: " + "x" * 10 + "..."


class TestGroqSummarizer:
    def test_default_model(self, mock_client: AsyncMock):
        """Should use the default model if not specified."""
        assert GroqSummarizer(mock_client).model == "llama-3.1-70b-versatile"

    @pytest.mark.asyncio
    async def test_returns_model_summary(self, mock_client: AsyncMock):
        """Should return the model's summary of the batch."""
        mock_client.chat.completions.create = AsyncMock(
            return_value=make_response("  The user works on atlas.  ")
        )
        summarizer = GroqSummarizer(mock_client, model="test-model")

        text = await summarizer.summarize(interactions())

        assert text == "The user works on atlas."
        call_kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert call_kwargs["model"] == "test-model"
        assert "my project is called atlas" in call_kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_falls_back_on_error(self, mock_client: AsyncMock):
        """A failed call falls back to the truncating summary."""
        mock_client.chat.completions.create = AsyncMock(side_effect=Exception("API error"))
        summarizer = GroqSummarizer(mock_client)

        text = await summarizer.summarize(interactions())

        assert text == "user: my project is called atlas\nassistant: noted"

    @pytest.mark.asyncio
    async def test_falls_back_on_empty(self, mock_client: AsyncMock):
        """An empty answer falls back to the truncating summary."""
        mock_client.chat.completions.create = AsyncMock(return_value=make_response(""))
        summarizer = GroqSummarizer(mock_client)

        text = await summarizer.summarize(interactions())

        assert text.startswith("user:")

    @pytest.mark.asyncio
    async def test_empty_batch(self, mock_client: AsyncMock):
        """An empty batch skips the model call."""
        assert await GroqSummarizer(mock_client).summarize([]) == ""
        mock_client.chat.completions.create.assert_not_called()


class TestGroqPersonalityEvolver:
    @pytest.mark.asyncio
    async def test_updates_traits(self, mock_client: AsyncMock):
        """Should replace traits with the model's answer."""
        mock_client.chat.completions.create = AsyncMock(
            return_value=make_response('{"traits": {"tone": "curious"}}')
        )
        evolver = GroqPersonalityEvolver(mock_client)

        personality = await evolver.evolve(None, interactions(), [])

        assert personality.traits == {"tone": "curious"}
        assert personality.interaction_count == 2

    @pytest.mark.asyncio
    async def test_keeps_traits_on_invalid_json(self, mock_client: AsyncMock):
        """Invalid JSON keeps the current traits."""
        mock_client.chat.completions.create = AsyncMock(return_value=make_response("not json"))
        evolver = GroqPersonalityEvolver(mock_client)

        personality = await evolver.evolve(Personality(traits={"tone": "dry"}), interactions(), [])

        assert personality.traits == {"tone": "dry"}

    @pytest.mark.asyncio
    async def test_keeps_traits_on_missing_key(self, mock_client: AsyncMock):
        """An answer without traits keeps the current ones."""
        mock_client.chat.completions.create = AsyncMock(return_value=make_response('{"other": 1}'))
        evolver = GroqPersonalityEvolver(mock_client)

        personality = await evolver.evolve(Personality(traits={"tone": "dry"}), interactions(), [])

        assert personality.traits == {"tone": "dry"}

    @pytest.mark.asyncio
    async def test_keeps_traits_on_error(self, mock_client: AsyncMock):
        """A failed call keeps the current traits."""
        mock_client.chat.completions.create = AsyncMock(side_effect=Exception("API error"))
        evolver = GroqPersonalityEvolver(mock_client)

        personality = await evolver.evolve(None, interactions(), [])

        assert personality.traits == {}
