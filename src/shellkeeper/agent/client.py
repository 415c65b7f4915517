"""Agent client over Groq chat completions in JSON mode."""

import json
import logging
from typing import Any

from groq import AsyncGroq

from ..errors import UpstreamError
from .prompt import build_system_prompt
from .responses import RESPONSE_SCHEMA, AgentResponse, parse_agent_response

logger = logging.getLogger(__name__)


class AgentClient:
    """Maps a prompt to a structured ``AgentResponse``.

    Example:
        from groq import AsyncGroq

        agent = AgentClient(AsyncGroq(api_key="..."))
        reply = await agent.invoke("list the files here")
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = "llama-3.1-70b-versatile",
        temperature: float = 0.7,
    ) -> None:
        """Initialize the agent client.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
            temperature: Sampling temperature.
        """
        self._client = client
        self._model = model
        self.temperature = temperature

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model

    async def invoke(
        self,
        prompt: str,
        context: dict[str, Any] | None = None,
        schema: dict[str, Any] = RESPONSE_SCHEMA,
    ) -> AgentResponse:
        """Ask the model and parse its structured answer.

        Raises:
            UpstreamError: Transport failure, non-JSON output, or a payload
                that matches no response shape.
        """
        content = prompt
        if context:
            content = f"Context: {json.dumps(context, indent=2)}\n\nQuery: {prompt}"

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": build_system_prompt(schema)},
                    {"role": "user", "content": content},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.error("Agent call failed: %s", e)
            raise UpstreamError(f"Agent call failed: {e}") from e

        raw = response.choices[0].message.content or ""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Agent returned invalid JSON: %s", e)
            raise UpstreamError("Agent returned invalid JSON") from e

        return parse_agent_response(data)
