"""Client for driving a remote Shellkeeper server's terminal endpoints."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class RemoteAgentError(Exception):
    """A remote call failed, either in transport or with an error response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        category: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.category = category


@dataclass
class SequenceStep:
    """One command in a dependent sequence.

    ``$<depends_on>`` in ``command`` is replaced with the trimmed stdout of the
    named earlier step.
    """

    name: str
    command: str
    depends_on: str | None = None


class RemoteAgent:
    """Runs commands and chat turns against one session on a remote server.

    Example:
        async with RemoteAgent("http://localhost:3002", token) as agent:
            result = await agent.execute_command("ls -la")
            print(result["executionResult"]["stdout"])
    """

    def __init__(
        self,
        server_url: str,
        token: str,
        *,
        session_id: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.session_id = session_id or f"agent-{int(time.time() * 1000)}"
        self._headers = {"Authorization": f"Bearer {token}"}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._queue: list[str] = []
        self._log: list[dict[str, Any]] = []

    async def __aenter__(self) -> "RemoteAgent":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, f"{self.server_url}{path}", headers=self._headers, **kwargs
            )
        except httpx.TimeoutException as e:
            raise RemoteAgentError(f"Request to {path} timed out") from e
        except httpx.RequestError as e:
            raise RemoteAgentError(f"Request to {path} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_error:
            message = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
            raise RemoteAgentError(message, response.status_code, data.get("error"))
        return data

    async def execute_command(self, command: str, approval: bool = False) -> dict[str, Any]:
        """Execute a command in this agent's session.

        Raises:
            RemoteAgentError: The request failed or the server rejected it.
        """
        try:
            data = await self._request(
                "POST",
                "/terminal/execute",
                json={"sessionId": self.session_id, "command": command, "approval": approval},
            )
        except RemoteAgentError as e:
            logger.error("Remote command failed: %s (%s)", command, e.message)
            raise

        self._log.append({
            "command": command,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "result": data,
        })
        return data

    async def chat(self, message: str, context: dict[str, Any] | None = None) -> dict[str, Any]:
        """Ask the session's agent without running anything."""
        body: dict[str, Any] = {"message": message}
        if context:
            body["context"] = context
        return await self._request("POST", f"/terminal/chat/{self.session_id}", json=body)

    async def get_history(self, limit: int = 50) -> dict[str, Any]:
        return await self._request(
            "GET", f"/terminal/history/{self.session_id}", params={"limit": limit}
        )

    async def get_stats(self) -> dict[str, Any]:
        return await self._request("GET", f"/terminal/stats/{self.session_id}")

    async def check_health(self) -> dict[str, Any]:
        """Server health. Never raises; failures come back as ``unhealthy``."""
        try:
            return await self._request("GET", "/health")
        except RemoteAgentError as e:
            logger.warning("Health check failed: %s", e.message)
            return {"status": "unhealthy", "error": e.message}

    def queue_command(self, command: str) -> "RemoteAgent":
        self._queue.append(command)
        return self

    async def execute_batch(self) -> list[dict[str, Any]]:
        """Run every queued command in order, continuing past failures.

        The queue is emptied afterwards.
        """
        results = []
        for command in self._queue:
            try:
                data = await self.execute_command(command)
                results.append({**data, "command": command})
            except RemoteAgentError as e:
                results.append({"command": command, "success": False, "error": e.message})
        self._queue = []
        return results

    async def execute_sequence(self, steps: list[SequenceStep]) -> list[dict[str, Any]]:
        """Run dependent commands, stopping at the first one that does not run."""
        results: list[dict[str, Any]] = []
        outputs: dict[str, str] = {}

        for step in steps:
            command = step.command
            if step.depends_on and step.depends_on in outputs:
                command = command.replace(f"${step.depends_on}", outputs[step.depends_on].strip())

            try:
                data = await self.execute_command(command)
            except RemoteAgentError as e:
                results.append({"name": step.name, "command": command, "success": False, "error": e.message})
                break

            execution = data.get("executionResult")
            if execution is None:
                results.append({
                    "name": step.name,
                    "command": command,
                    "success": False,
                    "error": "Command requires approval",
                })
                break

            outputs[step.name] = execution.get("stdout", "")
            results.append({
                "name": step.name,
                "command": command,
                "success": execution.get("success", False),
                "output": execution.get("stdout", ""),
            })

        return results

    @property
    def execution_log(self) -> list[dict[str, Any]]:
        return list(self._log)

    def clear_execution_log(self) -> None:
        self._log = []
