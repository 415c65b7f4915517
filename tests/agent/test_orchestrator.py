"""Tests for AgentOrchestrator."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from shellkeeper.agent import AgentOrchestrator, ChatReply, CodeReply, CommandReply
from shellkeeper.audit import AuditEventType, AuditFilter, AuditLogger
from shellkeeper.config import MemoryConfig
from shellkeeper.errors import CommandNotAllowed, UpstreamError
from shellkeeper.memory import MemoryManager, SessionStore, TruncatingSummarizer
from shellkeeper.session import SessionRegistry
from shellkeeper.terminal import ApprovalWorkflow, CommandExecutor, RateLimiter


class FailingSummarizer:
    async def summarize(self, interactions):
        raise RuntimeError("summarizer down")


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def agent() -> MagicMock:
    """Create a mock agent client."""
    mock = MagicMock()
    mock.invoke = AsyncMock(return_value=ChatReply(response="hello"))
    return mock


@pytest.fixture
def audit(tmp_path: Path) -> AuditLogger:
    return AuditLogger(tmp_path / "audit")


@pytest.fixture
def registry(tmp_path: Path) -> SessionRegistry:
    return SessionRegistry(SessionStore(tmp_path / "sessions"))


@pytest.fixture
def orchestrator(agent: MagicMock, audit: AuditLogger, registry: SessionRegistry, workdir: Path) -> AgentOrchestrator:
    workflow = ApprovalWorkflow(
        CommandExecutor(working_directory=workdir, timeout=5.0),
        audit,
        RateLimiter(min_interval=0.0),
    )
    config = MemoryConfig(sessions_dir=registry.store.sessions_dir, interaction_window=4, summary_window=2)
    return AgentOrchestrator(
        agent, MemoryManager(TruncatingSummarizer()), registry, audit, workflow, config,
    )


class TestChat:
    @pytest.mark.asyncio
    async def test_appends_and_persists(self, orchestrator: AgentOrchestrator, registry: SessionRegistry):
        """A turn stores the message and the JSON reply."""
        async with registry.acquire("s") as handle:
            reply = await orchestrator.chat(handle, "hi", user_id="u")

        assert reply == ChatReply(response="hello")
        stored = registry.store.load("s")
        assert [i.role for i in stored.interactions] == ["user", "assistant"]
        assert stored.interactions[0].text == "hi"
        assert json.loads(stored.interactions[1].text)["response"] == "hello"

    @pytest.mark.asyncio
    async def test_prompt_includes_memory(self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock):
        """Earlier turns and extra context reach the prompt."""
        async with registry.acquire("s") as handle:
            await orchestrator.chat(handle, "first", user_id="u")
            await orchestrator.chat(handle, "second", user_id="u", context={"cwd": "/srv"})

        prompt = agent.invoke.call_args.args[0]
        assert "user: first" in prompt
        assert "[Additional Context]" in prompt
        assert prompt.index("user: first") < prompt.index("second")

    @pytest.mark.asyncio
    async def test_upstream_failure_leaves_session_unchanged(
        self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock
    ):
        """An agent failure records nothing."""
        agent.invoke = AsyncMock(side_effect=UpstreamError("down"))

        async with registry.acquire("s") as handle:
            with pytest.raises(UpstreamError):
                await orchestrator.chat(handle, "hi", user_id="u")
            assert handle.session.interactions == []
            assert handle.session.next_interaction_id == 1

    @pytest.mark.asyncio
    async def test_summarizer_failure_rolls_back_whole_turn(
        self, orchestrator: AgentOrchestrator, registry: SessionRegistry
    ):
        """A failure while storing the reply also drops the user message."""
        orchestrator.config.interaction_window = 3

        async with registry.acquire("s") as handle:
            await orchestrator.chat(handle, "first", user_id="u")
            orchestrator.memory.summarizer = FailingSummarizer()

            with pytest.raises(RuntimeError):
                await orchestrator.chat(handle, "second", user_id="u")

            assert handle.session.interactions[0].text == "first"
            assert len(handle.session.interactions) == 2
            assert handle.session.next_interaction_id == 3
            assert handle.dirty is False

    @pytest.mark.asyncio
    async def test_chat_is_audited(self, orchestrator: AgentOrchestrator, registry: SessionRegistry, audit: AuditLogger):
        """Each turn writes one chat audit event."""
        async with registry.acquire("s") as handle:
            await orchestrator.chat(handle, "hi there", user_id="u")

        [entry] = audit.read(AuditFilter(type=AuditEventType.CHAT_MESSAGE))
        assert entry["user_message_length"] == len("hi there")
        assert entry["response_type"] == "response"
        assert entry["has_command"] is False


class TestChatAndExecute:
    @pytest.mark.asyncio
    async def test_non_command_reply(self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock):
        """Code replies run nothing."""
        agent.invoke = AsyncMock(return_value=CodeReply(code="print(1)", language="python"))

        async with registry.acquire("s") as handle:
            outcome = await orchestrator.chat_and_execute(handle, "write code", user_id="u")

        assert outcome.workflow is None
        assert len(handle.history) == 0

    @pytest.mark.asyncio
    async def test_safe_command_executes(self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock):
        """A proposed safe command runs right away."""
        agent.invoke = AsyncMock(return_value=CommandReply(command="echo hi"))

        async with registry.acquire("s") as handle:
            outcome = await orchestrator.chat_and_execute(handle, "say hi", user_id="u")

        assert outcome.workflow.result.stdout == "hi\n"
        assert len(handle.history) == 1

    @pytest.mark.asyncio
    async def test_agent_hint_needs_approval(self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock):
        """The agent can ask for approval of a safe command."""
        agent.invoke = AsyncMock(return_value=CommandReply(command="echo hi", requires_approval=True))

        async with registry.acquire("s") as handle:
            outcome = await orchestrator.chat_and_execute(handle, "say hi", user_id="u")

        assert outcome.workflow.pending_approval is True
        assert len(handle.history) == 0

    @pytest.mark.asyncio
    async def test_two_step_approval(
        self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock, workdir: Path
    ):
        """A dangerous proposal runs once approved."""
        (workdir / "old.log").write_text("x")
        agent.invoke = AsyncMock(return_value=CommandReply(command="rm old.log"))

        async with registry.acquire("s") as handle:
            pending = await orchestrator.chat_and_execute(handle, "clean up", user_id="u")
            approved = await orchestrator.chat_and_execute(
                handle, "clean up", user_id="u", approval=True, approved_command=pending.workflow.command,
            )

        assert pending.workflow.pending_approval is True
        assert approved.workflow.result.success is True
        assert not (workdir / "old.log").exists()
        assert len(handle.history) == 1

    @pytest.mark.asyncio
    async def test_not_allowed_command(self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock):
        """A disallowed proposal raises after the turn is stored."""
        agent.invoke = AsyncMock(return_value=CommandReply(command="python -c 'print(1)'"))

        async with registry.acquire("s") as handle:
            with pytest.raises(CommandNotAllowed):
                await orchestrator.chat_and_execute(handle, "run python", user_id="u", approval=True)
            # The chat turn itself was recorded
            assert len(handle.session.interactions) == 2


class TestExecute:
    @pytest.mark.asyncio
    async def test_direct_execute(self, orchestrator: AgentOrchestrator, registry: SessionRegistry, agent: MagicMock):
        """execute bypasses the agent."""
        async with registry.acquire("s") as handle:
            outcome = await orchestrator.execute(handle, "pwd", user_id="u")

        assert outcome.result.success is True
        agent.invoke.assert_not_called()
