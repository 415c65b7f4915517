"""Tests for host command execution."""

from pathlib import Path

import pytest

from shellkeeper.terminal import CommandExecutor


@pytest.fixture
def executor(tmp_path: Path) -> CommandExecutor:
    return CommandExecutor(working_directory=tmp_path, timeout=5.0, max_output_bytes=100)


class TestCommandExecutor:
    @pytest.mark.asyncio
    async def test_success(self, executor: CommandExecutor):
        """A successful command returns its stdout."""
        result = await executor.run("echo hello")

        assert result.success is True
        assert result.exit_code == 0
        assert result.stdout == "hello\n"
        assert result.error is None
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, executor: CommandExecutor, tmp_path: Path):
        """Commands run in the configured directory."""
        (tmp_path / "marker.txt").write_text("x")

        result = await executor.run("ls")

        assert "marker.txt" in result.stdout

    @pytest.mark.asyncio
    async def test_no_shell_interpretation(self, executor: CommandExecutor):
        """Shell syntax is passed through as plain arguments."""
        result = await executor.run("echo '$HOME'")
        assert result.stdout == "$HOME\n"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_a_result(self, executor: CommandExecutor):
        """A failing command is a result, not an exception."""
        result = await executor.run("ls does-not-exist")

        assert result.success is False
        assert result.exit_code != 0
        assert result.stderr
        assert result.error == f"Exit code: {result.exit_code}"

    @pytest.mark.asyncio
    async def test_missing_binary(self, executor: CommandExecutor):
        """A missing program yields an unsuccessful result."""
        result = await executor.run("definitely-not-a-real-binary-xyz")

        assert result.success is False
        assert result.exit_code == 127
        assert "Failed to start command" in result.error

    @pytest.mark.asyncio
    async def test_output_truncated(self, executor: CommandExecutor, tmp_path: Path):
        """Output beyond the cap is cut and flagged."""
        (tmp_path / "big.txt").write_text("a" * 1000)

        result = await executor.run("cat big.txt")

        assert result.success is True
        assert result.truncated is True
        assert len(result.stdout) == 100

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path: Path):
        """A command past its timeout is killed."""
        executor = CommandExecutor(working_directory=tmp_path, timeout=0.5)

        result = await executor.run("sleep 5")

        assert result.success is False
        assert result.timed_out is True
        assert result.exit_code == -1
        assert result.error.startswith("Timeout")
        assert result.duration_ms < 5000

    @pytest.mark.asyncio
    async def test_timeout_override(self, executor: CommandExecutor):
        """A per-call timeout overrides the default."""
        result = await executor.run("sleep 5", timeout=0.2)
        assert result.timed_out is True

    @pytest.mark.asyncio
    async def test_to_dict(self, executor: CommandExecutor):
        """to_dict exposes every result field."""
        data = (await executor.run("echo hi")).to_dict()
        assert data["stdout"] == "hi\n"
        assert "timestamp" in data
