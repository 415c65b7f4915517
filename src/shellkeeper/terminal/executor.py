"""Host subprocess execution with timeout and output bounds."""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import CommandTimeout
from .gate import split_command

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
# Time allowed for pipes to close after the process exits
READER_GRACE_SECONDS = 1.0


@dataclass
class ExecutionResult:
    """Result of running a command."""

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: float
    timed_out: bool = False
    truncated: bool = False
    warning: str | None = None
    error: str | None = None
    execution_id: int | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class _BoundedReader:
    """Drains a stream, keeping only the first ``limit`` bytes."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.buffer = bytearray()
        self.truncated = False

    async def drain(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                return
            room = self.limit - len(self.buffer)
            if room > 0:
                self.buffer.extend(chunk[:room])
            if len(chunk) > room:
                self.truncated = True

    def text(self) -> str:
        return self.buffer.decode("utf-8", errors="replace")


class CommandExecutor:
    """Runs commands on the host as argv (no shell)."""

    def __init__(
        self,
        working_directory: Path | None = None,
        timeout: float = 30.0,
        max_output_bytes: int = 5000,
    ) -> None:
        self.working_directory = Path(working_directory) if working_directory else Path.cwd()
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    async def run(self, command: str, timeout: float | None = None) -> ExecutionResult:
        """Execute a command and capture bounded output.

        Non-zero exits and timeouts produce an unsuccessful result, never an
        exception. Partial output captured before a failure is kept.
        """
        if timeout is None:
            timeout = self.timeout

        start_time = time.monotonic()
        argv = split_command(command)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.working_directory),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ExecutionResult(
                success=False,
                exit_code=127,
                stdout="",
                stderr=str(e),
                duration_ms=(time.monotonic() - start_time) * 1000,
                error=f"Failed to start command: {e}",
            )

        out = _BoundedReader(self.max_output_bytes)
        err = _BoundedReader(self.max_output_bytes)
        readers = asyncio.gather(out.drain(process.stdout), err.drain(process.stderr))

        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("Command timed out after %ss, killing: %s", timeout, argv[0])
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

        try:
            await asyncio.wait_for(readers, timeout=READER_GRACE_SECONDS)
        except asyncio.TimeoutError:
            # A descendant still holds the pipes open
            logger.warning("Output pipes still open after exit: %s", argv[0])
        duration_ms = (time.monotonic() - start_time) * 1000

        if timed_out:
            return ExecutionResult(
                success=False,
                exit_code=-1,
                stdout=out.text(),
                stderr=err.text(),
                duration_ms=duration_ms,
                timed_out=True,
                truncated=out.truncated or err.truncated,
                error=f"{CommandTimeout.category}: command exceeded {timeout}s",
            )

        exit_code = process.returncode if process.returncode is not None else -1
        return ExecutionResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout=out.text(),
            stderr=err.text(),
            duration_ms=duration_ms,
            truncated=out.truncated or err.truncated,
            error=f"Exit code: {exit_code}" if exit_code != 0 else None,
        )
