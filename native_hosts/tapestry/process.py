"""External process execution.

Handlers only see the `CommandRunner` / `ProcessHandle` protocols, so tests can
drive the streaming logic with scripted doubles instead of real children.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Protocol

from .codec import MAX_MESSAGE_SIZE
from .errors import ProcessIOError, SpawnError
from .fabric import FabricCommand, FabricCommandBuilder

logger = logging.getLogger("tapestry.host.process")


@dataclass(slots=True, frozen=True)
class CommandOutput:
    success: bool
    stdout: str
    stderr: str


class ProcessHandle(Protocol):
    """One spawned child with piped stdin/stdout."""

    async def write_stdin(self, data: bytes) -> None: ...

    async def close_stdin(self) -> None: ...

    async def read_stdout_line(self) -> str | None: ...

    async def wait(self) -> int | None: ...

    def kill(self) -> None: ...


class CommandRunner(Protocol):
    path: str

    async def version(self) -> CommandOutput: ...

    async def list_patterns(self) -> CommandOutput: ...

    async def list_contexts(self) -> CommandOutput: ...

    async def spawn(self, command: FabricCommand) -> ProcessHandle: ...


class SubprocessHandle:
    """`ProcessHandle` over an asyncio subprocess."""

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc

    @property
    def pid(self) -> int:
        return int(self._proc.pid)

    async def write_stdin(self, data: bytes) -> None:
        stdin = self._proc.stdin
        if stdin is None:
            return
        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ProcessIOError(f"Failed to write to process stdin: {exc}") from exc

    async def close_stdin(self) -> None:
        stdin = self._proc.stdin
        if stdin is None:
            return
        try:
            stdin.close()
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ProcessIOError(f"Failed to close process stdin: {exc}") from exc

    async def read_stdout_line(self) -> str | None:
        stdout = self._proc.stdout
        if stdout is None:
            return None
        try:
            line = await stdout.readline()
        except ValueError as exc:
            # StreamReader limit overrun: a single line larger than a frame.
            raise ProcessIOError(f"Output line too long: {exc}") from exc
        except OSError as exc:
            raise ProcessIOError(f"Failed to read process stdout: {exc}") from exc
        if not line:
            return None
        return line.decode("utf-8", errors="replace")

    async def wait(self) -> int | None:
        code = await self._proc.wait()
        # Negative return codes mean "terminated by signal N" on POSIX.
        return code if code >= 0 else None

    def kill(self) -> None:
        if self._proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            self._proc.kill()


class FabricCommandRunner:
    """`CommandRunner` that executes the real fabric binary."""

    def __init__(self, path: str) -> None:
        self.path = path

    async def _output(self, command: FabricCommand) -> CommandOutput:
        try:
            proc = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SpawnError(f"Failed to run {command.program}: {exc}") from exc
        out, err = await proc.communicate()
        return CommandOutput(
            success=proc.returncode == 0,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
        )

    async def version(self) -> CommandOutput:
        output = await self._output(FabricCommandBuilder(self.path).version().build())
        return CommandOutput(output.success, output.stdout.rstrip(), output.stderr.rstrip())

    async def list_patterns(self) -> CommandOutput:
        return await self._output(FabricCommandBuilder(self.path).list_patterns().build())

    async def list_contexts(self) -> CommandOutput:
        return await self._output(FabricCommandBuilder(self.path).list_contexts().build())

    async def spawn(self, command: FabricCommand) -> SubprocessHandle:
        try:
            proc = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                limit=MAX_MESSAGE_SIZE,
            )
        except OSError as exc:
            raise SpawnError(f"Failed to spawn {command.program}: {exc}") from exc
        logger.debug("spawned pid=%s argv=%s", proc.pid, list(command.args))
        return SubprocessHandle(proc)


__all__ = ["CommandOutput", "CommandRunner", "FabricCommandRunner", "ProcessHandle", "SubprocessHandle"]
