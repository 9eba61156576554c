"""Scripted stand-ins for fabric processes used across the host tests."""

from __future__ import annotations

import asyncio
import io
import uuid
from collections.abc import Iterable
from typing import Any

from native_hosts.tapestry.codec import FrameCodec
from native_hosts.tapestry.config import HostConfig
from native_hosts.tapestry.errors import FabricNotFoundError, ProcessIOError, SpawnError
from native_hosts.tapestry.fabric import FabricCommand
from native_hosts.tapestry.messages import Request, RequestPayload, Response
from native_hosts.tapestry.process import CommandOutput

FABRIC_PATH = "/usr/bin/fabric-ai"


class ScriptedProcess:
    """In-memory `ProcessHandle`.

    `hang=True` models a child that never writes another line: once the
    scripted lines run out, reads block until the reading task is cancelled.
    `linger=True` models a child that closes stdout but keeps running:
    `wait()` blocks until `kill()`.
    """

    def __init__(
        self,
        lines: Iterable[str] = (),
        exit_code: int | None = 0,
        *,
        hang: bool = False,
        linger: bool = False,
        line_delay: float = 0.0,
        write_error: Exception | None = None,
        read_error_after: int | None = None,
    ) -> None:
        self.stdin = bytearray()
        self.stdin_closed = False
        self.killed = False
        self.wait_calls = 0
        self.lines_read = 0
        self._lines = list(lines)
        self._exit_code = exit_code
        self._hang = hang
        self._linger = linger
        self._exited = asyncio.Event()
        self._line_delay = line_delay
        self._write_error = write_error
        self._read_error_after = read_error_after

    async def write_stdin(self, data: bytes) -> None:
        if self._write_error is not None:
            raise self._write_error
        self.stdin.extend(data)

    async def close_stdin(self) -> None:
        self.stdin_closed = True

    async def read_stdout_line(self) -> str | None:
        if self.killed:
            return None
        if self._line_delay:
            await asyncio.sleep(self._line_delay)
        if self._read_error_after is not None and self.lines_read >= self._read_error_after:
            raise ProcessIOError("Mock stdout error")
        if self._lines:
            self.lines_read += 1
            return self._lines.pop(0)
        if self._hang:
            await asyncio.Event().wait()
        return None

    async def wait(self) -> int | None:
        self.wait_calls += 1
        if self._linger:
            await self._exited.wait()
        if self.killed:
            return None
        return self._exit_code

    def kill(self) -> None:
        self.killed = True
        self._exited.set()


class FakeRunner:
    """`CommandRunner` returning canned outputs and scripted processes."""

    def __init__(
        self,
        path: str = FABRIC_PATH,
        *,
        version: CommandOutput | None = None,
        patterns: CommandOutput | None = None,
        contexts: CommandOutput | None = None,
        processes: Iterable[ScriptedProcess] = (),
        spawn_error: Exception | None = None,
    ) -> None:
        self.path = path
        self._version = version
        self._patterns = patterns
        self._contexts = contexts
        self._processes = list(processes)
        self._spawn_error = spawn_error
        self.spawned: list[FabricCommand] = []

    async def version(self) -> CommandOutput:
        if self._version is None:
            raise SpawnError("No mock response")
        return self._version

    async def list_patterns(self) -> CommandOutput:
        if self._patterns is None:
            raise SpawnError("No mock response")
        return self._patterns

    async def list_contexts(self) -> CommandOutput:
        if self._contexts is None:
            raise SpawnError("No mock response")
        return self._contexts

    async def spawn(self, command: FabricCommand) -> ScriptedProcess:
        self.spawned.append(command)
        if self._spawn_error is not None:
            raise self._spawn_error
        if not self._processes:
            raise SpawnError("No mock process handle available")
        return self._processes.pop(0)


class StaticConfig(HostConfig):
    """HostConfig whose fabric lookup is fixed (None means "not installed")."""

    def __init__(self, path: str | None = FABRIC_PATH) -> None:
        super().__init__(binary_candidates=[])
        self.static_path = path

    def resolve_fabric_path(self, override: str | None = None) -> str:
        if override:
            return override
        if self.static_path is None:
            raise FabricNotFoundError("Failed to find fabric-ai in PATH")
        return self.static_path


def make_request(payload: RequestPayload, *, path: str | None = None, request_id: uuid.UUID | None = None) -> Request:
    return Request(id=request_id or uuid.uuid4(), payload=payload, path=path)


def encode_requests(requests: Iterable[Request]) -> bytes:
    codec: FrameCodec[Request] = FrameCodec(dumps=Request.to_dict)
    return b"".join(codec.encode(r) for r in requests)


def decode_responses(data: bytes) -> list[Response]:
    codec: FrameCodec[Response] = FrameCodec(loads=Response.from_dict)
    buf = bytearray(data)
    out: list[Response] = []
    while True:
        item = codec.decode(buf)
        if item is None:
            break
        out.append(item)
    assert not buf, f"{len(buf)} trailing bytes after the last frame"
    return out


def for_id(responses: list[Response], request_id: uuid.UUID) -> list[Any]:
    return [r.payload for r in responses if r.id == request_id]


class CapturingStream(io.BytesIO):
    """BytesIO that records how many write() calls it received."""

    def __init__(self) -> None:
        super().__init__()
        self.write_calls = 0

    def write(self, data: Any) -> int:
        self.write_calls += 1
        return super().write(data)
