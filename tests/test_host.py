from __future__ import annotations

import asyncio
import io
import os
import struct

import pytest

from native_hosts.tapestry.codec import MAX_MESSAGE_SIZE
from native_hosts.tapestry.host import NativeHost
from native_hosts.tapestry.messages import (
    CancelProcess,
    Cancelled,
    Content,
    Done,
    ListPatterns,
    PatternsList,
    Ping,
    Pong,
    ProcessContent,
    Response,
)
from native_hosts.tapestry.process import CommandOutput
from tapestry_fakes import (
    FABRIC_PATH,
    FakeRunner,
    ScriptedProcess,
    StaticConfig,
    decode_responses,
    encode_requests,
    for_id,
    make_request,
)


def _host(runner: FakeRunner, stdin, stdout) -> NativeHost:
    return NativeHost(StaticConfig(), stdin=stdin, stdout=stdout, runner_factory=lambda path: runner)


def _run(runner: FakeRunner, data: bytes) -> tuple[NativeHost, int, list[Response]]:
    stdout = io.BytesIO()
    host = _host(runner, io.BytesIO(data), stdout)
    code = asyncio.run(host.run())
    return host, code, decode_responses(stdout.getvalue())


def test_empty_input_exits_cleanly() -> None:
    host, code, responses = _run(FakeRunner(), b"")

    assert code == 0
    assert responses == []
    assert host.frames_received == 0


def test_requests_are_answered_by_id() -> None:
    runner = FakeRunner(
        version=CommandOutput(True, "v1.2.3", ""),
        patterns=CommandOutput(True, "summarize\nextract\n", ""),
    )
    ping = make_request(Ping())
    patterns = make_request(ListPatterns())

    host, code, responses = _run(runner, encode_requests([ping, patterns]))

    assert code == 0
    assert host.frames_received == 2
    assert for_id(responses, ping.id) == [Pong(resolved_path=FABRIC_PATH, version="v1.2.3", valid=True)]
    assert for_id(responses, patterns.id) == [PatternsList(patterns=["summarize", "extract"])]


def test_invalid_frames_are_skipped() -> None:
    runner = FakeRunner(version=CommandOutput(True, "v1", ""))
    before = make_request(Ping())
    after = make_request(Ping())
    garbage = struct.pack("<I", 8) + b"not json"
    unknown = b'{"id":"550e8400-e29b-41d4-a716-446655440000","type":"native.unknown"}'
    unknown_frame = struct.pack("<I", len(unknown)) + unknown

    data = encode_requests([before]) + garbage + unknown_frame + encode_requests([after])
    host, code, responses = _run(runner, data)

    assert code == 0
    assert host.frames_rejected == 2
    assert host.frames_received == 2
    assert {r.id for r in responses} == {before.id, after.id}


def test_oversized_frame_is_skipped_and_reading_continues() -> None:
    runner = FakeRunner(version=CommandOutput(True, "v1", ""))
    after = make_request(Ping())
    oversized = struct.pack("<I", MAX_MESSAGE_SIZE + 1) + b" " * (MAX_MESSAGE_SIZE + 1)

    host, code, responses = _run(runner, oversized + encode_requests([after]))

    assert code == 0
    assert host.frames_rejected == 1
    assert [r.id for r in responses] == [after.id]


def test_in_flight_streams_finish_after_input_closes() -> None:
    runner = FakeRunner(processes=[ScriptedProcess(["one\n", "two\n"], line_delay=0.02)])
    request = make_request(ProcessContent(content="text", pattern="summarize"))

    _, code, responses = _run(runner, encode_requests([request]))

    assert code == 0
    assert for_id(responses, request.id) == [Content("one\n"), Content("two\n"), Done(0)]


def test_cancel_through_the_transport() -> None:
    process = ScriptedProcess(["first\n"], hang=True)
    runner = FakeRunner(processes=[process])
    stream_req = make_request(ProcessContent(content="text"))
    cancel_req = make_request(CancelProcess(target_request_id=stream_req.id))
    stdout = io.BytesIO()

    async def _main() -> tuple[int, int]:
        read_fd, write_fd = os.pipe()
        with os.fdopen(read_fd, "rb") as stdin:
            host = _host(runner, stdin, stdout)
            run_task = asyncio.create_task(host.run())
            try:
                os.write(write_fd, encode_requests([stream_req]))
                loop = asyncio.get_running_loop()
                deadline = loop.time() + 5
                while process.lines_read < 1:
                    assert loop.time() < deadline, "stream never started"
                    await asyncio.sleep(0.01)
                os.write(write_fd, encode_requests([cancel_req]))
            finally:
                os.close(write_fd)
            code = await asyncio.wait_for(run_task, timeout=5)
        return code, len(host.registry)

    code, active = asyncio.run(_main())

    assert code == 0
    assert active == 0
    assert process.killed
    responses = decode_responses(stdout.getvalue())
    assert for_id(responses, stream_req.id) == [Content("first\n"), Cancelled(request_id=stream_req.id)]
    assert for_id(responses, cancel_req.id) == []


@pytest.mark.parametrize(
    "body",
    [b'{"id": ' + b"1" * 5000 + b"}", b"[" * 200000 + b"]" * 200000],
    ids=["int-digit-limit", "deep-array"],
)
def test_pathological_json_frame_does_not_stop_the_host(body: bytes) -> None:
    runner = FakeRunner(version=CommandOutput(True, "v1.2.3", ""))
    ping = make_request(Ping())
    bad_frame = struct.pack("<I", len(body)) + body

    host, code, responses = _run(runner, bad_frame + encode_requests([ping]))

    assert code == 0
    assert host.frames_rejected == 1
    assert for_id(responses, ping.id) == [Pong(resolved_path=FABRIC_PATH, version="v1.2.3", valid=True)]
