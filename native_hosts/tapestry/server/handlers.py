"""
Request handlers, one per request type.

All handlers follow the signature: (ctx, request, stream) -> None and report
results through `stream`. Failures are raised as `HostError` and turned into
`native.error` by the router.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..errors import DuplicateRequestError, FabricNotFoundError, HostError
from ..fabric import build_stream_command, split_listing
from ..messages import (
    CancelProcess,
    Cancelled,
    Content,
    ContextsList,
    Done,
    Error,
    ListContexts,
    ListPatterns,
    PatternsList,
    Ping,
    Pong,
    ProcessContent,
    Request,
    ResponsePayload,
)
from ..process import CommandOutput, ProcessHandle
from ..process_registry import CancellationSignal
from .types import HostContext, HandlerFunc
from .writer import ResponseStream

logger = logging.getLogger("tapestry.host.handlers")

T = TypeVar("T")

_CANCELLED: Any = object()


@dataclass(slots=True, frozen=True)
class StreamOutcome:
    exit_code: int | None = None
    cancelled: bool = False


# ─────────────────────────────────────────────────────────────────────────────
# Health check and listings
# ─────────────────────────────────────────────────────────────────────────────


async def handle_ping(ctx: HostContext, request: Request, stream: ResponseStream) -> None:
    # Ping never fails at the protocol level: every failure is reported as valid=false.
    try:
        runner = ctx.runner_for(request)
    except FabricNotFoundError as exc:
        logger.warning("ping: %s", exc)
        await stream.send(Pong(resolved_path=None, version=None, valid=False))
        return

    try:
        output = await runner.version()
    except (HostError, OSError) as exc:
        logger.warning("ping: failed to run fabric: %s", exc)
        await stream.send(Pong(resolved_path=runner.path, version=None, valid=False))
        return

    if not output.success:
        logger.warning("ping: fabric validation failed: %s", output.stderr.strip())
        await stream.send(Pong(resolved_path=runner.path, version=None, valid=False))
        return

    await stream.send(Pong(resolved_path=runner.path, version=output.stdout.strip(), valid=True))


async def _handle_listing(
    label: str,
    run: Callable[[], Awaitable[CommandOutput]],
    build: Callable[[list[str]], ResponsePayload],
    stream: ResponseStream,
) -> None:
    output = await run()
    if not output.success:
        await stream.send(Error(message=f"Failed to list {label}: {output.stderr.strip()}"))
        return
    await stream.send(build(split_listing(output.stdout)))


async def handle_list_patterns(ctx: HostContext, request: Request, stream: ResponseStream) -> None:
    runner = ctx.runner_for(request)
    await _handle_listing("patterns", runner.list_patterns, lambda names: PatternsList(patterns=names), stream)


async def handle_list_contexts(ctx: HostContext, request: Request, stream: ResponseStream) -> None:
    runner = ctx.runner_for(request)
    await _handle_listing("contexts", runner.list_contexts, lambda names: ContextsList(contexts=names), stream)


# ─────────────────────────────────────────────────────────────────────────────
# Streaming
# ─────────────────────────────────────────────────────────────────────────────


async def _until_cancelled(op: Awaitable[T], cancel_wait: asyncio.Future[Any]) -> T:
    """Await `op` unless `cancel_wait` completes first (then return _CANCELLED)."""
    task = asyncio.ensure_future(op)
    try:
        await asyncio.wait({task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        task.cancel()
        raise
    if cancel_wait.done():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return _CANCELLED
    return task.result()


async def _feed_stdin(process: ProcessHandle, content: str) -> None:
    await process.write_stdin(content.encode("utf-8"))
    await process.close_stdin()


async def _terminate(process: ProcessHandle) -> StreamOutcome:
    process.kill()
    code = await process.wait()
    logger.debug("killed child reaped with code=%s", code)
    return StreamOutcome(exit_code=None, cancelled=True)


async def stream_process_output(
    process: ProcessHandle,
    content: str,
    signal: CancellationSignal,
    stream: ResponseStream,
) -> StreamOutcome:
    """Feed `content` to the child and forward its stdout line by line.

    Every blocking step is raced against `signal`, so a child that never
    writes a newline is still interrupted promptly.
    """
    cancel_wait = asyncio.ensure_future(signal.wait())
    try:
        if await _until_cancelled(_feed_stdin(process, content), cancel_wait) is _CANCELLED:
            return await _terminate(process)

        while True:
            line = await _until_cancelled(process.read_stdout_line(), cancel_wait)
            if line is _CANCELLED:
                return await _terminate(process)
            if line is None:
                break
            await stream.send(Content(content=line))

        # stdout can close while the child keeps running.
        code = await _until_cancelled(process.wait(), cancel_wait)
        if code is _CANCELLED:
            return await _terminate(process)
    finally:
        cancel_wait.cancel()

    return StreamOutcome(exit_code=code)


async def handle_process_content(ctx: HostContext, request: Request, stream: ResponseStream) -> None:
    payload = request.payload
    if not isinstance(payload, ProcessContent):
        raise HostError(f"Unexpected payload for {ProcessContent.TYPE}: {request.type}")

    runner = ctx.runner_for(request)
    command = build_stream_command(
        runner.path,
        model=payload.model,
        pattern=payload.pattern,
        context=payload.context,
        custom_prompt=payload.custom_prompt,
    )
    process = await runner.spawn(command)

    try:
        signal = ctx.registry.register(request.id)
    except DuplicateRequestError:
        process.kill()
        await process.wait()
        raise

    completed = False
    try:
        outcome = await stream_process_output(process, payload.content, signal, stream)
        completed = True
    finally:
        ctx.registry.unregister(request.id)
        if not completed:
            # Error or task cancellation: the child must not outlive its request.
            process.kill()
            with contextlib.suppress(HostError, OSError):
                await process.wait()

    if outcome.cancelled:
        logger.info("request %s cancelled", request.id)
        await stream.send(Cancelled(request_id=request.id))
        return
    logger.debug("request %s finished exit_code=%s", request.id, outcome.exit_code)
    await stream.send(Done(exit_code=outcome.exit_code))


async def handle_cancel_process(ctx: HostContext, request: Request, stream: ResponseStream) -> None:
    # Fire-and-forget: no response, and an unknown/finished target is not an error.
    payload = request.payload
    if not isinstance(payload, CancelProcess):
        raise HostError(f"Unexpected payload for {CancelProcess.TYPE}: {request.type}")
    target = payload.target_request_id
    if ctx.registry.cancel(target):
        logger.info("cancellation requested for %s", target)
    else:
        logger.debug("cancel for %s ignored: not running", target)


# type -> (handler, inline)
ALL_HANDLERS: dict[str, tuple[HandlerFunc, bool]] = {
    Ping.TYPE: (handle_ping, False),
    ListPatterns.TYPE: (handle_list_patterns, False),
    ListContexts.TYPE: (handle_list_contexts, False),
    ProcessContent.TYPE: (handle_process_content, False),
    CancelProcess.TYPE: (handle_cancel_process, True),
}


__all__ = [
    "ALL_HANDLERS",
    "StreamOutcome",
    "handle_cancel_process",
    "handle_list_contexts",
    "handle_list_patterns",
    "handle_ping",
    "handle_process_content",
    "stream_process_output",
]
