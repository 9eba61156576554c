"""
Request router with dispatch table.

Each decoded request is looked up by its `type`. Handlers that touch an
external process run as their own task so the reader never waits on a child;
`native.cancelProcess` runs inline to keep it ordered with the frames around it.
"""

from __future__ import annotations

import asyncio
import logging

from ..codec import CodecError
from ..errors import HostError, TransportClosedError
from ..messages import Error, Request
from .handlers import ALL_HANDLERS
from .types import HandlerFunc, HostContext
from .writer import ResponseStream

logger = logging.getLogger("tapestry.host.dispatch")


class RequestRouter:
    def __init__(self, ctx: HostContext) -> None:
        self._ctx = ctx
        # type -> (handler, inline)
        self._handlers: dict[str, tuple[HandlerFunc, bool]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def context(self) -> HostContext:
        return self._ctx

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def register(self, request_type: str, handler: HandlerFunc, *, inline: bool = False) -> None:
        """Register a handler for a request type."""
        self._handlers[request_type] = (handler, inline)

    def register_many(self, handlers: dict[str, tuple[HandlerFunc, bool]]) -> None:
        """Register multiple handlers at once."""
        self._handlers.update(handlers)

    def has(self, request_type: str) -> bool:
        return request_type in self._handlers

    async def dispatch(self, request: Request) -> asyncio.Task[None] | None:
        """Run or schedule the handler for `request`.

        Returns the spawned task, or None when the request was handled inline.
        """
        handler_info = self._handlers.get(request.type)
        if handler_info is None:
            await self._report(self._ctx.stream_for(request), f"Unsupported request type: {request.type}")
            return None

        handler, inline = handler_info
        if inline:
            await self._run(handler, request)
            return None

        task = asyncio.create_task(self._run(handler, request), name=f"tapestry-{request.type}-{request.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, handler: HandlerFunc, request: Request) -> None:
        stream = self._ctx.stream_for(request)
        try:
            await handler(self._ctx, request, stream)
        except TransportClosedError as exc:
            logger.warning("request %s (%s): %s", request.id, request.type, exc)
        except (HostError, CodecError) as exc:
            logger.warning("request %s (%s) failed: %s", request.id, request.type, exc)
            await self._report(stream, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("request %s (%s) crashed", request.id, request.type)
            await self._report(stream, f"internal error: {exc}")

    async def _report(self, stream: ResponseStream, message: str) -> None:
        try:
            await stream.send(Error(message=message))
        except (TransportClosedError, CodecError) as exc:
            logger.warning("could not report error for %s: %s", stream.request_id, exc)

    async def drain(self) -> None:
        """Wait until every scheduled request task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


def create_default_router(ctx: HostContext) -> RequestRouter:
    """Create a router with all request handlers registered."""
    router = RequestRouter(ctx)
    router.register_many(ALL_HANDLERS)
    return router


__all__ = ["RequestRouter", "create_default_router"]
