"""Single-owner writer for the shared stdout transport.

Request tasks encode their own frames and hand the bytes to one writer task
through a queue; only that task ever touches the output stream, and it writes
each frame in one call. A length prefix can therefore never be followed by
another message's body.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import BinaryIO

from ..codec import FrameCodec
from ..errors import TransportClosedError
from ..messages import Response, ResponsePayload

logger = logging.getLogger("tapestry.host.writer")


# Frames queued ahead of the writer task; senders wait once this many are pending.
MAX_PENDING_FRAMES = 64


class ResponseWriter:
    def __init__(
        self,
        stream: BinaryIO,
        codec: FrameCodec[Response] | None = None,
        *,
        max_pending: int = MAX_PENDING_FRAMES,
    ) -> None:
        self._stream = stream
        self._codec: FrameCodec[Response] = codec or FrameCodec(dumps=Response.to_dict)
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max(1, int(max_pending)))
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.frames_written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="tapestry-response-writer")

    async def send(self, response: Response) -> None:
        """Queue one response, waiting while the output is backed up.

        Raises CodecError if it cannot be framed.
        """
        frame = self._codec.encode(response)
        if self._closed:
            raise TransportClosedError(f"output closed; dropped {response.type} for {response.id}")
        await self._queue.put(frame)

    def _write_frame(self, frame: bytes) -> None:
        self._stream.write(frame)
        self._stream.flush()

    async def _run(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            if self._closed:
                # Keep draining so senders blocked on a full queue wake up.
                continue
            try:
                await asyncio.to_thread(self._write_frame, frame)
            except (OSError, ValueError) as exc:
                # ValueError: write to a closed file object.
                logger.error("output transport failed: %s", exc)
                self._closed = True
                continue
            self.frames_written += 1

    async def close(self) -> None:
        """Flush everything queued so far, then stop the writer task."""
        if self._task is None:
            self._closed = True
            return
        if not self._task.done():
            await self._queue.put(None)
        await self._task
        self._closed = True


class ResponseStream:
    """Responses for one correlation id.

    Enforces the terminal-message rule: once a terminal response went out,
    anything else for this id is dropped with a warning.
    """

    def __init__(self, writer: ResponseWriter, request_id: uuid.UUID) -> None:
        self._writer = writer
        self.request_id = request_id
        self.finished = False

    async def send(self, payload: ResponsePayload) -> None:
        if self.finished:
            logger.warning("dropping %s for %s: terminal message already sent", payload.TYPE, self.request_id)
            return
        await self._writer.send(Response(id=self.request_id, payload=payload))
        if payload.TERMINAL:
            self.finished = True


__all__ = ["MAX_PENDING_FRAMES", "ResponseStream", "ResponseWriter"]
