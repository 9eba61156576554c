"""Native Messaging framing: 4-byte little-endian length prefix + UTF-8 JSON body.

The codec itself only touches an in-memory buffer; `FrameReader` adapts it to a
blocking binary stream (stdin) without blocking the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import struct
from collections.abc import Callable
from typing import Any, BinaryIO, Generic, TypeVar

MAX_MESSAGE_SIZE = 1024 * 1024
HEADER_SIZE = 4

_HEADER = struct.Struct("<I")

logger = logging.getLogger("tapestry.host.codec")

T = TypeVar("T")


class CodecError(Exception):
    """A frame could not be encoded or decoded."""


class MessageTooLargeError(CodecError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Message size {size} exceeds limit {limit}")
        self.size = size
        self.limit = limit


class DeserializationError(CodecError):
    """The frame body is not a valid message."""


class FrameCodec(Generic[T]):
    """Length-prefixed JSON codec.

    `loads` turns a parsed JSON value into a domain object and should raise
    `ValueError` when the value is structurally invalid; `dumps` does the
    reverse. Both default to identity (plain JSON values).
    """

    def __init__(
        self,
        *,
        loads: Callable[[Any], T] | None = None,
        dumps: Callable[[T], Any] | None = None,
        max_message_size: int = MAX_MESSAGE_SIZE,
    ) -> None:
        self._loads = loads
        self._dumps = dumps
        self.max_message_size = int(max_message_size)

    def encode(self, item: T) -> bytes:
        obj = self._dumps(item) if self._dumps is not None else item
        try:
            raw = json.dumps(obj, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise CodecError(f"Serialization error: {exc}") from exc
        if len(raw) > self.max_message_size:
            raise MessageTooLargeError(len(raw), self.max_message_size)
        return _HEADER.pack(len(raw)) + raw

    def decode(self, src: bytearray) -> T | None:
        """Decode one frame from the front of `src`.

        Returns None (consuming nothing) until a whole frame is buffered.
        """
        if len(src) < HEADER_SIZE:
            return None

        (length,) = _HEADER.unpack_from(src, 0)
        if length > self.max_message_size:
            raise MessageTooLargeError(length, self.max_message_size)

        total = HEADER_SIZE + length
        if len(src) < total:
            return None

        body = bytes(src[HEADER_SIZE:total])
        del src[:total]

        # An empty body is not valid JSON, so a zero-length frame fails here too.
        # ValueError also covers JSONDecodeError and the int digit limit;
        # RecursionError comes from deeply nested arrays/objects.
        try:
            obj = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError, RecursionError) as exc:
            raise DeserializationError(f"Serialization error: {exc}") from exc

        if self._loads is None:
            return obj
        try:
            return self._loads(obj)
        except ValueError as exc:
            raise DeserializationError(f"Serialization error: {exc}") from exc


class FrameReader(Generic[T]):
    """Pull decoded frames off a blocking binary stream.

    After an oversized frame is rejected, its declared body is skipped as it
    arrives so the next frame is read from the right offset.
    """

    def __init__(self, stream: BinaryIO, codec: FrameCodec[T], *, chunk_size: int = 64 * 1024) -> None:
        self._stream = stream
        self._codec = codec
        self._chunk_size = max(1, int(chunk_size))
        self._buffer = bytearray()
        self._discard = 0
        self._eof = False

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def _read_chunk(self) -> bytes:
        return self._stream.read1(self._chunk_size)

    async def read(self) -> T | None:
        """Next decoded item, or None once the stream is closed.

        Raises `CodecError` for a bad frame; the reader stays usable.
        """
        while True:
            if self._discard:
                n = min(self._discard, len(self._buffer))
                del self._buffer[:n]
                self._discard -= n

            if not self._discard:
                try:
                    item = self._codec.decode(self._buffer)
                except MessageTooLargeError as exc:
                    self._discard = HEADER_SIZE + exc.size
                    raise
                if item is not None:
                    return item

            if self._eof:
                return None
            chunk = await asyncio.to_thread(self._read_chunk)
            if not chunk:
                self._eof = True
                if self._buffer:
                    logger.debug("input closed with %d bytes of an incomplete frame", len(self._buffer))
                return None
            self._buffer.extend(chunk)


__all__ = [
    "HEADER_SIZE",
    "MAX_MESSAGE_SIZE",
    "CodecError",
    "DeserializationError",
    "FrameCodec",
    "FrameReader",
    "MessageTooLargeError",
]
