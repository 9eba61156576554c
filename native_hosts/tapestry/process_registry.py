"""In-flight streaming requests, keyed by correlation id.

An entry exists only while its child process runs. The streaming task that
registered it is the only one that removes it; `native.cancelProcess` merely
looks it up and fires the signal.
"""

from __future__ import annotations

import asyncio
import threading
import uuid

from .errors import DuplicateRequestError


class CancellationSignal:
    """One-shot, idempotent cancellation flag.

    Must be fired from the event loop thread that awaits it.
    """

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class ProcessRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[uuid.UUID, CancellationSignal] = {}

    def register(self, request_id: uuid.UUID) -> CancellationSignal:
        with self._lock:
            if request_id in self._entries:
                raise DuplicateRequestError(f"Request {request_id} is already in flight")
            signal = CancellationSignal()
            self._entries[request_id] = signal
            return signal

    def unregister(self, request_id: uuid.UUID) -> bool:
        with self._lock:
            return self._entries.pop(request_id, None) is not None

    def get(self, request_id: uuid.UUID) -> CancellationSignal | None:
        with self._lock:
            return self._entries.get(request_id)

    def cancel(self, request_id: uuid.UUID) -> bool:
        """Fire the signal for `request_id`; False if nothing is registered."""
        signal = self.get(request_id)
        if signal is None:
            return False
        signal.fire()
        return True

    def active_ids(self) -> list[uuid.UUID]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CancellationSignal", "ProcessRegistry"]
