"""Host-side failures that are reported back to the extension as `native.error`."""

from __future__ import annotations


class HostError(Exception):
    """Base class for failures while serving a request."""


class FabricNotFoundError(HostError):
    """The fabric executable could not be resolved."""


class SpawnError(HostError):
    """The external process could not be started."""


class ProcessIOError(HostError):
    """Reading from or writing to a running child failed."""


class DuplicateRequestError(HostError):
    """A request id is already registered for an in-flight process."""


class TransportClosedError(HostError):
    """The shared output transport is no longer writable."""


__all__ = [
    "DuplicateRequestError",
    "FabricNotFoundError",
    "HostError",
    "ProcessIOError",
    "SpawnError",
    "TransportClosedError",
]
