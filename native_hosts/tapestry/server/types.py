"""
Type definitions shared by the request router and its handlers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..config import HostConfig
from ..messages import Request
from ..process import CommandRunner, FabricCommandRunner
from ..process_registry import ProcessRegistry
from .writer import ResponseStream, ResponseWriter

RunnerFactory = Callable[[str], CommandRunner]


@dataclass(slots=True)
class HostContext:
    """Everything a request task needs; built once per host run."""

    config: HostConfig
    writer: ResponseWriter
    registry: ProcessRegistry = field(default_factory=ProcessRegistry)
    runner_factory: RunnerFactory = FabricCommandRunner

    def runner_for(self, request: Request) -> CommandRunner:
        """Resolve the fabric path for `request` (raises FabricNotFoundError)."""
        return self.runner_factory(self.config.resolve_fabric_path(request.path))

    def stream_for(self, request: Request) -> ResponseStream:
        return ResponseStream(self.writer, request.id)


HandlerFunc = Callable[[HostContext, Request, ResponseStream], Awaitable[None]]
