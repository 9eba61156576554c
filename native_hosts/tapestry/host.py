from __future__ import annotations

import logging
import sys
from typing import BinaryIO

from .codec import CodecError, FrameCodec, FrameReader
from .config import HostConfig
from .messages import Request, Response
from .process import FabricCommandRunner
from .process_registry import ProcessRegistry
from .server.dispatch import create_default_router
from .server.types import HostContext, RunnerFactory
from .server.writer import ResponseWriter

logger = logging.getLogger("tapestry.host")


class NativeHost:
    """Extension <-> fabric bridge over Native Messaging (stdin/stdout framing).

    - Requests are read frame by frame and dispatched without waiting for
      earlier requests to finish.
    - All responses leave through one writer task.
    - End of input is a clean shutdown: in-flight requests finish, the output
      is flushed, and `run()` returns 0.
    """

    def __init__(
        self,
        config: HostConfig | None = None,
        *,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        runner_factory: RunnerFactory = FabricCommandRunner,
        registry: ProcessRegistry | None = None,
    ) -> None:
        self.config = config or HostConfig.from_env()
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._runner_factory = runner_factory
        self.registry = registry if registry is not None else ProcessRegistry()
        self.frames_received = 0
        self.frames_rejected = 0

    async def run(self) -> int:
        writer = ResponseWriter(self._stdout, FrameCodec(dumps=Response.to_dict))
        writer.start()
        ctx = HostContext(
            config=self.config,
            writer=writer,
            registry=self.registry,
            runner_factory=self._runner_factory,
        )
        router = create_default_router(ctx)
        reader = FrameReader(
            self._stdin,
            FrameCodec(loads=Request.from_dict),
            chunk_size=self.config.read_chunk_size,
        )

        logger.debug("native host ready")
        try:
            while True:
                try:
                    request = await reader.read()
                except CodecError as exc:
                    self.frames_rejected += 1
                    logger.warning("dropping invalid frame: %s", exc)
                    continue
                except OSError as exc:
                    logger.error("input transport failed: %s", exc)
                    break
                if request is None:
                    break
                self.frames_received += 1
                logger.debug("recv %s id=%s", request.type, request.id)
                await router.dispatch(request)

            logger.debug("input closed; waiting for %d in-flight request(s)", router.pending)
            await router.drain()
        finally:
            await writer.close()
        return 0


__all__ = ["NativeHost"]
