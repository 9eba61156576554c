"""Native Messaging host for the Tapestry browser extension.

This process is launched by the browser when the extension calls `connectNative()`.
It reads length-prefixed JSON requests from stdin, runs `fabric-ai` on their
behalf and streams framed responses back on stdout.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from .config import HostConfig
from .host import NativeHost


def configure_logging(config: HostConfig) -> None:
    # Native messaging requires strict stdout framing. Never write logs to stdout.
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def main() -> None:
    config = HostConfig.from_env()
    configure_logging(config)
    try:
        raise SystemExit(asyncio.run(NativeHost(config).run()))
    except KeyboardInterrupt:
        raise SystemExit(0) from None


if __name__ == "__main__":
    main()
