"""Request routing for the Tapestry native host.

Keep this package import light: `native_hosts.tapestry.server.writer` is used by
tests without pulling the handler table.
"""

from __future__ import annotations

from typing import Any

__all__ = ["RequestRouter", "create_default_router"]


def __getattr__(name: str) -> Any:  # pragma: no cover
    if name in {"RequestRouter", "create_default_router"}:
        from .dispatch import RequestRouter, create_default_router

        return {"RequestRouter": RequestRouter, "create_default_router": create_default_router}[name]
    raise AttributeError(name)
