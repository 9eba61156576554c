from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .errors import FabricNotFoundError

logger = logging.getLogger("tapestry.host.config")

DEFAULT_FABRIC_NAMES: list[str] = ["fabric-ai"]


def _default_binary_candidates() -> list[str]:
    # Browsers launch native hosts with a minimal PATH (notably on macOS), so
    # the usual install locations are checked explicitly after the PATH lookup.
    home = Path.home()
    return [
        str(home / "go" / "bin" / "fabric-ai"),
        str(home / ".local" / "bin" / "fabric-ai"),
        "/opt/homebrew/bin/fabric-ai",
        "/usr/local/bin/fabric-ai",
        "/usr/bin/fabric-ai",
    ]


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _is_executable(path: str) -> bool:
    candidate = Path(path)
    return candidate.is_file() and os.access(str(candidate), os.X_OK)


@dataclass
class HostConfig:
    fabric_path: str | None = None
    fabric_names: list[str] = field(default_factory=lambda: list(DEFAULT_FABRIC_NAMES))
    binary_candidates: list[str] = field(default_factory=_default_binary_candidates)
    log_level: str = "INFO"
    read_chunk_size: int = 64 * 1024

    @staticmethod
    def normalize_log_level(raw: str | None, *, debug: bool = False) -> str:
        if debug:
            return "DEBUG"
        level = (raw or "").strip().upper()
        if level in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return level
        if level == "WARN":
            return "WARNING"
        return "INFO"

    @classmethod
    def from_env(cls) -> HostConfig:
        env_path = (os.environ.get("TAPESTRY_FABRIC_PATH") or "").strip()
        names_raw = os.environ.get("TAPESTRY_FABRIC_NAMES", "")
        names = [name.strip() for name in names_raw.split(",") if name.strip()] or list(DEFAULT_FABRIC_NAMES)
        debug = os.environ.get("TAPESTRY_HOST_DEBUG") == "1"
        try:
            chunk = int(os.environ.get("TAPESTRY_READ_CHUNK") or 64 * 1024)
        except ValueError:
            chunk = 64 * 1024
        return cls(
            fabric_path=expand_path(env_path) if env_path else None,
            fabric_names=names,
            log_level=cls.normalize_log_level(os.environ.get("TAPESTRY_LOG_LEVEL"), debug=debug),
            read_chunk_size=max(1, chunk),
        )

    def resolve_fabric_path(self, override: str | None = None) -> str:
        """Locate the fabric executable.

        Order: the request's override, the configured path, a PATH lookup for
        each configured name, then the well-known install locations.
        """
        if override:
            path = expand_path(override)
            if _is_executable(path):
                logger.debug("using requested fabric path %s", path)
                return path
            logger.debug("requested fabric path %s is not executable; falling back", path)

        if self.fabric_path and _is_executable(self.fabric_path):
            return self.fabric_path

        for name in self.fabric_names:
            found = shutil.which(name)
            if found:
                return found

        for candidate in self.binary_candidates:
            if _is_executable(candidate):
                return candidate

        raise FabricNotFoundError(f"Failed to find {', '.join(self.fabric_names)} in PATH")
