#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# stdout carries the framed protocol; diagnostics go to stderr only.
print(
    f"[tapestry] fabric={os.environ.get('TAPESTRY_FABRIC_PATH', 'auto')} | "
    f"names={os.environ.get('TAPESTRY_FABRIC_NAMES', 'fabric-ai')} | "
    f"log={os.environ.get('TAPESTRY_LOG_LEVEL', 'INFO')}",
    file=sys.stderr,
)

from native_hosts.tapestry.native_host import main  # noqa: E402

if __name__ == "__main__":
    main()
