#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[probe] binary={os.environ.get('PROBE_BROWSER_BINARY', 'auto')} | "
    f"port={os.environ.get('PROBE_BROWSER_PORT', '9222')} | "
    f"artifacts={os.environ.get('PROBE_ARTIFACT_DIR', 'test-results/artifacts')}",
    file=sys.stderr,
)

from monitors.storefront.main import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
