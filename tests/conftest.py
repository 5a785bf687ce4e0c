"""Global test fixtures."""

import os

# Config requires a lock staleness threshold; set it before any test module
# builds a Config. This must happen at module load time, not in a fixture
os.environ.setdefault("SEARCHSYNC_LOCK__STALE_AFTER_SECONDS", "600")
