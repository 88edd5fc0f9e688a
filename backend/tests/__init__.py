# Ensure the `backend` directory is importable so `voxscribe.*` resolves
from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Settings are read at import time, so the environment must be in place first.
# Use an in-memory SQLite DB and throwaway data/log dirs during tests.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="voxscribe-tests-"))
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_ECHO", "0")
os.environ.setdefault("DATA_ROOT", str(_TEST_ROOT / "data"))
os.environ.setdefault("LOG_DIR", str(_TEST_ROOT / "logs"))
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "1")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
