"""Filesystem helpers for upload hand-off and scratch space."""

import logging
import re
import shutil
from pathlib import Path

from voxscribe.config import settings

logger = logging.getLogger(__name__)

# Determine base data directory:
# 1. Use DATA_ROOT env var if set.
# 2. Else, if /data exists, assume Docker environment and use /data.
# 3. Otherwise, use project_root/data (development environment).
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
if settings.DATA_ROOT:
    DATA_ROOT = Path(settings.DATA_ROOT)
elif Path("/data").exists():
    DATA_ROOT = Path("/data")
else:
    DATA_ROOT = _PROJECT_ROOT / "data"

# Uploaded media waiting for the worker, and per-call scratch space
UPLOAD_DIR = DATA_ROOT / "uploads"
SCRATCH_DIR = DATA_ROOT / "scratch"

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


def ensure_dir_exists(path: Path) -> Path:
    """Ensure that the given directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_suffix(file_name: str | None) -> str:
    """Lower-cased extension of ``file_name`` if it looks like one, else ``""``.

    The client-supplied name is only a container hint; it never becomes part
    of a filesystem path.
    """
    suffix = Path(file_name or "").suffix.lower()
    return suffix if _SAFE_SUFFIX.match(suffix) else ""


def save_upload(job_id: int, data: bytes, file_name: str) -> str:
    """Store an uploaded file for ``job_id`` and return its path relative to DATA_ROOT."""
    job_dir = ensure_dir_exists(UPLOAD_DIR / str(job_id))
    path = job_dir / f"source{safe_suffix(file_name)}"
    path.write_bytes(data)
    logger.info("Stored %d upload bytes for job %s at %s", len(data), job_id, path)
    return str(path.relative_to(DATA_ROOT))


def read_upload(relative_path: str) -> bytes:
    path = (DATA_ROOT / relative_path).resolve()
    if UPLOAD_DIR.resolve() not in path.parents:
        raise ValueError(f"Upload path escapes upload directory: {relative_path}")
    return path.read_bytes()


def discard_upload(job_id: int) -> None:
    """Remove the job's upload directory; missing directories are ignored."""
    job_dir = UPLOAD_DIR / str(job_id)
    if job_dir.exists():
        shutil.rmtree(job_dir, ignore_errors=True)
        logger.debug("Removed upload directory %s", job_dir)
