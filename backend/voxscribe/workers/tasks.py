"""Celery task definitions."""

from __future__ import annotations

import logging
import threading

from celery import Celery, Task
from celery.signals import worker_init

from voxscribe.config import settings
from voxscribe.db.job_store import JobStore
from voxscribe.errors import NotFoundError
from voxscribe.logging_config import setup_logging as setup_app_logging
from voxscribe.models.transcription import JobStatus
from voxscribe.services.orchestrator import (
    ERROR_MARKER_PREFIX,
    ProviderConfig,
    TranscriptionOrchestrator,
)

# Ensure app-level logging is configured when a worker starts.
setup_app_logging()
logger = logging.getLogger(__name__)


# --- Celery Application Setup ---
celery_app = Celery(
    "voxscribe",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["voxscribe.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Jobs are never retried; a lost worker must not replay a half-written job.
    task_acks_late=False,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
)


@worker_init.connect
def _ensure_schema(**_kwargs) -> None:
    # The worker must not depend on the API process having created the schema.
    from voxscribe.db.database import create_tables

    create_tables()


# --- Worker-side service context ---
_orchestrator: TranscriptionOrchestrator | None = None
_orchestrator_lock = threading.Lock()


def get_worker_orchestrator() -> TranscriptionOrchestrator:
    """Build this process's orchestrator on first use."""
    global _orchestrator
    if _orchestrator is None:
        with _orchestrator_lock:
            if _orchestrator is None:
                from voxscribe.context import build_context

                _orchestrator = build_context().orchestrator
    return _orchestrator


# --- Base Task with job failure backstop ---
class BaseTaskWithDB(Task):
    """Base Celery Task that fails the job if the task itself crashes."""

    abstract = True

    def __call__(self, *args, **kwargs):
        # Arguments carry the provider credential; log only the job id.
        job_id = kwargs.get("job_id") or (args[0] if args else None)
        logger.info("Task %s [%s] called for job %s", self.name, self.request.id, job_id)
        return super().__call__(*args, **kwargs)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error("Task %s [%s] failed: %s", self.name, task_id, exc, exc_info=einfo)
        job_id = kwargs.get("job_id") or (args[0] if args and isinstance(args[0], int) else None)
        if job_id:
            try:
                JobStore().finish_job(job_id, JobStatus.FAILED, f"{ERROR_MARKER_PREFIX}{str(exc)[:500]}")
            except NotFoundError:
                logger.warning("Job %s not found for failure update of task %s [%s].", job_id, self.name, task_id)
            except Exception as db_exc:
                logger.error(
                    "DB error during task failure handling for job %s, task %s [%s]: %s",
                    job_id, self.name, task_id, db_exc, exc_info=True,
                )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.info("Task %s [%s] completed. Result: %s", self.name, task_id, retval)
        super().on_success(retval, task_id, args, kwargs)


# --- Transcription Task ---
@celery_app.task(name="transcribe_job_task", base=BaseTaskWithDB)
def transcribe_job_task(job_id: int, provider_config: dict, upload_path: str | None = None):
    config = ProviderConfig.from_dict(provider_config)
    status = get_worker_orchestrator().run_job(job_id, config, upload_path)
    return {"job_id": job_id, "status": status.value if status else None}


class CeleryJobDispatcher:
    """Queues jobs on the Celery broker (or runs them inline in eager mode)."""

    def __init__(self, task=None) -> None:
        self._task = task or transcribe_job_task

    def dispatch(self, job_id: int, config: ProviderConfig, upload_path: str | None = None) -> None:
        result = self._task.apply_async(args=[job_id, config.to_dict(), upload_path])
        logger.info("Queued transcription job %s as task %s", job_id, result.id)


logger.info("Celery tasks defined and logging configured.")
