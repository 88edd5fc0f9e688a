"""Persistence for transcription jobs and segments.

All methods open and close their own session through the injected session
factory so callers (request handlers, Celery tasks) never share one.  Rows
are returned detached; the factory is built with ``expire_on_commit=False``
so their attributes stay readable.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Sequence

from sqlalchemy.orm import Session, sessionmaker

from voxscribe.db.database import SessionLocal
from voxscribe.errors import NotFoundError
from voxscribe.models.transcription import (
    JobStatus,
    SourceKind,
    TranscriptionJob,
    TranscriptionSegment,
    utcnow,
)
from voxscribe.services.segments import SegmentDraft

logger = logging.getLogger(__name__)

_MUTABLE_JOB_FIELDS = {"status", "text", "source_title"}


class JobStore:
    """create / update / read operations over jobs and their segments."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _load_job(db: Session, job_id: int) -> TranscriptionJob:
        job = db.get(TranscriptionJob, job_id)
        if job is None:
            raise NotFoundError(f"Transcription job {job_id} not found")
        return job

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(
        self,
        owner_id: int,
        source_kind: SourceKind,
        source_ref: str,
        provider: str,
    ) -> TranscriptionJob:
        with self._session() as db:
            job = TranscriptionJob(
                owner_id=owner_id,
                source_kind=source_kind,
                source_ref=source_ref,
                provider=provider,
                status=JobStatus.PROCESSING,
                text=None,
            )
            db.add(job)
            db.flush()
            logger.info("Created transcription job %s for owner %s (%s)", job.id, owner_id, source_kind.value)
            return job

    def get_job(self, job_id: int) -> TranscriptionJob:
        with self._session() as db:
            return self._load_job(db, job_id)

    def update_job(self, job_id: int, **fields) -> TranscriptionJob:
        """Apply a partial update; raises :class:`NotFoundError` for unknown ids."""
        unknown = set(fields) - _MUTABLE_JOB_FIELDS
        if unknown:
            raise ValueError(f"Job fields are immutable or unknown: {sorted(unknown)}")
        with self._session() as db:
            job = self._load_job(db, job_id)
            for name, value in fields.items():
                setattr(job, name, value)
            job.updated_at = utcnow()
            return job

    def list_jobs_by_owner(self, owner_id: int) -> list[TranscriptionJob]:
        with self._session() as db:
            return (
                db.query(TranscriptionJob)
                .filter(TranscriptionJob.owner_id == owner_id)
                .order_by(TranscriptionJob.created_at.desc(), TranscriptionJob.id.desc())
                .all()
            )

    def record_progress(self, job_id: int, text: str, segments: Sequence[SegmentDraft] = ()) -> bool:
        """Write one progress batch: the accumulated text plus the batch's segments.

        Both writes share a transaction.  Returns ``False`` (and writes
        nothing) if the job already left ``processing``.
        """
        with self._session() as db:
            job = self._load_job(db, job_id)
            if job.status is not JobStatus.PROCESSING:
                logger.warning("Ignoring progress for job %s in terminal state %s", job_id, job.status_str)
                return False
            job.text = text
            job.updated_at = utcnow()
            for draft in segments:
                db.add(self._segment_from_draft(job_id, draft))
            return True

    def finish_job(self, job_id: int, status: JobStatus, text: str) -> bool:
        """Move a job from ``processing`` to a terminal status exactly once.

        The update is conditional on the current status, so a second call
        (or a racing backstop) is a no-op that returns ``False``.
        """
        if not status.is_terminal:
            raise ValueError("finish_job requires a terminal status")
        with self._session() as db:
            self._load_job(db, job_id)
            updated = (
                db.query(TranscriptionJob)
                .filter(
                    TranscriptionJob.id == job_id,
                    TranscriptionJob.status == JobStatus.PROCESSING,
                )
                .update(
                    {"status": status, "text": text, "updated_at": utcnow()},
                    synchronize_session=False,
                )
            )
        if updated:
            logger.info("Job %s finished with status %s", job_id, status.value)
        else:
            logger.warning("Job %s was already terminal; %s ignored", job_id, status.value)
        return bool(updated)

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    @staticmethod
    def _segment_from_draft(job_id: int, draft: SegmentDraft) -> TranscriptionSegment:
        return TranscriptionSegment(
            job_id=job_id,
            text=draft.text,
            start_time_ms=draft.start_ms,
            end_time_ms=draft.end_ms,
            confidence=draft.confidence,
            timing_source=draft.timing_source,
        )

    def create_segment(self, job_id: int, draft: SegmentDraft) -> TranscriptionSegment:
        with self._session() as db:
            self._load_job(db, job_id)
            segment = self._segment_from_draft(job_id, draft)
            db.add(segment)
            db.flush()
            return segment

    def list_segments_by_job(self, job_id: int) -> list[TranscriptionSegment]:
        with self._session() as db:
            self._load_job(db, job_id)
            return (
                db.query(TranscriptionSegment)
                .filter(TranscriptionSegment.job_id == job_id)
                .order_by(TranscriptionSegment.start_time_ms, TranscriptionSegment.id)
                .all()
            )
