"""SQLAlchemy models for transcription jobs and their time-coded segments."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from voxscribe.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Lifecycle of a transcription job. ``PROCESSING`` is the only non-terminal state."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


class SourceKind(str, Enum):
    FILE = "file"
    REMOTE_URL = "remoteUrl"


class TimingSource(str, Enum):
    """Where a segment's offsets came from: a fixed nominal window or the provider."""

    NOMINAL = "nominal"
    PROVIDER = "provider"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class TranscriptionJob(Base):
    """
    One user-initiated transcription request and its lifecycle record.

    ``text`` is rewritten as progress batches arrive, holds the final joined
    transcript once ``status`` is ``completed`` and an error marker once it is
    ``failed``.  Only the orchestrator mutates a job.
    """

    __tablename__ = "transcription_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    owner_id = Column(Integer, nullable=False, index=True, comment="Requesting user; immutable.")
    source_kind = Column(
        SAEnum(SourceKind, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    source_ref = Column(String(2048), nullable=False, comment="Original filename or source URL.")
    source_title = Column(String(512), nullable=True, comment="Human-readable title of remote media.")
    provider = Column(String(50), nullable=False)
    status = Column(
        SAEnum(JobStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=JobStatus.PROCESSING,
        index=True,
    )
    text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    segments = relationship(
        "TranscriptionSegment",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TranscriptionSegment.start_time_ms",
    )

    # Helper to convert enum to plain string for JSON responses
    @property
    def status_str(self) -> str:
        return self.status.value if isinstance(self.status, JobStatus) else str(self.status)

    def __repr__(self) -> str:
        return f"<TranscriptionJob id={self.id} owner={self.owner_id} status={self.status_str}>"


class TranscriptionSegment(Base):
    """A time-bounded slice of a job's transcript. Never mutated after creation."""

    __tablename__ = "transcription_segments"
    __table_args__ = (
        CheckConstraint("start_time_ms >= 0", name="ck_segment_start_non_negative"),
        CheckConstraint("start_time_ms < end_time_ms", name="ck_segment_start_before_end"),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="ck_segment_confidence_range",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    job_id = Column(
        Integer,
        ForeignKey("transcription_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(Text, nullable=False)
    start_time_ms = Column(Integer, nullable=False)
    end_time_ms = Column(Integer, nullable=False)
    confidence = Column(Float, nullable=True)
    timing_source = Column(
        SAEnum(TimingSource, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=TimingSource.NOMINAL,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    job = relationship("TranscriptionJob", back_populates="segments")
