# Namespace for ORM models.
from .settings import TranscriptionSettings
from .transcription import (
    JobStatus,
    SourceKind,
    TimingSource,
    TranscriptionJob,
    TranscriptionSegment,
)

__all__ = [
    "JobStatus",
    "SourceKind",
    "TimingSource",
    "TranscriptionJob",
    "TranscriptionSegment",
    "TranscriptionSettings",
]
