"""Transcription job endpoints: submit, poll, list, segments and export."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Literal

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from voxscribe.api.deps import get_current_user_id, get_orchestrator
from voxscribe.config import settings
from voxscribe.errors import InvalidSourceError, JobNotCompletedError, UploadTooLargeError
from voxscribe.models.transcription import JobStatus, TranscriptionJob, TranscriptionSegment
from voxscribe.services.orchestrator import TranscriptionOrchestrator
from voxscribe.services.segments import SegmentDraft, render_srt

router = APIRouter()
logger = logging.getLogger(__name__)

_CHUNK_SIZE = 8192


class JobInfo(BaseModel):
    id: int
    source_kind: str
    source_ref: str
    source_title: str | None = None
    provider: str
    status: str
    text: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: TranscriptionJob) -> "JobInfo":
        return cls(
            id=job.id,
            source_kind=job.source_kind.value,
            source_ref=job.source_ref,
            source_title=job.source_title,
            provider=job.provider,
            status=job.status_str,
            text=job.text,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class SegmentInfo(BaseModel):
    id: int
    job_id: int
    text: str
    start_time_ms: int
    end_time_ms: int
    confidence: float | None = None
    timing_source: str

    @classmethod
    def from_segment(cls, segment: TranscriptionSegment) -> "SegmentInfo":
        return cls(
            id=segment.id,
            job_id=segment.job_id,
            text=segment.text,
            start_time_ms=segment.start_time_ms,
            end_time_ms=segment.end_time_ms,
            confidence=segment.confidence,
            timing_source=segment.timing_source.value,
        )


class YouTubeRequest(BaseModel):
    url: str


async def read_upload_limited(file: UploadFile) -> bytes:
    """Read an upload in chunks, enforcing ``MAX_UPLOAD_SIZE_MB`` (0 == unlimited)."""
    max_bytes = settings.max_upload_size_bytes
    chunks: list[bytes] = []
    bytes_read = 0
    while True:
        chunk = await file.read(_CHUNK_SIZE)
        if not chunk:
            break
        bytes_read += len(chunk)
        if max_bytes and bytes_read > max_bytes:
            logger.warning(
                "File upload exceeded max size. file=%s limit=%dMB",
                file.filename,
                settings.MAX_UPLOAD_SIZE_MB,
            )
            raise UploadTooLargeError(
                f"File '{file.filename}' exceeds the maximum allowed size of {settings.MAX_UPLOAD_SIZE_MB} MB."
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/file", response_model=JobInfo, status_code=status.HTTP_202_ACCEPTED)
async def transcribe_file(
    file: UploadFile = File(...),
    user_id: int = Depends(get_current_user_id),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
) -> JobInfo:
    """Upload an audio or video file and start transcribing it."""
    if not file.filename:
        raise InvalidSourceError("Uploaded file is invalid (no filename).")
    logger.info("Received file transcription request from user %s: '%s'", user_id, file.filename)
    data = await read_upload_limited(file)
    job = await run_in_threadpool(orchestrator.submit_file_job, user_id, data, file.filename)
    return JobInfo.from_job(job)


@router.post("/youtube", response_model=JobInfo, status_code=status.HTTP_202_ACCEPTED)
def transcribe_youtube(
    payload: YouTubeRequest,
    user_id: int = Depends(get_current_user_id),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
) -> JobInfo:
    """Start transcribing the audio of a YouTube video."""
    logger.info("Received YouTube transcription request from user %s: %s", user_id, payload.url)
    return JobInfo.from_job(orchestrator.submit_url_job(user_id, payload.url))


@router.get("", response_model=List[JobInfo])
def list_transcriptions(
    user_id: int = Depends(get_current_user_id),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
) -> List[JobInfo]:
    """Return the caller's jobs, newest first."""
    return [JobInfo.from_job(job) for job in orchestrator.list_jobs(user_id)]


@router.get("/{job_id}", response_model=JobInfo)
def get_transcription(
    job_id: int,
    user_id: int = Depends(get_current_user_id),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
) -> JobInfo:
    return JobInfo.from_job(orchestrator.get_job(job_id, user_id))


@router.get("/{job_id}/segments", response_model=List[SegmentInfo])
def get_transcription_segments(
    job_id: int,
    user_id: int = Depends(get_current_user_id),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
) -> List[SegmentInfo]:
    return [SegmentInfo.from_segment(s) for s in orchestrator.get_segments(job_id, user_id)]


@router.get("/{job_id}/export", response_class=PlainTextResponse)
def export_transcription(
    job_id: int,
    format: Literal["txt", "srt"] = Query("txt"),
    user_id: int = Depends(get_current_user_id),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
) -> PlainTextResponse:
    """Download a completed transcript as plain text or SRT subtitles."""
    job = orchestrator.get_job(job_id, user_id)
    if job.status is not JobStatus.COMPLETED:
        raise JobNotCompletedError(f"Transcription job {job_id} is {job.status_str}, not completed")

    if format == "srt":
        segments = orchestrator.get_segments(job_id, user_id)
        if segments:
            drafts = [
                SegmentDraft(text=s.text, start_ms=s.start_time_ms, end_ms=s.end_time_ms)
                for s in segments
            ]
        else:
            drafts = orchestrator.build_segments(job.text or "")
        body = render_srt(drafts)
        media_type = "application/x-subrip"
    else:
        body = job.text or ""
        media_type = "text/plain"

    filename = f"transcription-{job_id}.{format}"
    return PlainTextResponse(
        body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
