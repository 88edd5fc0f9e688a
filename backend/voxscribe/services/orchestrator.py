"""Transcription job orchestration.

Request side (synchronous, inside the API process):

1. Precondition checks: source validation and provider/credential
   resolution.  Failures raise straight to the caller and no job row exists.
2. Create the job in ``processing`` and hand ``(job id, provider config)``
   to the background executor.  The caller gets the job back immediately.

Background side (:meth:`TranscriptionOrchestrator.run_job`, one call per
job, usually inside a Celery worker):

normalize or fetch → transcribe → (translate) → split into units → persist
progress batches → ``completed``.  Any exception on the way ends the job in
``failed`` with an error marker; nothing is retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from voxscribe.config import settings
from voxscribe.db.job_store import JobStore
from voxscribe.db.settings_store import SettingsStore
from voxscribe.errors import AppBaseException, InvalidSourceError, NotFoundError
from voxscribe.models.settings import TranscriptionSettings
from voxscribe.models.transcription import (
    JobStatus,
    SourceKind,
    TranscriptionJob,
    TranscriptionSegment,
)
from voxscribe.services.audio_processing import SUPPORTED_EXTENSIONS, MediaNormalizer
from voxscribe.services.providers.base import (
    Feature,
    TranscriptionOptions,
    TranslateOptions,
)
from voxscribe.services.providers.registry import ProviderRegistry
from voxscribe.services.remote_media import RemoteMediaFetcher, extract_video_id
from voxscribe.services.segments import (
    SegmentDraft,
    batched,
    join_units,
    sanitize_native_segments,
    split_sentences,
    synthesize_segments,
)
from voxscribe.utils.storage import discard_upload, read_upload, safe_suffix, save_upload

logger = logging.getLogger(__name__)

ERROR_MARKER_PREFIX = "Transcription failed: "
_MAX_ERROR_LENGTH = 1000

_FEATURE_TOGGLES = {
    Feature.LANGUAGE_DETECTION: "enable_language_detection",
    Feature.TIMESTAMPS: "enable_timestamps",
    Feature.SPEAKER_DIARIZATION: "enable_speaker_diarization",
    Feature.NOISE_REDUCTION: "enable_noise_reduction",
    Feature.CONFIDENCE_SCORES: "enable_confidence_scores",
}


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved provider name, credential and options for one job."""

    provider: str
    api_key: str | None = None
    options: TranscriptionOptions = field(default_factory=TranscriptionOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "api_key": self.api_key, "options": self.options.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderConfig":
        return cls(
            provider=data["provider"],
            api_key=data.get("api_key") or None,
            options=TranscriptionOptions.from_dict(data.get("options")),
        )

    def __repr__(self) -> str:
        # Never leak the key into logs.
        return f"ProviderConfig(provider={self.provider!r}, api_key={'***' if self.api_key else None}, options={self.options!r})"


class JobDispatcher(Protocol):
    """Hands a created job to whatever executes background work."""

    def dispatch(self, job_id: int, config: ProviderConfig, upload_path: str | None = None) -> None:
        ...


def options_from_settings(row: TranscriptionSettings | None) -> TranscriptionOptions:
    if row is None:
        return TranscriptionOptions()
    language = (row.default_language or "").strip().lower()
    if language in ("", "auto", "autodetect"):
        language = None
    features = {feature for feature, column in _FEATURE_TOGGLES.items() if getattr(row, column)}
    translate = TranslateOptions(
        enabled=bool(row.translate_enabled),
        target_language=(row.translate_target_language or "").strip() or None,
    )
    if translate.active:
        features.add(Feature.TRANSLATION)
    return TranscriptionOptions(language=language, features=frozenset(features), translate=translate)


def error_marker(exc: BaseException) -> str:
    if isinstance(exc, AppBaseException):
        reason = exc.detail
    else:
        reason = str(exc) or type(exc).__name__
    return f"{ERROR_MARKER_PREFIX}{reason}"[:_MAX_ERROR_LENGTH]


class TranscriptionOrchestrator:
    def __init__(
        self,
        store: JobStore,
        settings_store: SettingsStore,
        registry: ProviderRegistry,
        normalizer: MediaNormalizer,
        fetcher: RemoteMediaFetcher,
        dispatcher: JobDispatcher | None = None,
        batch_size: int | None = None,
        window_ms: int | None = None,
    ) -> None:
        self.store = store
        self.settings_store = settings_store
        self.registry = registry
        self.normalizer = normalizer
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.batch_size = batch_size or settings.PROGRESS_BATCH_SIZE
        self.window_ms = window_ms or settings.NOMINAL_SEGMENT_MS

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def resolve_provider_config(self, owner_id: int) -> ProviderConfig:
        """Pick the owner's provider and make sure it can be built.

        Raises ``UnknownProviderError`` / ``MissingCredentialError`` before
        any job exists.
        """
        row = self.settings_store.get_settings(owner_id)
        provider = ProviderRegistry.normalize_name((row.provider if row else None) or settings.DEFAULT_PROVIDER)
        api_key = row.api_key_for(provider) if row else None
        self.registry.get_provider(provider, api_key)
        return ProviderConfig(provider=provider, api_key=api_key, options=options_from_settings(row))

    @staticmethod
    def validate_upload(file_bytes: bytes, file_name: str | None) -> None:
        if not file_name:
            raise InvalidSourceError("Uploaded file has no filename")
        if not file_bytes:
            raise InvalidSourceError(f"Uploaded file '{file_name}' is empty")
        suffix = safe_suffix(file_name)
        if suffix not in SUPPORTED_EXTENSIONS:
            raise InvalidSourceError(
                f"File '{file_name}' has an unsupported extension. "
                f"Allowed extensions are: {', '.join(sorted(SUPPORTED_EXTENSIONS))}."
            )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_file_job(self, owner_id: int, file_bytes: bytes, file_name: str) -> TranscriptionJob:
        self.validate_upload(file_bytes, file_name)
        config = self.resolve_provider_config(owner_id)
        job = self.store.create_job(owner_id, SourceKind.FILE, file_name, config.provider)
        try:
            upload_path = save_upload(job.id, file_bytes, file_name)
        except OSError as exc:
            logger.error("Could not store upload for job %s: %s", job.id, exc, exc_info=True)
            self._fail(job.id, exc)
            discard_upload(job.id)
            return self.store.get_job(job.id)
        return self._hand_off(job, config, upload_path)

    def submit_url_job(self, owner_id: int, url: str) -> TranscriptionJob:
        extract_video_id(url)
        config = self.resolve_provider_config(owner_id)
        job = self.store.create_job(owner_id, SourceKind.REMOTE_URL, url.strip(), config.provider)
        return self._hand_off(job, config, None)

    def _hand_off(self, job: TranscriptionJob, config: ProviderConfig, upload_path: str | None) -> TranscriptionJob:
        if self.dispatcher is None:
            raise RuntimeError("No job dispatcher configured")
        try:
            self.dispatcher.dispatch(job.id, config, upload_path)
            logger.info("Dispatched job %s to background executor (provider=%s)", job.id, config.provider)
        except Exception as exc:
            # A job that was never scheduled must not stay processing.
            logger.error("Failed to dispatch job %s: %s", job.id, exc, exc_info=True)
            self._fail(job.id, RuntimeError(f"could not schedule transcription: {exc}"))
            if upload_path:
                discard_upload(job.id)
        return self.store.get_job(job.id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_job(self, job_id: int, owner_id: int | None = None) -> TranscriptionJob:
        job = self.store.get_job(job_id)
        if owner_id is not None and job.owner_id != owner_id:
            raise NotFoundError(f"Transcription job {job_id} not found")
        return job

    def list_jobs(self, owner_id: int) -> list[TranscriptionJob]:
        return self.store.list_jobs_by_owner(owner_id)

    def get_segments(self, job_id: int, owner_id: int | None = None) -> list[TranscriptionSegment]:
        self.get_job(job_id, owner_id)
        return self.store.list_segments_by_job(job_id)

    # ------------------------------------------------------------------
    # Background phase
    # ------------------------------------------------------------------

    def run_job(self, job_id: int, config: ProviderConfig, upload_path: str | None = None) -> JobStatus | None:
        """Drive one job to a terminal state. Never raises for pipeline errors."""
        try:
            job = self.store.get_job(job_id)
        except NotFoundError:
            logger.error("Job %s vanished before processing started", job_id)
            if upload_path:
                discard_upload(job_id)
            return None

        if job.status.is_terminal:
            logger.warning("Job %s is already %s; skipping", job_id, job.status_str)
            return job.status

        logger.info("Starting transcription for job %s (%s, provider=%s)", job_id, job.source_kind.value, config.provider)
        try:
            self._process(job, config, upload_path)
        except Exception as exc:
            logger.error("Transcription job %s failed: %s", job_id, exc, exc_info=True)
            self._fail(job_id, exc)
            return JobStatus.FAILED
        finally:
            if upload_path:
                discard_upload(job_id)
        return JobStatus.COMPLETED

    def _process(self, job: TranscriptionJob, config: ProviderConfig, upload_path: str | None) -> None:
        options = config.options
        audio, file_name = self._acquire_audio(job, upload_path, denoise=options.wants(Feature.NOISE_REDUCTION))

        provider = self.registry.get_provider(config.provider, config.api_key)
        transcript = provider.transcribe_detailed(audio, file_name, options)
        logger.info("Job %s: provider %s returned %d chars", job.id, provider.name, len(transcript.text))

        text = transcript.text
        native: Sequence[SegmentDraft] = transcript.segments
        if options.translate.active:
            if provider.supports_feature(Feature.TRANSLATION):
                text = provider.translate(text, options.translate.target_language)
                # Provider timings describe the source language.
                native = ()
                logger.info("Job %s: translated transcript to %s", job.id, options.translate.target_language)
            else:
                logger.info("Job %s: provider %s cannot translate; keeping source text", job.id, provider.name)

        drafts = self.build_segments(text, native)
        final_text = self._persist_progress(job.id, drafts)
        self.store.finish_job(job.id, JobStatus.COMPLETED, final_text)

    def _acquire_audio(self, job: TranscriptionJob, upload_path: str | None, denoise: bool) -> tuple[bytes, str]:
        if job.source_kind is SourceKind.REMOTE_URL:
            audio, title = self.fetcher.fetch_audio(job.source_ref, denoise=denoise)
            self.store.update_job(job.id, source_title=title[:512])
            logger.info("Job %s: fetched remote audio '%s'", job.id, title)
            return audio, self.normalizer.normalized_name(extract_video_id(job.source_ref))

        if not upload_path:
            raise InvalidSourceError(f"No uploaded media found for job {job.id}")
        raw = read_upload(upload_path)
        audio = self.normalizer.normalize(raw, job.source_ref, denoise=denoise)
        return audio, self.normalizer.normalized_name(job.source_ref)

    def build_segments(self, text: str, native: Sequence[SegmentDraft] = ()) -> list[SegmentDraft]:
        """Units for one transcript: native timings when usable, nominal windows otherwise."""
        if native:
            drafts = sanitize_native_segments(native)
            if drafts:
                return drafts
        return synthesize_segments(split_sentences(text), self.window_ms)

    def _persist_progress(self, job_id: int, drafts: Sequence[SegmentDraft]) -> str:
        """Write batches strictly in order; returns the final joined text."""
        written: list[str] = []
        for number, batch in enumerate(batched(drafts, self.batch_size), start=1):
            written.extend(draft.text for draft in batch)
            if not self.store.record_progress(job_id, join_units(written), batch):
                raise RuntimeError(f"job {job_id} left processing during progress batch {number}")
            logger.info("Job %s: progress batch %d (%d/%d units)", job_id, number, len(written), len(drafts))
        return join_units(written)

    def _fail(self, job_id: int, exc: BaseException) -> None:
        try:
            self.store.finish_job(job_id, JobStatus.FAILED, error_marker(exc))
        except Exception:
            logger.exception("Could not mark job %s as failed", job_id)
