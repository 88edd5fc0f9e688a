"""AssemblyAI transcription over its REST API.

Three phases: upload the raw audio to get an upload URL, submit a transcript
request referencing it, then poll the transcript id on a fixed interval until
it completes, errors, or the attempt budget runs out.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from voxscribe.config import settings
from voxscribe.errors import ProviderError
from voxscribe.models.transcription import TimingSource
from voxscribe.services.providers.base import (
    Feature,
    ProviderTranscript,
    TranscriptionOptions,
    TranscriptionProvider,
)
from voxscribe.services.segments import SegmentDraft

logger = logging.getLogger(__name__)

_TERMINAL_PUNCTUATION = (".", "!", "?")


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def _group_words(words: list[dict[str, Any]], with_confidence: bool) -> tuple[SegmentDraft, ...]:
    """Collapse word timings into sentence units ending on terminal punctuation."""
    drafts = []
    buffer: list[dict[str, Any]] = []

    def flush() -> None:
        if not buffer:
            return
        text = " ".join(str(w.get("text", "")).strip() for w in buffer).strip()
        confidences = [float(w["confidence"]) for w in buffer if w.get("confidence") is not None]
        if text:
            drafts.append(
                SegmentDraft(
                    text=text,
                    start_ms=int(buffer[0].get("start") or 0),
                    end_ms=int(buffer[-1].get("end") or 0),
                    confidence=_mean(confidences) if with_confidence else None,
                    timing_source=TimingSource.PROVIDER,
                )
            )
        buffer.clear()

    for word in words:
        buffer.append(word)
        if str(word.get("text", "")).rstrip().endswith(_TERMINAL_PUNCTUATION):
            flush()
    flush()
    return tuple(drafts)


def _speaker_line(utterance: dict[str, Any]) -> str:
    return f"Speaker {utterance.get('speaker', '?')}: {str(utterance.get('text', '')).strip()}"


class AssemblyAIProvider(TranscriptionProvider):
    name = "assemblyai"
    requires_api_key = True
    supported_features = frozenset(
        {
            Feature.LANGUAGE_DETECTION,
            Feature.TIMESTAMPS,
            Feature.SPEAKER_DIARIZATION,
            Feature.CONFIDENCE_SCORES,
        }
    )

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        poll_interval: float | None = None,
        max_poll_attempts: int | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self.poll_interval = settings.ASSEMBLYAI_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.max_poll_attempts = max_poll_attempts or settings.ASSEMBLYAI_MAX_POLL_ATTEMPTS
        if self.max_poll_attempts <= 0:
            raise ValueError("max_poll_attempts must be > 0")
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url or settings.ASSEMBLYAI_BASE_URL,
            headers={"authorization": api_key, "User-Agent": "voxscribe/0.1"},
            timeout=timeout or settings.ASSEMBLYAI_TIMEOUT_SECONDS,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _request(self, kind: str, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text if e.response is not None else "no response"
            logger.error("[AssemblyAI] %s failed | Status: %s | Details: %s", kind, e.response.status_code, body)
            raise ProviderError(self.name, f"{kind} failed with status {e.response.status_code}", kind=kind) from e
        except httpx.HTTPError as e:
            logger.error("[AssemblyAI] %s request error: %s", kind, e)
            raise ProviderError(self.name, f"{kind} request failed: {e}", kind=kind) from e
        except ValueError as e:
            raise ProviderError(self.name, f"{kind} returned invalid JSON", kind="response") from e

    def upload(self, audio: bytes) -> str:
        payload = self._request(
            "upload",
            "POST",
            "/upload",
            content=audio,
            headers={"Content-Type": "application/octet-stream"},
        )
        upload_url = payload.get("upload_url")
        if not upload_url:
            raise ProviderError(self.name, "upload response missing upload_url", kind="upload")
        return upload_url

    def submit(self, upload_url: str, features: frozenset[Feature], language: str | None) -> str:
        body: dict[str, Any] = {
            "audio_url": upload_url,
            "punctuate": True,
            "format_text": True,
            "speaker_labels": Feature.SPEAKER_DIARIZATION in features,
        }
        if language:
            body["language_code"] = language
        elif Feature.LANGUAGE_DETECTION in features:
            body["language_detection"] = True
        payload = self._request("submit", "POST", "/transcript", json=body)
        transcript_id = payload.get("id")
        if not transcript_id:
            raise ProviderError(self.name, "submit response missing transcript id", kind="submit")
        return transcript_id

    def poll(self, transcript_id: str) -> dict[str, Any]:
        """Poll until ``completed``/``error``; at most ``max_poll_attempts`` GETs."""
        for attempt in range(1, self.max_poll_attempts + 1):
            payload = self._request("remote", "GET", f"/transcript/{transcript_id}")
            status = payload.get("status")
            logger.debug("[AssemblyAI] transcript %s attempt %d status=%s", transcript_id, attempt, status)
            if status == "completed":
                return payload
            if status == "error":
                raise ProviderError(self.name, payload.get("error") or "Transcription failed", kind="remote")
            if attempt < self.max_poll_attempts:
                self._sleep(self.poll_interval)

        budget = self.poll_interval * self.max_poll_attempts
        logger.error("[AssemblyAI] transcript %s timed out after %d polls (~%.0fs)", transcript_id, self.max_poll_attempts, budget)
        raise ProviderError(
            self.name,
            f"timeout waiting for transcript {transcript_id} after {self.max_poll_attempts} polls",
            kind=ProviderError.TIMEOUT,
        )

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def transcribe_detailed(
        self,
        audio: bytes,
        file_name: str,
        options: TranscriptionOptions | None = None,
    ) -> ProviderTranscript:
        features = self.effective_features(options)
        language = options.language if options else None

        logger.info("[AssemblyAI] uploading %s (%d bytes)", file_name, len(audio))
        upload_url = self.upload(audio)
        transcript_id = self.submit(upload_url, features, language)
        logger.info("[AssemblyAI] submitted transcript %s", transcript_id)
        payload = self.poll(transcript_id)

        utterances = payload.get("utterances") or []
        diarized = Feature.SPEAKER_DIARIZATION in features and bool(utterances)
        if diarized:
            text = "\n".join(_speaker_line(u) for u in utterances)
        else:
            text = (payload.get("text") or "").strip()

        segments: tuple[SegmentDraft, ...] = ()
        if Feature.TIMESTAMPS in features:
            with_confidence = Feature.CONFIDENCE_SCORES in features
            if diarized:
                segments = tuple(
                    SegmentDraft(
                        text=_speaker_line(u),
                        start_ms=int(u.get("start") or 0),
                        end_ms=int(u.get("end") or 0),
                        confidence=u.get("confidence") if with_confidence else None,
                        timing_source=TimingSource.PROVIDER,
                    )
                    for u in utterances
                )
            else:
                segments = _group_words(payload.get("words") or [], with_confidence)

        return ProviderTranscript(
            text=text,
            segments=segments,
            language=payload.get("language_code") or language,
        )

    def close(self) -> None:
        self._client.close()
