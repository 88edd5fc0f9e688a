"""Whisper transcription through the OpenAI API.

The audio is submitted in a single request/response; translation is a
second, text-only chat completion request.
"""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import OpenAI

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

TRANSLATE_SYSTEM_PROMPT = "You are a precise translator. Preserve meaning, tone and proper nouns."


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _seconds_to_ms(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(round(float(value) * 1000))
    except (TypeError, ValueError):
        return None


def _parse_segments(raw_segments: Any) -> tuple[SegmentDraft, ...]:
    if not isinstance(raw_segments, list):
        return ()
    drafts = []
    for raw in raw_segments:
        text = _coerce_text(_field(raw, "text"))
        start_ms = _seconds_to_ms(_field(raw, "start"))
        end_ms = _seconds_to_ms(_field(raw, "end"))
        if not text or start_ms is None or end_ms is None:
            continue
        drafts.append(
            SegmentDraft(text=text, start_ms=start_ms, end_ms=end_ms, timing_source=TimingSource.PROVIDER)
        )
    return tuple(drafts)


class OpenAIProvider(TranscriptionProvider):
    name = "openai"
    requires_api_key = True
    supported_features = frozenset({Feature.LANGUAGE_DETECTION, Feature.TIMESTAMPS, Feature.TRANSLATION})

    def __init__(
        self,
        api_key: str,
        client: Any = None,
        model: str | None = None,
        translate_model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        if not api_key and client is None:
            raise ValueError("api_key is required")
        self._client = client or OpenAI(api_key=api_key, timeout=timeout or settings.OPENAI_TIMEOUT_SECONDS)
        self._model = model or settings.OPENAI_TRANSCRIBE_MODEL
        self._translate_model = translate_model or settings.OPENAI_TRANSLATE_MODEL

    def transcribe_detailed(
        self,
        audio: bytes,
        file_name: str,
        options: TranscriptionOptions | None = None,
    ) -> ProviderTranscript:
        features = self.effective_features(options)
        want_timestamps = Feature.TIMESTAMPS in features

        request_kwargs: dict[str, Any] = {"model": self._model}
        if options and options.language:
            request_kwargs["language"] = options.language
        if want_timestamps or Feature.LANGUAGE_DETECTION in features:
            request_kwargs["response_format"] = "verbose_json"
        if want_timestamps:
            request_kwargs["timestamp_granularities"] = ["segment"]

        logger.info("OpenAI: calling %s for %s (%d bytes)", self._model, file_name, len(audio))
        try:
            response = self._client.audio.transcriptions.create(file=(file_name, audio), **request_kwargs)
        except openai.OpenAIError as e:
            logger.error("OpenAI transcription error: %s", e)
            raise ProviderError(self.name, str(e) or "Failed to transcribe with OpenAI") from e

        text = _coerce_text(_field(response, "text"))
        segments = _parse_segments(_field(response, "segments")) if want_timestamps else ()
        language = _coerce_text(_field(response, "language")) or (options.language if options else None)
        logger.info("OpenAI: transcription successful (%d chars, %d timed segments)", len(text), len(segments))
        return ProviderTranscript(text=text, segments=segments, language=language or None)

    def translate(self, text: str, target_language: str) -> str:
        if not text or not target_language:
            return text
        try:
            response = self._client.chat.completions.create(
                model=self._translate_model,
                messages=[
                    {"role": "system", "content": TRANSLATE_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f"Translate to {target_language}. Output only the translation, "
                            f"no explanations.\n\nText:\n{text}"
                        ),
                    },
                ],
                temperature=0.1,
            )
        except openai.OpenAIError as e:
            logger.error("OpenAI translation error: %s", e)
            raise ProviderError(self.name, str(e) or "Failed to translate with OpenAI", kind="translate") from e

        choices = _field(response, "choices") or []
        message = _field(choices[0], "message") if choices else None
        translated = _coerce_text(_field(message, "content"))
        if not translated:
            raise ProviderError(self.name, "translation response was empty", kind="translate")
        return translated
