"""Keyless CommonVoice-style transcription: one JSON request, base64 audio."""

from __future__ import annotations

import base64
import logging

import httpx

from voxscribe.config import settings
from voxscribe.errors import ProviderError
from voxscribe.services.providers.base import (
    ProviderTranscript,
    TranscriptionOptions,
    TranscriptionProvider,
)

logger = logging.getLogger(__name__)


class CommonVoiceProvider(TranscriptionProvider):
    name = "commonvoice"
    requires_api_key = False
    supported_features = frozenset()

    def __init__(
        self,
        api_url: str | None = None,
        default_language: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=api_url or settings.COMMONVOICE_API_URL,
            headers={"Content-Type": "application/json", "User-Agent": "voxscribe/0.1"},
            timeout=timeout or settings.COMMONVOICE_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._default_language = default_language or settings.COMMONVOICE_DEFAULT_LANGUAGE

    def transcribe_detailed(
        self,
        audio: bytes,
        file_name: str,
        options: TranscriptionOptions | None = None,
    ) -> ProviderTranscript:
        self.effective_features(options)
        language = (options.language if options else None) or self._default_language
        body = {"audio": base64.b64encode(audio).decode("ascii"), "language": language}

        logger.info("CommonVoice: transcribing %s (%d bytes, language=%s)", file_name, len(audio), language)
        try:
            response = self._client.post("/transcribe", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("CommonVoice returned %s: %s", e.response.status_code, e.response.text)
            raise ProviderError(
                self.name, f"API returned {e.response.status_code}: {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("CommonVoice request failed: %s", e)
            raise ProviderError(self.name, f"Failed to transcribe with CommonVoice: {e}") from e
        except ValueError as e:
            raise ProviderError(self.name, "CommonVoice returned invalid JSON", kind="response") from e

        return ProviderTranscript(text=str(data.get("text") or "").strip(), language=language)

    def close(self) -> None:
        self._client.close()
