"""Capability-based interface shared by every transcription backend."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from voxscribe.errors import ProviderError
from voxscribe.services.segments import SegmentDraft

logger = logging.getLogger(__name__)


class Feature(str, Enum):
    LANGUAGE_DETECTION = "language_detection"
    TIMESTAMPS = "timestamps"
    SPEAKER_DIARIZATION = "speaker_diarization"
    NOISE_REDUCTION = "noise_reduction"
    CONFIDENCE_SCORES = "confidence_scores"
    TRANSLATION = "translation"


@dataclass(frozen=True)
class TranslateOptions:
    enabled: bool = False
    target_language: str | None = None

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.target_language)


@dataclass(frozen=True)
class TranscriptionOptions:
    """Per-request configuration; unsupported features are ignored by providers."""

    language: str | None = None
    features: frozenset[Feature] = field(default_factory=frozenset)
    translate: TranslateOptions = field(default_factory=TranslateOptions)

    def wants(self, feature: Feature) -> bool:
        return feature in self.features

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form used to hand options to the background worker."""
        return {
            "language": self.language,
            "features": sorted(f.value for f in self.features),
            "translate": {
                "enabled": self.translate.enabled,
                "target_language": self.translate.target_language,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "TranscriptionOptions":
        data = data or {}
        translate = data.get("translate") or {}
        return cls(
            language=data.get("language") or None,
            features=frozenset(Feature(value) for value in data.get("features") or ()),
            translate=TranslateOptions(
                enabled=bool(translate.get("enabled")),
                target_language=translate.get("target_language") or None,
            ),
        )


@dataclass(frozen=True)
class ProviderTranscript:
    """What a provider returns: the text plus native timed units when it has them."""

    text: str
    segments: tuple[SegmentDraft, ...] = ()
    language: str | None = None

    @property
    def has_timestamps(self) -> bool:
        return bool(self.segments)


class TranscriptionProvider(ABC):
    """One implementation per backend, selected through the provider registry.

    Subclasses implement :meth:`transcribe_detailed`; :meth:`transcribe` is the
    plain-text view of the same call.
    """

    name: str = ""
    requires_api_key: bool = True
    supported_features: frozenset[Feature] = frozenset()

    def supports_feature(self, feature: Feature) -> bool:
        return feature in self.supported_features

    def effective_features(self, options: TranscriptionOptions | None) -> frozenset[Feature]:
        """Requested features this provider can honour; the rest are dropped silently."""
        if options is None:
            return frozenset()
        ignored = options.features - self.supported_features
        if ignored:
            logger.debug(
                "Provider %s ignores unsupported features: %s",
                self.name,
                ", ".join(sorted(f.value for f in ignored)),
            )
        return options.features & self.supported_features

    def transcribe(self, audio: bytes, file_name: str, options: TranscriptionOptions | None = None) -> str:
        return self.transcribe_detailed(audio, file_name, options).text

    @abstractmethod
    def transcribe_detailed(
        self,
        audio: bytes,
        file_name: str,
        options: TranscriptionOptions | None = None,
    ) -> ProviderTranscript:
        """Transcribe ``audio``; raise :class:`ProviderError` on any upstream failure."""

    def translate(self, text: str, target_language: str) -> str:
        raise ProviderError(self.name, "translation is not supported", kind="translate")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
