from .base import (
    Feature,
    ProviderTranscript,
    TranscriptionOptions,
    TranscriptionProvider,
    TranslateOptions,
)
from .registry import ProviderRegistry, ProviderSpec, build_default_registry

__all__ = [
    "Feature",
    "ProviderRegistry",
    "ProviderSpec",
    "ProviderTranscript",
    "TranscriptionOptions",
    "TranscriptionProvider",
    "TranslateOptions",
    "build_default_registry",
]
