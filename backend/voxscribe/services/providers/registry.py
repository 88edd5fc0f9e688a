"""Provider lookup table and instance cache.

A :class:`ProviderRegistry` is constructed once per process (API app or
Celery worker) and handed to the orchestrator; there is no module-level
cache.  Entries are created on first use and never evicted.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Mapping

from voxscribe.errors import MissingCredentialError, UnknownProviderError
from voxscribe.services.providers.base import Feature, TranscriptionProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSpec:
    """How to build one backend: a factory taking the API key, plus its metadata."""

    factory: Callable[[str | None], TranscriptionProvider]
    requires_api_key: bool
    features: frozenset[Feature] = frozenset()


def _credential_digest(api_key: str | None) -> str:
    if not api_key:
        return ""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


class ProviderRegistry:
    def __init__(self, specs: Mapping[str, ProviderSpec]) -> None:
        self._specs = {name.lower(): spec for name, spec in specs.items()}
        self._instances: dict[tuple[str, str], TranscriptionProvider] = {}
        self._lock = threading.Lock()

    @staticmethod
    def normalize_name(name: str | None) -> str:
        return (name or "").strip().lower()

    def available_providers(self) -> list[str]:
        return list(self._specs)

    def spec_for(self, name: str) -> ProviderSpec:
        spec = self._specs.get(self.normalize_name(name))
        if spec is None:
            raise UnknownProviderError(name)
        return spec

    def get_provider(self, name: str, api_key: str | None = None) -> TranscriptionProvider:
        """Return the cached instance for ``name`` (and credential), creating it once.

        Raises:
            UnknownProviderError: ``name`` is not in the lookup table, whatever the key.
            MissingCredentialError: the provider needs a key and none was given.
        """
        key_name = self.normalize_name(name)
        spec = self.spec_for(key_name)
        if spec.requires_api_key and not api_key:
            raise MissingCredentialError(key_name)

        cache_key = (key_name, _credential_digest(api_key) if spec.requires_api_key else "")
        instance = self._instances.get(cache_key)
        if instance is not None:
            return instance

        with self._lock:
            instance = self._instances.get(cache_key)
            if instance is None:
                logger.info("Creating transcription provider instance: %s", key_name)
                instance = spec.factory(api_key)
                self._instances[cache_key] = instance
        return instance


def build_default_registry() -> ProviderRegistry:
    """Registry with every built-in backend; configuration comes from ``settings``."""
    # Imported here so importing the registry does not pull in every SDK.
    from voxscribe.services.providers.assemblyai import AssemblyAIProvider
    from voxscribe.services.providers.commonvoice import CommonVoiceProvider
    from voxscribe.services.providers.openai_provider import OpenAIProvider

    return ProviderRegistry(
        {
            OpenAIProvider.name: ProviderSpec(
                factory=lambda api_key: OpenAIProvider(api_key=api_key),
                requires_api_key=OpenAIProvider.requires_api_key,
                features=OpenAIProvider.supported_features,
            ),
            AssemblyAIProvider.name: ProviderSpec(
                factory=lambda api_key: AssemblyAIProvider(api_key=api_key),
                requires_api_key=AssemblyAIProvider.requires_api_key,
                features=AssemblyAIProvider.supported_features,
            ),
            CommonVoiceProvider.name: ProviderSpec(
                factory=lambda _api_key: CommonVoiceProvider(),
                requires_api_key=CommonVoiceProvider.requires_api_key,
                features=CommonVoiceProvider.supported_features,
            ),
        }
    )
