"""Shared fixtures: an isolated in-memory database per test and stub services."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from voxscribe.context import AppContext
from voxscribe.db.base import Base
from voxscribe.db.database import build_engine, build_session_factory
from voxscribe.db.job_store import JobStore
from voxscribe.db.settings_store import SettingsStore
from voxscribe.errors import ProviderError
from voxscribe.services.audio_processing import MediaNormalizer
from voxscribe.services.orchestrator import ProviderConfig, TranscriptionOrchestrator
from voxscribe.services.providers import (
    Feature,
    ProviderRegistry,
    ProviderSpec,
    ProviderTranscript,
    TranscriptionProvider,
)

import voxscribe.models  # noqa: F401 - registers mapped classes on Base


class FakeProvider(TranscriptionProvider):
    """Scriptable provider: returns ``text``/``segments`` or raises ``error``."""

    requires_api_key = True
    supported_features = frozenset({Feature.LANGUAGE_DETECTION, Feature.TIMESTAMPS, Feature.TRANSLATION})

    def __init__(self, name: str = "openai") -> None:
        self.name = name
        self.text = ""
        self.segments = ()
        self.error: Exception | None = None
        self.calls = []
        self.translations = []

    def transcribe_detailed(self, audio, file_name, options=None):
        self.calls.append({"audio": audio, "file_name": file_name, "options": options})
        if self.error is not None:
            raise self.error
        return ProviderTranscript(text=self.text, segments=tuple(self.segments))

    def translate(self, text, target_language):
        self.translations.append((text, target_language))
        return f"Translated to {target_language}. {text}"


class KeylessProvider(FakeProvider):
    requires_api_key = False
    supported_features = frozenset()

    def translate(self, text, target_language):
        raise ProviderError(self.name, "translation is not supported", kind="translate")


class StubNormalizer(MediaNormalizer):
    def __init__(self, scratch_root: Path) -> None:
        super().__init__(scratch_root=scratch_root)
        self.calls = []
        self.error: Exception | None = None

    def normalize(self, raw_bytes, original_name, denoise=False):
        self.calls.append({"raw": raw_bytes, "name": original_name, "denoise": denoise})
        if self.error is not None:
            raise self.error
        return b"normalized:" + raw_bytes


class StubFetcher:
    def __init__(self) -> None:
        self.calls = []
        self.error: Exception | None = None
        self.title = "Never Gonna Give You Up"

    def fetch_audio(self, url, denoise=False):
        self.calls.append({"url": url, "denoise": denoise})
        if self.error is not None:
            raise self.error
        return b"remote-audio", self.title


class RecordingDispatcher:
    """Remembers hand-offs; tests run the background phase explicitly."""

    def __init__(self) -> None:
        self.dispatched: list[tuple[int, ProviderConfig, str | None]] = []
        self.error: Exception | None = None

    def dispatch(self, job_id, config, upload_path=None):
        if self.error is not None:
            raise self.error
        self.dispatched.append((job_id, config, upload_path))


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    try:
        yield build_session_factory(engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
def settings_store(session_factory) -> SettingsStore:
    return SettingsStore(session_factory)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider("openai")


@pytest.fixture
def keyless_provider() -> KeylessProvider:
    return KeylessProvider("commonvoice")


@pytest.fixture
def registry(fake_provider, keyless_provider) -> ProviderRegistry:
    return ProviderRegistry(
        {
            "openai": ProviderSpec(
                factory=lambda _key: fake_provider,
                requires_api_key=True,
                features=fake_provider.supported_features,
            ),
            "commonvoice": ProviderSpec(
                factory=lambda _key: keyless_provider,
                requires_api_key=False,
                features=keyless_provider.supported_features,
            ),
        }
    )


@pytest.fixture
def normalizer(tmp_path) -> StubNormalizer:
    return StubNormalizer(tmp_path / "scratch")


@pytest.fixture
def fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def orchestrator(job_store, settings_store, registry, normalizer, fetcher, dispatcher) -> TranscriptionOrchestrator:
    return TranscriptionOrchestrator(
        store=job_store,
        settings_store=settings_store,
        registry=registry,
        normalizer=normalizer,
        fetcher=fetcher,
        dispatcher=dispatcher,
        batch_size=5,
        window_ms=4000,
    )


@pytest.fixture
def client(job_store, settings_store, registry, orchestrator):
    from voxscribe.main import create_app

    context = AppContext(
        job_store=job_store,
        settings_store=settings_store,
        registry=registry,
        orchestrator=orchestrator,
    )
    with TestClient(create_app(context)) as test_client:
        yield test_client


def sentences(count: int) -> str:
    return " ".join(f"Sentence number {i}." for i in range(1, count + 1))
