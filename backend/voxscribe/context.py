"""Per-process service wiring.

The API process and every Celery worker process each build one
:class:`AppContext`.  Nothing here is a module-level singleton: the FastAPI
app keeps its context on ``app.state`` and the worker builds its own lazily.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from voxscribe.db.job_store import JobStore
from voxscribe.db.settings_store import SettingsStore
from voxscribe.services.audio_processing import MediaNormalizer
from voxscribe.services.orchestrator import JobDispatcher, TranscriptionOrchestrator
from voxscribe.services.providers import ProviderRegistry, build_default_registry
from voxscribe.services.remote_media import RemoteMediaFetcher

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    job_store: JobStore
    settings_store: SettingsStore
    registry: ProviderRegistry
    orchestrator: TranscriptionOrchestrator


def build_context(
    session_factory: sessionmaker | None = None,
    dispatcher: JobDispatcher | None = None,
    registry: ProviderRegistry | None = None,
) -> AppContext:
    if session_factory is None:
        from voxscribe.db.database import SessionLocal

        session_factory = SessionLocal

    job_store = JobStore(session_factory)
    settings_store = SettingsStore(session_factory)
    registry = registry or build_default_registry()
    normalizer = MediaNormalizer()
    orchestrator = TranscriptionOrchestrator(
        store=job_store,
        settings_store=settings_store,
        registry=registry,
        normalizer=normalizer,
        fetcher=RemoteMediaFetcher(normalizer),
        dispatcher=dispatcher,
    )
    logger.info("Service context ready (providers: %s)", ", ".join(registry.available_providers()))
    return AppContext(
        job_store=job_store,
        settings_store=settings_store,
        registry=registry,
        orchestrator=orchestrator,
    )
