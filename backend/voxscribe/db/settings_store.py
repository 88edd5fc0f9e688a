"""Read/upsert access to per-user :class:`TranscriptionSettings`."""

from __future__ import annotations

import logging

from sqlalchemy.orm import sessionmaker

from voxscribe.db.database import SessionLocal
from voxscribe.models.settings import TranscriptionSettings

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = {
    "provider",
    "openai_key",
    "assemblyai_key",
    "default_language",
    "enable_language_detection",
    "enable_timestamps",
    "enable_speaker_diarization",
    "enable_noise_reduction",
    "enable_confidence_scores",
    "translate_enabled",
    "translate_target_language",
}


class SettingsStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def get_settings(self, owner_id: int) -> TranscriptionSettings | None:
        db = self._session_factory()
        try:
            return (
                db.query(TranscriptionSettings)
                .filter(TranscriptionSettings.user_id == owner_id)
                .first()
            )
        finally:
            db.close()

    def save_settings(self, owner_id: int, **fields) -> TranscriptionSettings:
        """Update the owner's row, creating it on first save."""
        unknown = set(fields) - SETTINGS_FIELDS
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")
        db = self._session_factory()
        try:
            row = (
                db.query(TranscriptionSettings)
                .filter(TranscriptionSettings.user_id == owner_id)
                .first()
            )
            if row is None:
                row = TranscriptionSettings(user_id=owner_id)
                db.add(row)
            for name, value in fields.items():
                setattr(row, name, value)
            db.commit()
            logger.info("Saved transcription settings for user %s (provider=%s)", owner_id, row.provider)
            return row
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
