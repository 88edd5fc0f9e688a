"""Per-user transcription settings.

The settings form itself lives outside the core; the orchestrator only reads
a row to pick and configure a provider.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from voxscribe.db.base import Base
from voxscribe.models.transcription import utcnow


class TranscriptionSettings(Base):
    __tablename__ = "transcription_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    provider = Column(String(50), nullable=False, default="openai")
    openai_key = Column(String(255), nullable=True)
    assemblyai_key = Column(String(255), nullable=True)

    default_language = Column(String(16), nullable=True, comment="ISO code, or 'auto'/NULL for detection.")
    enable_language_detection = Column(Boolean, nullable=False, default=False)
    enable_timestamps = Column(Boolean, nullable=False, default=False)
    enable_speaker_diarization = Column(Boolean, nullable=False, default=False)
    enable_noise_reduction = Column(Boolean, nullable=False, default=False)
    enable_confidence_scores = Column(Boolean, nullable=False, default=False)
    translate_enabled = Column(Boolean, nullable=False, default=False)
    translate_target_language = Column(String(16), nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def api_key_for(self, provider: str) -> str | None:
        """Return the stored key for ``provider``; keyless providers get ``None``."""
        return {
            "openai": self.openai_key,
            "assemblyai": self.assemblyai_key,
        }.get((provider or "").lower())
