"""Application-wide configuration loader.

Every value is read from the environment once, at import time, and exposed
through the module-level ``settings`` singleton that other modules import.
"""

import os


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Settings helper that gracefully falls back to sane defaults.

    Rationale
    ---------
    When docker-compose injects an environment variable whose value is empty
    (e.g. ``DATABASE_URL=""``) ``os.getenv("DATABASE_URL", default)`` returns an
    empty string *not* ``None``.  That empty string then overrides the useful
    in-code default and downstream libraries (SQLAlchemy, Celery…) raise
    parsing errors.  To avoid similar problems for every setting we use the
    idiom

        os.getenv(KEY) or DEFAULT

    so that *falsy* values ("", None) are replaced by the specified DEFAULT.
    """

    # --- Storage -----------------------------------------------------------
    DATABASE_URL: str = os.getenv('DATABASE_URL') or 'sqlite:///./voxscribe.db'
    DB_ECHO: bool = _env_bool('DB_ECHO')
    DATA_ROOT: str = os.getenv('DATA_ROOT') or ''
    LOG_DIR: str = os.getenv('LOG_DIR') or 'backend/logs'
    LOG_LEVEL: str = (os.getenv('LOG_LEVEL') or 'INFO').upper()

    # --- Background executor ------------------------------------------------
    CELERY_BROKER_URL: str = os.getenv('CELERY_BROKER_URL') or 'redis://localhost:6379/0'
    CELERY_RESULT_BACKEND: str = os.getenv('CELERY_RESULT_BACKEND') or 'redis://localhost:6379/0'
    CELERY_TASK_ALWAYS_EAGER: bool = _env_bool('CELERY_TASK_ALWAYS_EAGER')

    # --- Media normalization -----------------------------------------------
    FFMPEG_PATH: str = os.getenv('FFMPEG_PATH') or 'ffmpeg'
    AUDIO_CODEC: str = os.getenv('AUDIO_CODEC') or 'libmp3lame'
    AUDIO_FORMAT: str = os.getenv('AUDIO_FORMAT') or 'mp3'
    AUDIO_SAMPLE_RATE: int = int(os.getenv('AUDIO_SAMPLE_RATE') or '16000')
    AUDIO_CHANNELS: int = int(os.getenv('AUDIO_CHANNELS') or '1')
    AUDIO_BITRATE: str = os.getenv('AUDIO_BITRATE') or '64k'
    MAX_UPLOAD_SIZE_MB: int = int(os.getenv('MAX_UPLOAD_SIZE_MB') or '50')

    # --- Job pipeline --------------------------------------------------------
    DEFAULT_PROVIDER: str = os.getenv('DEFAULT_PROVIDER') or 'openai'
    NOMINAL_SEGMENT_MS: int = int(os.getenv('NOMINAL_SEGMENT_MS') or '4000')
    PROGRESS_BATCH_SIZE: int = int(os.getenv('PROGRESS_BATCH_SIZE') or '5')

    # --- Providers -----------------------------------------------------------
    OPENAI_TRANSCRIBE_MODEL: str = os.getenv('OPENAI_TRANSCRIBE_MODEL') or 'whisper-1'
    OPENAI_TRANSLATE_MODEL: str = os.getenv('OPENAI_TRANSLATE_MODEL') or 'gpt-4o-mini'
    OPENAI_TIMEOUT_SECONDS: float = float(os.getenv('OPENAI_TIMEOUT_SECONDS') or '300')

    ASSEMBLYAI_BASE_URL: str = os.getenv('ASSEMBLYAI_BASE_URL') or 'https://api.assemblyai.com/v2'
    ASSEMBLYAI_POLL_INTERVAL_SECONDS: float = float(os.getenv('ASSEMBLYAI_POLL_INTERVAL_SECONDS') or '2')
    ASSEMBLYAI_MAX_POLL_ATTEMPTS: int = int(os.getenv('ASSEMBLYAI_MAX_POLL_ATTEMPTS') or '150')
    ASSEMBLYAI_TIMEOUT_SECONDS: float = float(os.getenv('ASSEMBLYAI_TIMEOUT_SECONDS') or '60')

    COMMONVOICE_API_URL: str = os.getenv('COMMONVOICE_API_URL') or 'https://commonvoice.mozilla.org/api/v1'
    COMMONVOICE_DEFAULT_LANGUAGE: str = os.getenv('COMMONVOICE_DEFAULT_LANGUAGE') or 'en'
    COMMONVOICE_TIMEOUT_SECONDS: float = float(os.getenv('COMMONVOICE_TIMEOUT_SECONDS') or '120')

    @property
    def max_upload_size_bytes(self) -> int:
        """Upload limit in bytes; ``0`` means unlimited."""
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024


settings = Settings()
