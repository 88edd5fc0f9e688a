"""Per-user transcription settings and provider discovery."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from voxscribe.api.deps import get_current_user_id, get_registry, get_settings_store
from voxscribe.config import settings
from voxscribe.db.settings_store import SettingsStore
from voxscribe.models.settings import TranscriptionSettings
from voxscribe.services.providers import ProviderRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


class SettingsInfo(BaseModel):
    """Settings as returned to the client. API keys are write-only."""

    provider: str
    openai_key_configured: bool = False
    assemblyai_key_configured: bool = False
    default_language: str | None = None
    enable_language_detection: bool = False
    enable_timestamps: bool = False
    enable_speaker_diarization: bool = False
    enable_noise_reduction: bool = False
    enable_confidence_scores: bool = False
    translate_enabled: bool = False
    translate_target_language: str | None = None

    @classmethod
    def from_row(cls, row: TranscriptionSettings | None) -> "SettingsInfo":
        if row is None:
            return cls(provider=settings.DEFAULT_PROVIDER)
        return cls(
            provider=row.provider,
            openai_key_configured=bool(row.openai_key),
            assemblyai_key_configured=bool(row.assemblyai_key),
            default_language=row.default_language,
            enable_language_detection=row.enable_language_detection,
            enable_timestamps=row.enable_timestamps,
            enable_speaker_diarization=row.enable_speaker_diarization,
            enable_noise_reduction=row.enable_noise_reduction,
            enable_confidence_scores=row.enable_confidence_scores,
            translate_enabled=row.translate_enabled,
            translate_target_language=row.translate_target_language,
        )


class SettingsUpdate(BaseModel):
    """Partial update; omitted fields are left untouched, an empty key clears it."""

    provider: str | None = None
    openai_key: str | None = None
    assemblyai_key: str | None = None
    default_language: str | None = None
    enable_language_detection: bool | None = None
    enable_timestamps: bool | None = None
    enable_speaker_diarization: bool | None = None
    enable_noise_reduction: bool | None = None
    enable_confidence_scores: bool | None = None
    translate_enabled: bool | None = None
    translate_target_language: str | None = None


class ProviderInfo(BaseModel):
    name: str
    requires_api_key: bool
    features: List[str]


@router.get("", response_model=SettingsInfo)
def read_settings(
    user_id: int = Depends(get_current_user_id),
    store: SettingsStore = Depends(get_settings_store),
) -> SettingsInfo:
    return SettingsInfo.from_row(store.get_settings(user_id))


@router.put("", response_model=SettingsInfo)
def update_settings(
    payload: SettingsUpdate,
    user_id: int = Depends(get_current_user_id),
    store: SettingsStore = Depends(get_settings_store),
    registry: ProviderRegistry = Depends(get_registry),
) -> SettingsInfo:
    fields = payload.model_dump(exclude_unset=True)
    if "provider" in fields:
        if fields["provider"] is None:
            del fields["provider"]
        else:
            # Raises UnknownProviderError (400) for names outside the registry.
            registry.spec_for(fields["provider"])
            fields["provider"] = ProviderRegistry.normalize_name(fields["provider"])
    for key_field in ("openai_key", "assemblyai_key"):
        if key_field in fields:
            fields[key_field] = (fields[key_field] or "").strip() or None
    for flag, value in list(fields.items()):
        if flag.startswith(("enable_", "translate_enabled")) and value is None:
            del fields[flag]

    row = store.save_settings(user_id, **fields)
    logger.info("User %s updated transcription settings: %s", user_id, sorted(fields))
    return SettingsInfo.from_row(row)


@router.get("/providers", response_model=List[ProviderInfo])
def list_providers(registry: ProviderRegistry = Depends(get_registry)) -> List[ProviderInfo]:
    """Providers the service can use, with their credential requirement and features."""
    providers = []
    for name in registry.available_providers():
        spec = registry.spec_for(name)
        providers.append(
            ProviderInfo(
                name=name,
                requires_api_key=spec.requires_api_key,
                features=sorted(feature.value for feature in spec.features),
            )
        )
    return providers
