"""Request-scoped dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status

from voxscribe.context import AppContext
from voxscribe.db.settings_store import SettingsStore
from voxscribe.services.orchestrator import TranscriptionOrchestrator
from voxscribe.services.providers import ProviderRegistry


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    """Identity is established upstream; we only read the forwarded user id."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_orchestrator(context: AppContext = Depends(get_context)) -> TranscriptionOrchestrator:
    return context.orchestrator


def get_settings_store(context: AppContext = Depends(get_context)) -> SettingsStore:
    return context.settings_store


def get_registry(context: AppContext = Depends(get_context)) -> ProviderRegistry:
    return context.registry
