"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from wearsync.config import Settings, get_settings
from wearsync.wearables.service import WearableServices


@dataclass(frozen=True)
class AuthContext:
    """Authenticated user context extracted from the Supabase session JWT."""

    user_id: str  # auth.users id (JWT "sub")
    email: str | None = None
    role: str | None = None
    session_id: str | None = None


async def get_current_user(request: Request) -> AuthContext:
    """Extract the authenticated user from the request state.

    The auth middleware sets ``request.state.auth`` before routes run.
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return auth


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_wearable_services(request: Request) -> WearableServices:
    services: WearableServices | None = getattr(request.app.state, "wearables", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Wearable services not initialized")
    return services


# Annotated shortcuts for route signatures
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Services = Annotated[WearableServices, Depends(get_wearable_services)]
