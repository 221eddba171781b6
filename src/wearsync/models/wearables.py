"""Pydantic request/response models for the wearable integration endpoints.

The web client speaks camelCase (``authUrl``, ``connectionId``,
``dataPoints``); fields are snake_case with aliases.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from wearsync.models.base import WearSyncBase


# ---------- Authorization ----------

class AuthorizeRequest(WearSyncBase):
    provider: str = Field(min_length=1, max_length=50)


class AuthorizeResponse(WearSyncBase):
    auth_url: str = Field(serialization_alias="authUrl")


# ---------- Sync ----------

class SyncRequest(WearSyncBase):
    connection_id: str = Field(alias="connectionId", min_length=1)


class SyncFailure(WearSyncBase):
    endpoint: str
    error: str


class SyncResponse(WearSyncBase):
    success: bool = True
    data_points: int = Field(serialization_alias="dataPoints")
    status: str = "success"
    failures: list[SyncFailure] = Field(default_factory=list)


class SyncAllResult(WearSyncBase):
    connection_id: str = Field(serialization_alias="connectionId")
    provider: str
    data_points: int = Field(default=0, serialization_alias="dataPoints")
    status: str
    error: str | None = None


class SyncAllResponse(WearSyncBase):
    success: bool = True
    synced: int
    errors: int
    results: list[SyncAllResult] = Field(default_factory=list)


# ---------- Connections ----------

class ConnectionRead(WearSyncBase):
    """A connection as the dashboard sees it: no token material."""

    id: str
    provider: str
    is_active: bool = Field(serialization_alias="isActive")
    provider_user_id: str | None = Field(default=None, serialization_alias="providerUserId")
    token_expires_at: datetime | None = Field(default=None, serialization_alias="tokenExpiresAt")
    last_synced_at: datetime | None = Field(default=None, serialization_alias="lastSyncedAt")
