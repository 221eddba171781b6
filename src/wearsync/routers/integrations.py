"""Wearable integration endpoints: connect, callback, sync, list, revoke."""

from __future__ import annotations

import hmac
import logging
from typing import Any

from fastapi import APIRouter, Header, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from wearsync.dependencies import AppSettings, CurrentUser, Services
from wearsync.models.wearables import (
    AuthorizeRequest,
    AuthorizeResponse,
    ConnectionRead,
    SyncAllResponse,
    SyncAllResult,
    SyncFailure,
    SyncRequest,
    SyncResponse,
)
from wearsync.wearables.errors import ConnectionNotFoundError, ProfileNotFoundError
from wearsync.wearables.service import WearableServices

router = APIRouter(prefix="/wearables", tags=["wearables"])
logger = logging.getLogger("wearsync.routers.integrations")


async def _client_id(services: WearableServices, user_id: str) -> str:
    client_id = await services.stores.profiles.resolve(user_id)
    if client_id is None:
        raise ProfileNotFoundError()
    return client_id


# ---------- Authorization ----------

@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(user: CurrentUser, body: AuthorizeRequest, services: Services) -> Any:
    auth_url = await services.starter.start(user.user_id, body.provider)
    return AuthorizeResponse(auth_url=auth_url)


@router.get("/callback", response_class=RedirectResponse, status_code=302)
async def callback(request: Request, services: Services) -> RedirectResponse:
    """Provider redirect target.  Always answers 302 to the integrations page."""
    location = await services.callback.respond(dict(request.query_params))
    return RedirectResponse(location, status_code=302)


# ---------- Sync ----------

@router.post("/sync", response_model=SyncResponse)
async def sync_connection(user: CurrentUser, body: SyncRequest, services: Services) -> Any:
    client_id = await _client_id(services, user.user_id)
    report = await services.engine.sync_connection(body.connection_id, client_id=client_id)
    return SyncResponse(
        success=True,
        data_points=report.data_points,
        status=report.status,
        failures=[SyncFailure(endpoint=f.endpoint, error=f.message) for f in report.failures],
    )


@router.post("/sync-all", response_model=SyncAllResponse)
async def sync_all(
    services: Services,
    settings: AppSettings,
    x_sync_key: str | None = Header(default=None),
) -> Any:
    """Scheduled trigger: sync every active connection."""
    expected = settings.sync_all_key
    if not expected or not x_sync_key or not hmac.compare_digest(x_sync_key, expected):
        logger.warning("sync-all called without a valid sync key")
        return JSONResponse(status_code=401, content={"error": "Invalid sync key"})

    summary = await services.scheduler.sync_all_active()
    return SyncAllResponse(
        success=True,
        synced=summary.synced,
        errors=summary.errors,
        results=[SyncAllResult.model_validate(r) for r in summary.results],
    )


# ---------- Connections ----------

@router.get("/connections", response_model=list[ConnectionRead])
async def list_connections(user: CurrentUser, services: Services) -> Any:
    client_id = await _client_id(services, user.user_id)
    connections = await services.stores.connections.list_for_client(client_id)
    return [ConnectionRead.model_validate(c) for c in connections]


@router.delete("/connections/{connection_id}", status_code=204)
async def revoke_connection(connection_id: str, user: CurrentUser, services: Services) -> Response:
    client_id = await _client_id(services, user.user_id)
    if not await services.stores.connections.deactivate(connection_id, client_id):
        raise ConnectionNotFoundError()
    logger.info("Connection %s deactivated by client %s", connection_id, client_id)
    return Response(status_code=204)
