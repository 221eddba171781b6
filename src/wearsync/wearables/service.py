"""Wire adapters, stores and flows into one bundle for the app.

Built once in the FastAPI lifespan and stored on ``app.state.wearables``;
tests build it with in-memory stores and a mock-transport HTTP client.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from wearsync.config import Settings
from wearsync.wearables.adapters import build_adapters
from wearsync.wearables.authorize import AuthorizationStarter
from wearsync.wearables.base import ProviderAdapter
from wearsync.wearables.callback import CallbackHandler
from wearsync.wearables.config_loader import ProviderCatalog, get_provider_catalog
from wearsync.wearables.oauth1 import SignatureEngine
from wearsync.wearables.stores import Stores, postgres_stores
from wearsync.wearables.sync.engine import SyncEngine
from wearsync.wearables.sync.reaper import TempTokenReaper
from wearsync.wearables.sync.scheduler import SyncScheduler


@dataclass
class WearableServices:
    stores: Stores
    adapters: dict[str, ProviderAdapter]
    starter: AuthorizationStarter
    callback: CallbackHandler
    engine: SyncEngine
    scheduler: SyncScheduler
    reaper: TempTokenReaper


def build_wearable_services(
    settings: Settings,
    stores: Stores | None = None,
    http_client: httpx.AsyncClient | None = None,
    signer: SignatureEngine | None = None,
    catalog: ProviderCatalog | None = None,
) -> WearableServices:
    """Assemble the flows around one SignatureEngine and one HTTP client."""
    stores = stores or postgres_stores()
    catalog = catalog or get_provider_catalog()
    signer = signer or SignatureEngine()
    adapters = build_adapters(settings, signer, catalog=catalog, http_client=http_client)

    engine = SyncEngine(
        stores.connections,
        stores.health_records,
        adapters,
        window_days=settings.sync_window_days,
    )
    return WearableServices(
        stores=stores,
        adapters=adapters,
        starter=AuthorizationStarter(adapters, stores.temp_tokens, settings),
        callback=CallbackHandler(
            adapters, stores.connections, stores.temp_tokens, stores.profiles, settings
        ),
        engine=engine,
        scheduler=SyncScheduler(
            engine, stores.connections, catalog=catalog, max_concurrent=settings.max_concurrent_syncs
        ),
        reaper=TempTokenReaper(
            stores.temp_tokens, interval_seconds=settings.temp_token_reap_interval_seconds
        ),
    )
