"""Provider adapters.

Each adapter implements the ProviderAdapter ABC and handles:
- Building the authorize URL (and the OAuth1 request-token handshake)
- Exchanging the callback grant for final tokens
- Fetching and normalizing the sync window's data

Available adapters:
    GoogleFitAdapter   — Google Fit REST API (OAuth2, client-secret grant)
    FitbitAdapter      — Fitbit Web API (OAuth2, HTTP Basic client auth)
    GarminAdapter      — Garmin Connect Health API (OAuth 1.0a)
    AppleHealthAdapter — Apple HealthKit (native app only)
"""

from __future__ import annotations

import httpx

from wearsync.config import Settings
from wearsync.wearables.adapters.apple_health import AppleHealthAdapter
from wearsync.wearables.adapters.fitbit import FitbitAdapter
from wearsync.wearables.adapters.garmin import GarminAdapter
from wearsync.wearables.adapters.google_fit import GoogleFitAdapter
from wearsync.wearables.base import ProviderAdapter
from wearsync.wearables.config_loader import ProviderCatalog
from wearsync.wearables.oauth1 import SignatureEngine

__all__ = [
    "AppleHealthAdapter",
    "FitbitAdapter",
    "GarminAdapter",
    "GoogleFitAdapter",
    "ADAPTER_REGISTRY",
    "build_adapters",
]

# Registry: provider slug → adapter class
ADAPTER_REGISTRY: dict[str, type[ProviderAdapter]] = {
    "google_fit": GoogleFitAdapter,
    "fitbit": FitbitAdapter,
    "garmin": GarminAdapter,
    "apple_health": AppleHealthAdapter,
}


def build_adapters(
    settings: Settings,
    signer: SignatureEngine,
    catalog: ProviderCatalog | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, ProviderAdapter]:
    """Instantiate every registered adapter around one signer and HTTP client."""
    return {
        name: cls(settings, catalog=catalog, signer=signer, http_client=http_client)
        for name, cls in ADAPTER_REGISTRY.items()
    }
