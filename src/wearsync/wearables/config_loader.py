"""Load and validate the wearable provider catalog.

The catalog lives in ``providers.yaml`` alongside this module and holds the
provider endpoints (authorize, token and data API URLs), OAuth scopes and
per-provider pacing.  Credentials are NOT in the catalog; they come from
``Settings``.

Usage::

    from wearsync.wearables.config_loader import get_provider_catalog

    catalog = get_provider_catalog()
    fitbit = catalog.provider("fitbit")
    fitbit.token_url        # "https://api.fitbit.com/oauth2/token"
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("wearsync.wearables.config")

_CATALOG_PATH = Path(__file__).parent / "providers.yaml"

_AUTH_TYPES = {"oauth1", "oauth2", "native"}


@dataclass
class ProviderEndpoints:
    """Endpoints and scopes for one provider."""

    name: str
    display_name: str
    auth_type: str  # oauth1 | oauth2 | native
    authorize_url: str = ""
    token_url: str = ""
    request_token_url: str = ""
    access_token_url: str = ""
    api_base: str = ""
    scopes: list[str] = field(default_factory=list)
    request_delay_ms: int = 0


@dataclass
class ProviderCatalog:
    """Validated in-memory form of providers.yaml."""

    version: str
    providers: dict[str, ProviderEndpoints]
    sync_intervals: dict[str, int]
    _raw: dict = field(default_factory=dict, repr=False)

    def provider(self, name: str) -> ProviderEndpoints:
        """Return the endpoints for a provider.

        Raises:
            KeyError: If the provider is not in the catalog.
        """
        if name not in self.providers:
            raise KeyError(
                f"Provider '{name}' is not in the catalog. Available: {sorted(self.providers)}"
            )
        return self.providers[name]

    def sync_interval(self, name: str) -> int:
        return self.sync_intervals.get(name, 3600)


class ConfigValidationError(ValueError):
    """Raised when providers.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Provider catalog not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> ProviderCatalog:
    """Validate the raw YAML dict and construct a ProviderCatalog.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []
    providers: dict[str, ProviderEndpoints] = {}

    providers_raw = raw.get("providers") or {}
    if not providers_raw:
        errors.append("'providers' section is missing or empty")

    for name, cfg in providers_raw.items():
        if not isinstance(cfg, dict):
            errors.append(f"providers.{name} must be a mapping")
            continue

        auth_type = cfg.get("auth_type")
        if auth_type not in _AUTH_TYPES:
            errors.append(
                f"providers.{name}.auth_type must be one of {sorted(_AUTH_TYPES)}, got {auth_type!r}"
            )
            continue

        required: list[str] = []
        if auth_type == "oauth2":
            required = ["authorize_url", "token_url", "api_base"]
        elif auth_type == "oauth1":
            required = ["request_token_url", "authorize_url", "access_token_url", "api_base"]
        for key in required:
            if not cfg.get(key):
                errors.append(f"Missing required key '{key}' in section 'providers.{name}'")

        scopes = cfg.get("scopes") or []
        if not isinstance(scopes, list):
            errors.append(f"providers.{name}.scopes must be a list")
            scopes = []

        try:
            delay = int(cfg.get("request_delay_ms", 0))
        except (TypeError, ValueError):
            errors.append(f"providers.{name}.request_delay_ms must be an integer")
            delay = 0

        providers[name] = ProviderEndpoints(
            name=name,
            display_name=cfg.get("display_name", name),
            auth_type=auth_type,
            authorize_url=cfg.get("authorize_url", ""),
            token_url=cfg.get("token_url", ""),
            request_token_url=cfg.get("request_token_url", ""),
            access_token_url=cfg.get("access_token_url", ""),
            api_base=(cfg.get("api_base") or "").rstrip("/"),
            scopes=[str(s) for s in scopes],
            request_delay_ms=delay,
        )

    sync_intervals: dict[str, int] = {}
    for name, val in (raw.get("sync_intervals") or {}).items():
        try:
            sync_intervals[name] = int(val)
        except (TypeError, ValueError):
            errors.append(f"sync_intervals.{name} must be an integer, got {val!r}")

    if errors:
        raise ConfigValidationError(
            f"providers.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return ProviderCatalog(
        version=str(raw.get("version", "1.0")),
        providers=providers,
        sync_intervals=sync_intervals,
        _raw=raw,
    )


def load_provider_catalog(path: Path | None = None) -> ProviderCatalog:
    """Load and validate the provider catalog from disk."""
    target = path or _CATALOG_PATH
    catalog = _validate_and_build(_load_yaml(target))
    logger.info("Loaded provider catalog v%s from %s", catalog.version, target)
    return catalog


_catalog: ProviderCatalog | None = None
_catalog_lock = threading.Lock()


def get_provider_catalog() -> ProviderCatalog:
    """Return the process-wide catalog, loading it on first call."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = load_provider_catalog()
    return _catalog


def reload_provider_catalog(path: Path | None = None) -> ProviderCatalog:
    """Re-read the catalog and swap it in.  On validation failure the old one stays."""
    global _catalog
    new_catalog = load_provider_catalog(path)
    with _catalog_lock:
        _catalog = new_catalog
    return new_catalog
