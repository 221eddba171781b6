"""Tests for the provider catalog loader and settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from wearsync.config import Settings
from wearsync.wearables.config_loader import (
    ConfigValidationError,
    ProviderCatalog,
    get_provider_catalog,
    load_provider_catalog,
    reload_provider_catalog,
)

VALID_YAML = """
version: "2.0"
providers:
  fitbit:
    display_name: Fitbit
    auth_type: oauth2
    authorize_url: https://www.fitbit.com/oauth2/authorize
    token_url: https://api.fitbit.com/oauth2/token
    api_base: https://api.fitbit.com/
    scopes: [activity]
sync_intervals:
  fitbit: 900
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "providers.yaml"
    path.write_text(text)
    return path


class TestBundledCatalog:
    def test_all_providers_present(self, catalog: ProviderCatalog) -> None:
        assert set(catalog.providers) == {"google_fit", "fitbit", "garmin", "apple_health"}

    def test_auth_types(self, catalog: ProviderCatalog) -> None:
        assert catalog.provider("google_fit").auth_type == "oauth2"
        assert catalog.provider("fitbit").auth_type == "oauth2"
        assert catalog.provider("garmin").auth_type == "oauth1"
        assert catalog.provider("apple_health").auth_type == "native"

    def test_garmin_oauth1_endpoints(self, catalog: ProviderCatalog) -> None:
        garmin = catalog.provider("garmin")
        assert garmin.request_token_url.endswith("/oauth-service/oauth/request_token")
        assert garmin.access_token_url.endswith("/oauth-service/oauth/access_token")
        assert garmin.api_base == "https://apis.garmin.com/wellness-api/rest"

    def test_google_fit_scopes(self, catalog: ProviderCatalog) -> None:
        scopes = catalog.provider("google_fit").scopes
        assert "https://www.googleapis.com/auth/fitness.activity.read" in scopes

    def test_fitbit_pacing_from_file(self) -> None:
        assert load_provider_catalog().provider("fitbit").request_delay_ms == 250

    def test_unknown_provider_raises_key_error(self, catalog: ProviderCatalog) -> None:
        with pytest.raises(KeyError):
            catalog.provider("whoop")

    def test_sync_interval_default(self, catalog: ProviderCatalog) -> None:
        assert catalog.sync_interval("garmin") == 3600
        assert catalog.sync_interval("apple_health") == 3600

    def test_singleton(self) -> None:
        assert get_provider_catalog() is get_provider_catalog()


class TestCatalogValidation:
    def test_loads_custom_file(self, tmp_path: Path) -> None:
        catalog = load_provider_catalog(_write(tmp_path, VALID_YAML))
        assert catalog.version == "2.0"
        assert catalog.provider("fitbit").api_base == "https://api.fitbit.com"
        assert catalog.sync_interval("fitbit") == 900

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_provider_catalog(tmp_path / "nope.yaml")

    def test_bad_auth_type(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "providers:\n  x:\n    auth_type: saml\n")
        with pytest.raises(ConfigValidationError, match="auth_type"):
            load_provider_catalog(path)

    def test_missing_required_oauth1_keys(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "providers:\n  garmin:\n    auth_type: oauth1\n")
        with pytest.raises(ConfigValidationError, match="request_token_url"):
            load_provider_catalog(path)

    def test_empty_providers(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigValidationError):
            load_provider_catalog(_write(tmp_path, "version: '1.0'\n"))

    def test_yaml_syntax_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigValidationError, match="YAML parse error"):
            load_provider_catalog(_write(tmp_path, "providers: [unclosed\n"))

    def test_reload_swaps_catalog(self, tmp_path: Path) -> None:
        try:
            reloaded = reload_provider_catalog(_write(tmp_path, VALID_YAML))
            assert get_provider_catalog() is reloaded
        finally:
            reload_provider_catalog()


class TestSettings:
    def test_callback_and_integrations_urls(self) -> None:
        settings = Settings(app_url="https://app.example.com/", api_public_url="https://api.example.com/")
        assert settings.callback_url == "https://api.example.com/api/v1/wearables/callback"
        assert settings.integrations_url == "https://app.example.com/dashboard/client/integrations"

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.sync_window_days == 7
        assert settings.temp_token_ttl_seconds == 600
        assert settings.http_timeout_seconds == 20.0
