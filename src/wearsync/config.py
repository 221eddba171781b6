"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "WearSync"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Supabase ---
    supabase_db_url: str = ""  # direct postgres connection string for asyncpg
    supabase_jwt_secret: str = ""  # HS256 secret used to verify session tokens

    # --- Redirect targets ---
    app_url: str = "http://localhost:3000"
    integrations_path: str = "/dashboard/client/integrations"
    api_public_url: str = "http://localhost:8000"  # base the providers call back to

    # --- Provider credentials ---
    google_fit_client_id: str = ""
    google_fit_client_secret: str = ""
    fitbit_client_id: str = ""
    fitbit_client_secret: str = ""
    garmin_consumer_key: str = ""
    garmin_consumer_secret: str = ""

    # --- OAuth flow ---
    oauth_state_secret: str = ""  # empty = unsigned state
    temp_token_ttl_seconds: int = 600
    temp_token_reap_interval_seconds: int = 300

    # --- Sync ---
    sync_window_days: int = 7
    http_timeout_seconds: float = 20.0
    max_concurrent_syncs: int = 5
    sync_all_key: str = ""  # shared secret for the scheduled sync-all trigger

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def callback_url(self) -> str:
        return f"{self.api_public_url.rstrip('/')}/api/v1/wearables/callback"

    @property
    def integrations_url(self) -> str:
        return f"{self.app_url.rstrip('/')}{self.integrations_path}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
