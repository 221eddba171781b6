"""Wearable OAuth integrations and health data sync.

Subpackages:
    adapters/ — Provider variants (Google Fit, Fitbit, Garmin, Apple Health)
    stores/   — Connection, temp token and health record persistence
    sync/     — Sync engine, sync-all scheduler, temp token reaper, dedup

Core modules:
    oauth1        — OAuth 1.0a SignatureEngine (HMAC-SHA1)
    state         — OAuth2 state correlation token
    base          — ProviderAdapter ABC and canonical data models
    errors        — Error taxonomy
    config_loader — Load/validate providers.yaml
    authorize     — AuthorizationStarter
    callback      — CallbackHandler
    service       — Wiring for the app
"""
