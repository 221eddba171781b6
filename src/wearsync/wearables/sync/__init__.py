"""Wearable sync infrastructure.

Modules:
    engine    — Trailing-window sync for one connection
    scheduler — Sync-all over active connections (bounded concurrency)
    reaper    — Background removal of expired OAuth1 temp tokens
    dedup     — Upsert keys and ON CONFLICT query builder
"""
