"""Deduplication logic for health data ingestion.

The same (client, data_type, day, source) can arrive more than once: every
sync re-reads a trailing window, and Garmin may list a day's summary in two
upload slices.  The database UNIQUE constraints are the authoritative dedup
mechanism; this module builds the upsert statements that honour them and
collapses in-batch duplicates before they reach Postgres (a single
``INSERT ... ON CONFLICT`` batch may not touch the same row twice).

Dedup keys:
    - health_data_sync:     (client_id, data_type, recorded_at, source)
    - wearable_connections: (client_id, provider)
    - oauth_temp_tokens:    (user_id, provider)
"""

from __future__ import annotations

import logging

from wearsync.wearables.base import HealthRecord

logger = logging.getLogger("wearsync.wearables.sync.dedup")

HEALTH_DATA_CONFLICT = ["client_id", "data_type", "recorded_at", "source"]
CONNECTION_CONFLICT = ["client_id", "provider"]
TEMP_TOKEN_CONFLICT = ["user_id", "provider"]


def collapse_records(records: list[HealthRecord]) -> list[HealthRecord]:
    """Keep the last record per upsert key, preserving first-seen order.

    Args:
        records: Records from one sync run, possibly with repeated keys.

    Returns:
        One record per (client_id, data_type, recorded_at, source).
    """
    latest: dict[tuple, HealthRecord] = {}
    for record in records:
        latest[record.upsert_key] = record
    dropped = len(records) - len(latest)
    if dropped:
        logger.debug("Collapsed %d duplicate health records", dropped)
    return list(latest.values())


def build_upsert_query(
    table: str,
    columns: list[str],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
    extra_updates: dict[str, str] | None = None,
    returning: list[str] | None = None,
    touch_updated_at: bool = True,
) -> str:
    """Build a PostgreSQL INSERT ... ON CONFLICT DO UPDATE (upsert) query.

    Generates idempotent writes — safe to call multiple times with the same
    data.  On conflict, updates the non-key columns.

    Args:
        table:            Target table name.
        columns:          All columns to insert.
        conflict_columns: Columns that define the UNIQUE constraint.
        update_columns:   Columns to update on conflict (defaults to non-key columns).
        extra_updates:    Literal SQL assignments added to the update set
                          (e.g. ``{"is_active": "TRUE"}``).
        returning:        Columns for a RETURNING clause.
        touch_updated_at: Also set ``updated_at = NOW()`` (tables without the
                          column pass False).

    Returns:
        Parameterized SQL string.
    """
    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]

    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    assignments = [f"{col} = EXCLUDED.{col}" for col in update_columns]
    assignments += [f"{col} = {expr}" for col, expr in (extra_updates or {}).items()]
    if assignments:
        if touch_updated_at:
            assignments.append("updated_at = NOW()")
        update_set = ", ".join(assignments)
        do_clause = f"DO UPDATE SET {update_set}"
    else:
        do_clause = "DO NOTHING"

    query = (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict_target}) {do_clause}"
    )
    if returning:
        query += f" RETURNING {', '.join(returning)}"
    return query
