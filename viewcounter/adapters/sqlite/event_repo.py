"""
SQLite event repository (write path).

Relation names come only from the TenantRegistry. Every address handed to a
statement passes the privacy guard first.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime

from viewcounter.components.analytics.models import EventRow
from viewcounter.core.errors import StorageError
from viewcounter.core.ports.db import ConnectionPoolPort
from viewcounter.core.services.privacy import ensure_masked

from .pool import format_ts
from .tenants import TenantRegistry

logger = logging.getLogger(__name__)

INSERT_COLUMNS = (
    "masked_ip",
    "country",
    "timestamp",
    "device_size",
    "page_path",
    "page_title",
    "referrer",
    "referrer_domain",
    "source_type",
    "browser",
    "browser_version",
    "os",
    "os_version",
    "device_type",
    "session_id",
    "event_type",
    "event_data",
    "is_unique",
)


class SQLiteEventRepo:
    """Append-only event storage."""

    def __init__(self, pool: ConnectionPoolPort, registry: TenantRegistry) -> None:
        self.pool = pool
        self.registry = registry

    def ensure_tenant(self, tenant_id: str) -> None:
        self.registry.require_ready(tenant_id)

    def has_recent_pageview(self, tenant_id: str, masked_ip: str, since: datetime) -> bool:
        table = self.registry.require_ready(tenant_id)
        ensure_masked(masked_ip)
        try:
            with self.pool.connection() as conn:
                row = conn.execute(
                    f"""
                    SELECT id FROM {table}
                    WHERE masked_ip = ? AND event_type = 'pageview' AND timestamp >= ?
                    LIMIT 1
                    """,
                    (masked_ip, format_ts(since)),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error("Dedup lookup failed for %s: %s", tenant_id, e)
            raise StorageError(f"Dedup lookup failed: {e}") from e
        return row is not None

    def _values(self, row: EventRow) -> tuple[object, ...]:
        return (
            row.masked_ip,
            row.country,
            format_ts(row.timestamp),
            row.device_size,
            row.page_path,
            row.page_title,
            row.referrer,
            row.referrer_domain,
            row.source_type,
            row.browser,
            row.browser_version,
            row.os,
            row.os_version,
            row.device_type,
            row.session_id,
            row.event_type,
            json.dumps(row.event_data) if row.event_data is not None else None,
            1 if row.is_unique else 0,
        )

    def insert(self, tenant_id: str, row: EventRow) -> int:
        table = self.registry.require_ready(tenant_id)
        ensure_masked(row.masked_ip)
        columns = ", ".join(INSERT_COLUMNS)
        placeholders = ", ".join("?" for _ in INSERT_COLUMNS)
        try:
            with self.pool.connection() as conn:
                cursor = conn.execute(
                    f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                    self._values(row),
                )
                conn.commit()
                insert_id = cursor.lastrowid
        except sqlite3.Error as e:
            logger.error("Insert failed for %s: %s", tenant_id, e)
            raise StorageError(f"Insert failed: {e}") from e
        return int(insert_id)
