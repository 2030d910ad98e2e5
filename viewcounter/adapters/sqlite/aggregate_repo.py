"""
SQLite analytics repository (read path).

Grouped, read-only queries over a tenant relation. Column names come from the
Dimension enum and relation names from the TenantRegistry; user values are
always bound as parameters.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any

from viewcounter.core.entities import Dimension, TrendPeriod
from viewcounter.core.errors import StorageError
from viewcounter.core.ports.db import ConnectionPoolPort

from .pool import format_ts, parse_ts
from .tenants import TenantRegistry

logger = logging.getLogger(__name__)

# Bucket expressions; weekly buckets are keyed by the Monday of the week
BUCKET_SQL = {
    TrendPeriod.HOURLY: "strftime('%Y-%m-%d %H:00', timestamp)",
    TrendPeriod.DAILY: "date(timestamp)",
    TrendPeriod.WEEKLY: "date(timestamp, '-6 days', 'weekday 1')",
}

SESSION_COLUMNS = (
    "id, masked_ip, country, timestamp, device_size, page_path, page_title, "
    "referrer, referrer_domain, source_type, browser, browser_version, os, "
    "os_version, device_type, session_id, event_type, event_data, is_unique"
)


class SQLiteAnalyticsRepo:
    """Tenant-scoped aggregate queries."""

    def __init__(self, pool: ConnectionPoolPort, registry: TenantRegistry) -> None:
        self.pool = pool
        self.registry = registry

    def _fetch(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        try:
            with self.pool.connection() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error("Analytics query failed: %s", e)
            raise StorageError(f"Analytics query failed: {e}") from e

    def ensure_tenant(self, tenant_id: str) -> None:
        self.registry.require_ready(tenant_id)

    def summary(self, tenant_id: str, recent_since: datetime) -> dict[str, int]:
        table = self.registry.require_ready(tenant_id)
        rows = self._fetch(
            f"""
            SELECT
                COUNT(*) AS total_views,
                COALESCE(SUM(CASE WHEN is_unique = 1 THEN 1 ELSE 0 END), 0) AS unique_views,
                COUNT(DISTINCT masked_ip) AS unique_visitors,
                COALESCE(SUM(CASE WHEN timestamp >= ? THEN 1 ELSE 0 END), 0) AS recent
            FROM {table}
            """,
            (format_ts(recent_since),),
        )
        return {key: int(value) for key, value in rows[0].items()}

    def top_values(
        self,
        tenant_id: str,
        dimension: Dimension,
        limit: int | None = None,
    ) -> list[tuple[str, int]]:
        table = self.registry.require_ready(tenant_id)
        column = Dimension(dimension).value
        sql = f"""
            SELECT {column} AS value, COUNT(*) AS count
            FROM {table}
            WHERE {column} IS NOT NULL
            GROUP BY {column}
            ORDER BY count DESC, value ASC
        """
        params: tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        return [(r["value"], r["count"]) for r in self._fetch(sql, params)]

    def trend_buckets(
        self,
        tenant_id: str,
        period: TrendPeriod,
        since: datetime,
    ) -> list[tuple[str, int]]:
        table = self.registry.require_ready(tenant_id)
        bucket = BUCKET_SQL[TrendPeriod(period)]
        rows = self._fetch(
            f"""
            SELECT {bucket} AS period, COUNT(*) AS count
            FROM {table}
            WHERE timestamp >= ?
            GROUP BY period
            ORDER BY period ASC
            """,
            (format_ts(since),),
        )
        return [(r["period"], r["count"]) for r in rows]

    def top_pages(self, tenant_id: str, limit: int) -> list[dict[str, Any]]:
        table = self.registry.require_ready(tenant_id)
        return self._fetch(
            f"""
            SELECT page_path, page_title, COUNT(*) AS views
            FROM {table}
            WHERE page_path IS NOT NULL
            GROUP BY page_path, page_title
            ORDER BY views DESC, page_path ASC
            LIMIT ?
            """,
            (limit,),
        )

    def session_events(self, tenant_id: str, session_id: str) -> list[dict[str, Any]]:
        table = self.registry.require_ready(tenant_id)
        rows = self._fetch(
            f"""
            SELECT {SESSION_COLUMNS}
            FROM {table}
            WHERE session_id = ?
            ORDER BY timestamp ASC, id ASC
            """,
            (session_id,),
        )
        for row in rows:
            row["timestamp"] = parse_ts(row["timestamp"])
        return rows

    def recent_views(self, tenant_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        table = self.registry.require_ready(tenant_id)
        rows = self._fetch(
            f"""
            SELECT masked_ip, country, timestamp, device_size
            FROM {table}
            ORDER BY timestamp DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        )
        for row in rows:
            row["timestamp"] = parse_ts(row["timestamp"])
        return rows

    def count(self, tenant_id: str) -> int:
        table = self.registry.require_ready(tenant_id)
        rows = self._fetch(f"SELECT COUNT(*) AS count FROM {table}")
        return int(rows[0]["count"])

    def ping(self) -> None:
        self._fetch("SELECT 1 AS ok")
