"""
Schema provisioner.

Creates one event relation per tenant with its indexes and records the
schema version in _migrations. Every statement is idempotent, so running it
again (or after a partial failure) is safe.
"""

from __future__ import annotations

import logging
import os
import sqlite3

from viewcounter.core.errors import ConfigurationError, StorageError

from .pool import SQLiteConnectionPool
from .tenants import TenantRegistry

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "enhanced_schema_v2"

EVENT_COLUMNS = """
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    masked_ip VARCHAR(45) NOT NULL,
    country VARCHAR(2) DEFAULT NULL,
    timestamp TEXT NOT NULL,
    device_size VARCHAR(20) NOT NULL,
    page_path VARCHAR(500) DEFAULT NULL,
    page_title VARCHAR(200) DEFAULT NULL,
    referrer VARCHAR(500) DEFAULT NULL,
    referrer_domain VARCHAR(200) DEFAULT NULL,
    source_type VARCHAR(20) DEFAULT NULL,
    browser VARCHAR(50) DEFAULT NULL,
    browser_version VARCHAR(20) DEFAULT NULL,
    os VARCHAR(50) DEFAULT NULL,
    os_version VARCHAR(20) DEFAULT NULL,
    device_type VARCHAR(20) DEFAULT NULL,
    session_id VARCHAR(64) DEFAULT NULL,
    event_type VARCHAR(50) NOT NULL DEFAULT 'pageview',
    event_data TEXT DEFAULT NULL,
    is_unique INTEGER NOT NULL DEFAULT 1
"""

# (name suffix, indexed columns)
EVENT_INDEXES: tuple[tuple[str, str], ...] = (
    ("timestamp", "timestamp"),
    ("ip_timestamp", "masked_ip, timestamp"),
    ("country", "country"),
    ("device_size", "device_size"),
    ("page_path", "page_path"),
    ("referrer_domain", "referrer_domain"),
    ("source_type", "source_type"),
    ("browser", "browser"),
    ("os", "os"),
    ("device_type", "device_type"),
    ("session_id", "session_id"),
    ("event_type", "event_type"),
)


class SchemaProvisioner:
    """
    Per-tenant relation setup.

    mode "create" builds missing relations; mode "connect" only verifies
    that they already exist.
    """

    def __init__(
        self,
        pool: SQLiteConnectionPool,
        registry: TenantRegistry,
        mode: str = "create",
    ) -> None:
        self.pool = pool
        self.registry = registry
        self.mode = mode

    def _ensure_container(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.pool.db_path))
        if self.pool.db_path != ":memory:" and not os.path.isdir(directory):
            raise ConfigurationError(f"Database directory does not exist: {directory}")
        try:
            with self.pool.connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS _migrations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        version TEXT UNIQUE NOT NULL,
                        applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                """)
                conn.commit()
        except (sqlite3.Error, StorageError) as e:
            raise ConfigurationError(f"Could not prepare database {self.pool.db_path}: {e}") from e

    def _create_tenant(self, conn: sqlite3.Connection, tenant_id: str) -> None:
        table = self.registry.resolve(tenant_id)
        conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({EVENT_COLUMNS});")
        for suffix, columns in EVENT_INDEXES:
            index = self.registry.index_name(tenant_id, suffix)
            conn.execute(f"CREATE INDEX IF NOT EXISTS {index} ON {table} ({columns});")

    def _verify_tenant(self, conn: sqlite3.Connection, tenant_id: str) -> None:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (tenant_id,),
        ).fetchone()
        if row is None:
            raise StorageError(f"Relation for tenant '{tenant_id}' does not exist")

    def _record_version(self, conn: sqlite3.Connection) -> None:
        conn.execute("INSERT OR IGNORE INTO _migrations (version) VALUES (?)", (SCHEMA_VERSION,))

    def initialize(self, tenant_ids: list[str] | None = None) -> None:
        """
        Provision every tenant in order, then mark each as ready.

        Raises:
            ConfigurationError: the database container cannot be prepared.
            StorageError: a tenant relation could not be created or found.
        """
        self._ensure_container()
        targets = sorted(tenant_ids if tenant_ids is not None else self.registry.tenant_ids)

        for tenant_id in targets:
            try:
                with self.pool.connection() as conn:
                    if self.mode == "connect":
                        self._verify_tenant(conn, tenant_id)
                    else:
                        self._create_tenant(conn, tenant_id)
                    conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Provisioning failed for tenant '{tenant_id}': {e}") from e
            self.registry.mark_ready(tenant_id)
            logger.info("Table '%s' ready", tenant_id)

        if self.mode != "connect":
            try:
                with self.pool.connection() as conn:
                    self._record_version(conn)
                    conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Could not record schema version: {e}") from e

        logger.info("Database provisioned (mode: %s, tenants: %d)", self.mode, len(targets))

    def is_initialized(self, tenant_id: str) -> bool:
        return self.registry.is_ready(tenant_id)

    def applied_versions(self) -> set[str]:
        with self.pool.connection() as conn:
            rows = conn.execute("SELECT version FROM _migrations").fetchall()
        return {row["version"] for row in rows}
