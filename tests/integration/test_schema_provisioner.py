"""
Integration tests for per-tenant schema provisioning.
"""

from __future__ import annotations

import pytest

from viewcounter.adapters.sqlite import (
    SCHEMA_VERSION,
    SchemaProvisioner,
    SQLiteConnectionPool,
    SQLiteEventRepo,
    TenantRegistry,
)
from viewcounter.components.analytics import EventAttributes, create_event_store
from viewcounter.core.errors import ConfigurationError, NotInitializedError, StorageError


def _tables(pool: SQLiteConnectionPool) -> set[str]:
    with pool.connection() as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {r["name"] for r in rows}


def _indexes(pool: SQLiteConnectionPool, table: str) -> set[str]:
    with pool.connection() as conn:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ?", (table,)
        ).fetchall()
    return {r["name"] for r in rows}


class TestInitialize:
    """Relation and index creation."""

    def test_creates_tables_and_marks_ready(self, pool, registry) -> None:
        provisioner = SchemaProvisioner(pool, registry)
        assert not provisioner.is_initialized("example_app")

        provisioner.initialize()

        assert {"_migrations", "example_app", "other_app"} <= _tables(pool)
        assert provisioner.is_initialized("example_app")
        assert provisioner.is_initialized("other_app")

    def test_creates_indexes(self, pool, registry, provisioned) -> None:
        indexes = _indexes(pool, "example_app")
        for suffix in ("timestamp", "ip_timestamp", "session_id", "event_type", "page_path"):
            assert f"idx_example_app_{suffix}" in indexes
        assert len([i for i in indexes if i.startswith("idx_example_app_")]) == 12

    def test_records_schema_version(self, provisioned) -> None:
        assert provisioned.applied_versions() == {SCHEMA_VERSION}

    def test_idempotent_and_keeps_rows(self, pool, registry, provisioned, clock) -> None:
        store = create_event_store(SQLiteEventRepo(pool, registry), time_port=clock)
        store.register_event("example_app", EventAttributes(ip="203.0.113.7", device_size="large"))

        provisioned.initialize()
        provisioned.initialize()

        with pool.connection() as conn:
            count = conn.execute('SELECT COUNT(*) AS n FROM "example_app"').fetchone()["n"]
            versions = conn.execute("SELECT COUNT(*) AS n FROM _migrations").fetchone()["n"]
        assert count == 1
        assert versions == 1

    def test_subset_of_tenants(self, pool, registry) -> None:
        provisioner = SchemaProvisioner(pool, registry)
        provisioner.initialize(["other_app"])
        assert provisioner.is_initialized("other_app")
        assert not provisioner.is_initialized("example_app")


class TestGating:
    """Writes are refused until provisioning completes."""

    def test_write_before_initialize(self, pool, registry, clock) -> None:
        store = create_event_store(SQLiteEventRepo(pool, registry), time_port=clock)
        with pytest.raises(NotInitializedError):
            store.register_event(
                "example_app", EventAttributes(ip="203.0.113.7", device_size="large")
            )


class TestFailures:
    def test_missing_directory_is_configuration_error(self, tmp_path, registry) -> None:
        pool = SQLiteConnectionPool(str(tmp_path / "missing" / "v.db"))
        with pytest.raises(ConfigurationError):
            SchemaProvisioner(pool, registry).initialize()
        pool.close()

    def test_connect_mode_requires_existing_tables(self, pool, registry) -> None:
        provisioner = SchemaProvisioner(pool, registry, mode="connect")
        with pytest.raises(StorageError, match="does not exist"):
            provisioner.initialize()

    def test_connect_mode_after_create(self, pool, registry, db_path) -> None:
        SchemaProvisioner(pool, registry).initialize()

        fresh = TenantRegistry(registry.tenant_ids)
        SchemaProvisioner(pool, fresh, mode="connect").initialize()
        assert fresh.is_ready("example_app")
