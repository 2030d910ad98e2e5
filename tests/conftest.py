from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from viewcounter.adapters.sqlite import (
    SchemaProvisioner,
    SQLiteAnalyticsRepo,
    SQLiteConnectionPool,
    SQLiteEventRepo,
    TenantRegistry,
)
from viewcounter.api.main import create_app
from viewcounter.config import (
    AllowedConfig,
    AppConfig,
    DatabaseConfig,
    RateLimitConfig,
    ServerConfig,
)

TENANTS = ["example_app", "other_app"]


class FixedTimePort:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now = self._now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedTimePort:
    return FixedTimePort(datetime(2026, 1, 12, 10, 0, 0, tzinfo=UTC))


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "viewcounter.db")


@pytest.fixture
def registry() -> TenantRegistry:
    return TenantRegistry(TENANTS)


@pytest.fixture
def pool(db_path) -> Iterator[SQLiteConnectionPool]:
    pool = SQLiteConnectionPool(db_path, pool_size=2, queue_limit=4, acquire_timeout=1.0)
    yield pool
    pool.close()


@pytest.fixture
def provisioned(pool, registry) -> SchemaProvisioner:
    """Pool and registry with every test tenant provisioned."""
    provisioner = SchemaProvisioner(pool, registry)
    provisioner.initialize()
    return provisioner


@pytest.fixture
def event_repo(pool, registry, provisioned) -> SQLiteEventRepo:
    return SQLiteEventRepo(pool, registry)


@pytest.fixture
def analytics_repo(pool, registry, provisioned) -> SQLiteAnalyticsRepo:
    return SQLiteAnalyticsRepo(pool, registry)


@pytest.fixture
def app_config(db_path) -> AppConfig:
    return AppConfig(
        database=DatabaseConfig(path=db_path, pool_size=2),
        allowed=AllowedConfig(app_ids=TENANTS),
        server=ServerConfig(rate_limit=RateLimitConfig(window_seconds=60, max_requests=1000)),
    )


@pytest.fixture
def client(app_config, clock) -> Iterator[TestClient]:
    """TestClient with lifespan (provisioning) run against a temporary DB."""
    app = create_app(app_config, time_port=clock)
    with TestClient(app) as c:
        yield c
