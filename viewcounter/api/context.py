from __future__ import annotations

import logging
from dataclasses import dataclass

from viewcounter.adapters.geoip import GeoIPCountryLookup
from viewcounter.adapters.sqlite import (
    SchemaProvisioner,
    SQLiteAnalyticsRepo,
    SQLiteConnectionPool,
    SQLiteEventRepo,
    TenantRegistry,
)
from viewcounter.app_shell.rate_limit import RateLimiter
from viewcounter.components.analytics import DefaultTimePort, EventStoreConfig
from viewcounter.config.models import AppConfig
from viewcounter.core.ports.clock import TimePort
from viewcounter.core.ports.geo import CountryLookupPort

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Process-wide services, built once and shared by every request."""

    config: AppConfig
    pool: SQLiteConnectionPool
    registry: TenantRegistry
    provisioner: SchemaProvisioner
    event_repo: SQLiteEventRepo
    analytics_repo: SQLiteAnalyticsRepo
    store_config: EventStoreConfig
    rate_limiter: RateLimiter
    clock: TimePort
    country_lookup: CountryLookupPort | None = None

    @classmethod
    def create(cls, config: AppConfig, time_port: TimePort | None = None) -> ServiceContext:
        clock = time_port if time_port is not None else DefaultTimePort()
        db = config.database
        geoip_path = config.server.geoip_db_path
        country_lookup = GeoIPCountryLookup(geoip_path) if geoip_path else None

        pool = SQLiteConnectionPool(
            db.path,
            pool_size=db.pool_size,
            queue_limit=db.queue_limit,
            acquire_timeout=db.acquire_timeout_seconds,
        )
        registry = TenantRegistry(config.allowed.app_ids)

        return cls(
            config=config,
            pool=pool,
            registry=registry,
            provisioner=SchemaProvisioner(pool, registry, mode=db.mode),
            event_repo=SQLiteEventRepo(pool, registry),
            analytics_repo=SQLiteAnalyticsRepo(pool, registry),
            store_config=EventStoreConfig(
                default_window_hours=config.server.unique_visitor_window_hours
            ),
            rate_limiter=RateLimiter(config.server.rate_limit, time_port=clock),
            clock=clock,
            country_lookup=country_lookup,
        )

    def provision(self) -> None:
        self.provisioner.initialize()

    def close(self) -> None:
        if self.country_lookup is not None:
            self.country_lookup.close()
        self.pool.close()
