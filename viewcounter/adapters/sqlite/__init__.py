"""
SQLite storage adapters.
"""

from .aggregate_repo import SQLiteAnalyticsRepo
from .event_repo import SQLiteEventRepo
from .pool import SQLiteConnectionPool, dict_factory, format_ts, parse_ts
from .provisioner import SCHEMA_VERSION, SchemaProvisioner
from .tenants import TenantRegistry, quote_identifier, validate_tenant_ids

__all__ = [
    "SCHEMA_VERSION",
    "SQLiteAnalyticsRepo",
    "SQLiteConnectionPool",
    "SQLiteEventRepo",
    "SchemaProvisioner",
    "TenantRegistry",
    "dict_factory",
    "format_ts",
    "parse_ts",
    "quote_identifier",
    "validate_tenant_ids",
]
