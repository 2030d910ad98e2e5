"""
Tenant registry.

The closed allow-list of tenant ids, fixed for the process lifetime. It is
the only source of relation names: every id is validated against the list
and quoted before it is placed in SQL.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable

from viewcounter.core.errors import ConfigurationError, NotInitializedError, ValidationError

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,64}$")
# SQLite keeps its own objects under sqlite_; _migrations is the schema ledger
RESERVED_PREFIXES = ("_migrations", "sqlite_")


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def validate_tenant_ids(tenant_ids: Iterable[object]) -> list[str]:
    """
    Check that every id can be its own relation.

    SQLite compares identifiers without regard to case, so ids that differ
    only in case would share a table. Ids in the reserved namespaces would
    collide with the migrations ledger or SQLite internals.

    Raises ConfigurationError on the first problem found.
    """
    ids = list(tenant_ids)
    seen: dict[str, str] = {}
    for tenant_id in ids:
        if not isinstance(tenant_id, str) or not TENANT_ID_PATTERN.match(tenant_id):
            raise ConfigurationError(
                f"Invalid tenant id {tenant_id!r}: expected 1-64 letters, digits or '_'"
            )
        folded = tenant_id.lower()
        if folded.startswith(RESERVED_PREFIXES):
            raise ConfigurationError(
                f"Invalid tenant id {tenant_id!r}: names starting with "
                f"{' or '.join(RESERVED_PREFIXES)} are reserved"
            )
        if folded in seen:
            raise ConfigurationError(
                f"Tenant ids {seen[folded]!r} and {tenant_id!r} differ only in case"
            )
        seen[folded] = tenant_id
    return ids


class TenantRegistry:
    """Allow-listed tenant ids and their provisioning state."""

    def __init__(self, tenant_ids: Iterable[str]) -> None:
        self._ids = frozenset(validate_tenant_ids(tenant_ids))
        self._ready: set[str] = set()
        self._lock = threading.Lock()

    @property
    def tenant_ids(self) -> list[str]:
        return sorted(self._ids)

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._ids

    def resolve(self, tenant_id: str) -> str:
        """Return the quoted relation name for an allow-listed tenant."""
        if tenant_id not in self._ids:
            raise ValidationError(
                f"Unknown tenant '{tenant_id}'", field_name="tenant_id", code="invalid_tenant"
            )
        return quote_identifier(tenant_id)

    def index_name(self, tenant_id: str, suffix: str) -> str:
        self.resolve(tenant_id)
        return quote_identifier(f"idx_{tenant_id}_{suffix}")

    def mark_ready(self, tenant_id: str) -> None:
        self.resolve(tenant_id)
        with self._lock:
            self._ready.add(tenant_id)

    def is_ready(self, tenant_id: str) -> bool:
        with self._lock:
            return tenant_id in self._ready

    def require_ready(self, tenant_id: str) -> str:
        """Resolve a tenant and check it has been provisioned."""
        table = self.resolve(tenant_id)
        if not self.is_ready(tenant_id):
            raise NotInitializedError(tenant_id)
        return table
