"""
Analytics component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from viewcounter.core.entities import Dimension, TrendPeriod

from .models import EventRow


class EventRepoPort(Protocol):
    """Append-only event storage for the write path."""

    def ensure_tenant(self, tenant_id: str) -> None:
        """Raise ValidationError / NotInitializedError unless the tenant is ready."""
        ...

    def has_recent_pageview(self, tenant_id: str, masked_ip: str, since: datetime) -> bool:
        """Check for a pageview from masked_ip with timestamp >= since."""
        ...

    def insert(self, tenant_id: str, row: EventRow) -> int:
        """Append a row. Returns the new row id."""
        ...


class AnalyticsRepoPort(Protocol):
    """Grouped read queries for the read path."""

    def ensure_tenant(self, tenant_id: str) -> None:
        """Raise ValidationError / NotInitializedError unless the tenant is ready."""
        ...

    def summary(self, tenant_id: str, recent_since: datetime) -> dict[str, int]:
        """Totals from one scan: total_views, unique_views, unique_visitors, recent."""
        ...

    def top_values(
        self,
        tenant_id: str,
        dimension: Dimension,
        limit: int | None = None,
    ) -> list[tuple[str, int]]:
        """Frequency breakdown of a dimension, most frequent first."""
        ...

    def trend_buckets(
        self,
        tenant_id: str,
        period: TrendPeriod,
        since: datetime,
    ) -> list[tuple[str, int]]:
        """Raw bucket keys with counts, ascending."""
        ...

    def top_pages(self, tenant_id: str, limit: int) -> list[dict[str, Any]]:
        """Top (page_path, page_title) pairs."""
        ...

    def session_events(self, tenant_id: str, session_id: str) -> list[dict[str, Any]]:
        """Every row of a session, oldest first."""
        ...

    def recent_views(self, tenant_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        """Newest rows first."""
        ...

    def count(self, tenant_id: str) -> int:
        """Total rows for a tenant."""
        ...

    def ping(self) -> None:
        """Round-trip to storage; raises StorageError on failure."""
        ...
