"""
AggregationEngine - the analytics read path.

Tenant-scoped grouped queries over the stored event relation.

Key behaviors:
- Summary counts (total, unique, distinct visitors, last 24h) come from one scan
- Top-N frequency breakdowns per dimension (country, device size, browser, ...)
- Trends bucketed by hour, day or ISO week, ascending, non-empty buckets only
- Session details and the recent-views listing expose only the masked address
- Every operation is read-only
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any

from viewcounter.core.entities import Dimension, TrendPeriod
from viewcounter.core.errors import NotInitializedError, StorageError, ValidationError
from viewcounter.core.ports.clock import TimePort

from ._impl import DefaultTimePort, InMemoryEventRepo
from .models import (
    BrowserStats,
    CountItem,
    EventRow,
    PageStat,
    ReferrerStats,
    SessionEvent,
    StatsResult,
    TrendPoint,
    TrendsResult,
    ViewRecord,
    ViewsPage,
)
from .ports import AnalyticsRepoPort

logger = logging.getLogger(__name__)


# --- Configuration ---


@dataclass(frozen=True)
class AggregateConfig:
    """Read path configuration."""

    top_n: int = 10
    recent_window_hours: int = 24
    max_trend_days: int = 365
    max_list_limit: int = 100


DEFAULT_CONFIG = AggregateConfig()


# --- Default Implementations ---


def bucket_key(timestamp: datetime, period: TrendPeriod) -> str:
    """Raw bucket key as produced by the storage query."""
    if period == TrendPeriod.HOURLY:
        return timestamp.strftime("%Y-%m-%d %H:00")
    if period == TrendPeriod.WEEKLY:
        monday = timestamp.date() - timedelta(days=timestamp.weekday())
        return monday.isoformat()
    return timestamp.date().isoformat()


class InMemoryAnalyticsRepo:
    """In-memory analytics repository over an InMemoryEventRepo (testing/dev)."""

    def __init__(self, events: InMemoryEventRepo) -> None:
        self._events = events

    def _rows(self, tenant_id: str) -> list[tuple[int, EventRow]]:
        return self._events.rows(tenant_id)

    def ensure_tenant(self, tenant_id: str) -> None:
        self._events.ensure_tenant(tenant_id)

    def summary(self, tenant_id: str, recent_since: datetime) -> dict[str, int]:
        rows = [row for _, row in self._rows(tenant_id)]
        return {
            "total_views": len(rows),
            "unique_views": sum(1 for r in rows if r.is_unique),
            "unique_visitors": len({r.masked_ip for r in rows}),
            "recent": sum(1 for r in rows if r.timestamp >= recent_since),
        }

    def top_values(
        self,
        tenant_id: str,
        dimension: Dimension,
        limit: int | None = None,
    ) -> list[tuple[str, int]]:
        counts = Counter(
            getattr(row, dimension.value)
            for _, row in self._rows(tenant_id)
            if getattr(row, dimension.value) is not None
        )
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked if limit is None else ranked[:limit]

    def trend_buckets(
        self,
        tenant_id: str,
        period: TrendPeriod,
        since: datetime,
    ) -> list[tuple[str, int]]:
        counts = Counter(
            bucket_key(row.timestamp, period)
            for _, row in self._rows(tenant_id)
            if row.timestamp >= since
        )
        return sorted(counts.items())

    def top_pages(self, tenant_id: str, limit: int) -> list[dict[str, Any]]:
        counts = Counter(
            (row.page_path, row.page_title)
            for _, row in self._rows(tenant_id)
            if row.page_path is not None
        )
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0][0], item[0][1] or ""))
        return [
            {"page_path": path, "page_title": title, "views": n}
            for (path, title), n in ranked[:limit]
        ]

    def session_events(self, tenant_id: str, session_id: str) -> list[dict[str, Any]]:
        matched = [
            (row.timestamp, insert_id, row)
            for insert_id, row in self._rows(tenant_id)
            if row.session_id == session_id
        ]
        matched.sort(key=lambda item: (item[0], item[1]))
        return [{"id": insert_id, **asdict(row)} for _, insert_id, row in matched]

    def recent_views(self, tenant_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        ordered = sorted(self._rows(tenant_id), key=lambda item: (item[1].timestamp, item[0]))
        ordered.reverse()
        return [
            {
                "masked_ip": row.masked_ip,
                "country": row.country,
                "timestamp": row.timestamp,
                "device_size": row.device_size,
            }
            for _, row in ordered[offset : offset + limit]
        ]

    def count(self, tenant_id: str) -> int:
        return len(self._rows(tenant_id))

    def ping(self) -> None:
        return None


# --- Helpers ---


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse a stored timestamp."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def iso_week_key(week_start: str) -> str:
    """Format the Monday of a week as an ISO week key (YYYY-Www)."""
    year, week, _ = date.fromisoformat(week_start).isocalendar()
    return f"{year}-W{week:02d}"


def _count_items(rows: list[tuple[str, int]]) -> tuple[CountItem, ...]:
    return tuple(CountItem(value=value, count=count) for value, count in rows)


def _decode_event_data(raw: Any) -> dict[str, Any] | None:
    if raw is None or isinstance(raw, dict):
        return raw
    return json.loads(raw)


def _session_event(row: dict[str, Any]) -> SessionEvent:
    return SessionEvent(
        id=row["id"],
        masked_ip=row["masked_ip"],
        timestamp=parse_timestamp(row["timestamp"]),
        device_size=row["device_size"],
        event_type=row["event_type"],
        is_unique=bool(row["is_unique"]),
        country=row.get("country"),
        page_path=row.get("page_path"),
        page_title=row.get("page_title"),
        referrer=row.get("referrer"),
        referrer_domain=row.get("referrer_domain"),
        source_type=row.get("source_type"),
        browser=row.get("browser"),
        browser_version=row.get("browser_version"),
        os=row.get("os"),
        os_version=row.get("os_version"),
        device_type=row.get("device_type"),
        session_id=row.get("session_id"),
        event_data=_decode_event_data(row.get("event_data")),
    )


# --- Aggregation Engine ---


class AggregationEngine:
    """
    Analytics aggregation engine.

    Shares the connection pool with the event store through its repository.
    """

    def __init__(
        self,
        repo: AnalyticsRepoPort,
        time_port: TimePort | None = None,
        config: AggregateConfig | None = None,
    ) -> None:
        """Initialize engine."""
        self._repo = repo
        self._time = time_port or DefaultTimePort()
        self._config = config or DEFAULT_CONFIG

    def _ensure_tenant(self, tenant_id: str) -> None:
        try:
            self._repo.ensure_tenant(tenant_id)
        except NotInitializedError:
            logger.error("Analytics query for '%s' before initialization", tenant_id)
            raise

    def _check_limit(self, limit: int, field_name: str = "limit") -> None:
        if limit < 1 or limit > self._config.max_list_limit:
            raise ValidationError(
                f"{field_name} must be between 1 and {self._config.max_list_limit}",
                field_name=field_name,
            )

    def get_stats(self, tenant_id: str) -> StatsResult:
        """Summary row plus top countries and device sizes."""
        self._ensure_tenant(tenant_id)
        since = self._time.now_utc() - timedelta(hours=self._config.recent_window_hours)

        totals = self._repo.summary(tenant_id, since)
        by_country = self._repo.top_values(tenant_id, Dimension.COUNTRY, self._config.top_n)
        by_device = self._repo.top_values(tenant_id, Dimension.DEVICE_SIZE, self._config.top_n)

        return StatsResult(
            total_views=totals["total_views"],
            unique_views=totals["unique_views"],
            unique_visitors=totals["unique_visitors"],
            last_24_hours=totals["recent"],
            by_country=_count_items(by_country),
            by_device=_count_items(by_device),
        )

    def get_trends(
        self,
        tenant_id: str,
        period: TrendPeriod | str = TrendPeriod.DAILY,
        days: int = 30,
    ) -> TrendsResult:
        """Counts per calendar bucket over the trailing number of days."""
        try:
            period = TrendPeriod(period)
        except ValueError:
            allowed = ", ".join(p.value for p in TrendPeriod)
            raise ValidationError(
                f"period must be one of: {allowed}", field_name="period"
            ) from None

        if days < 1 or days > self._config.max_trend_days:
            raise ValidationError(
                f"days must be between 1 and {self._config.max_trend_days}",
                field_name="days",
            )

        self._ensure_tenant(tenant_id)
        since = self._time.now_utc() - timedelta(days=days)
        buckets = self._repo.trend_buckets(tenant_id, period, since)

        if period == TrendPeriod.WEEKLY:
            points = tuple(TrendPoint(period=iso_week_key(key), count=n) for key, n in buckets)
        else:
            points = tuple(TrendPoint(period=key, count=n) for key, n in buckets)

        return TrendsResult(period=period, days=days, points=points)

    def get_referrer_stats(self, tenant_id: str, limit: int = 20) -> ReferrerStats:
        """Breakdown by source type (all) and referrer domain (top limit)."""
        self._check_limit(limit)
        self._ensure_tenant(tenant_id)

        return ReferrerStats(
            by_source=_count_items(self._repo.top_values(tenant_id, Dimension.SOURCE_TYPE)),
            by_domain=_count_items(
                self._repo.top_values(tenant_id, Dimension.REFERRER_DOMAIN, limit)
            ),
        )

    def get_browser_stats(self, tenant_id: str) -> BrowserStats:
        """Top browsers and operating systems plus every device type."""
        self._ensure_tenant(tenant_id)
        top_n = self._config.top_n

        return BrowserStats(
            by_browser=_count_items(self._repo.top_values(tenant_id, Dimension.BROWSER, top_n)),
            by_os=_count_items(self._repo.top_values(tenant_id, Dimension.OS, top_n)),
            by_device_type=_count_items(self._repo.top_values(tenant_id, Dimension.DEVICE_TYPE)),
        )

    def get_page_stats(self, tenant_id: str, limit: int = 20) -> tuple[PageStat, ...]:
        """Most viewed (page_path, page_title) pairs."""
        self._check_limit(limit)
        self._ensure_tenant(tenant_id)

        return tuple(
            PageStat(page_path=r["page_path"], page_title=r["page_title"], views=r["views"])
            for r in self._repo.top_pages(tenant_id, limit)
        )

    def get_session_details(self, tenant_id: str, session_id: str) -> tuple[SessionEvent, ...]:
        """Every event of one session, oldest first."""
        self._ensure_tenant(tenant_id)
        if not session_id:
            raise ValidationError("session_id is required", field_name="session_id")

        return tuple(_session_event(r) for r in self._repo.session_events(tenant_id, session_id))

    def get_views(self, tenant_id: str, limit: int = 50, offset: int = 0) -> ViewsPage:
        """Paginated recent views plus the tenant's total row count."""
        self._check_limit(limit)
        if offset < 0:
            raise ValidationError("offset must be a non-negative integer", field_name="offset")
        self._ensure_tenant(tenant_id)

        rows = self._repo.recent_views(tenant_id, limit, offset)
        views = tuple(
            ViewRecord(
                masked_ip=r["masked_ip"],
                country=r["country"],
                timestamp=parse_timestamp(r["timestamp"]),
                device_size=r["device_size"],
            )
            for r in rows
        )
        return ViewsPage(views=views, total=self._repo.count(tenant_id), limit=limit, offset=offset)

    def health_check(self) -> dict[str, Any]:
        """Round-trip to storage."""
        try:
            self._repo.ping()
        except StorageError as e:
            return {"healthy": False, "error": str(e)}
        return {"healthy": True}


# --- Factory ---


def create_aggregation_engine(
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> AggregationEngine:
    """Create an AggregationEngine."""
    return AggregationEngine(repo=repo, time_port=time_port, config=config)
