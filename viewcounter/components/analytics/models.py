"""
Analytics component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from viewcounter.core.entities import (
    PAGEVIEW,
    DeviceSize,
    DeviceType,
    SourceType,
    TrendPeriod,
)

# --- Validation Error ---


@dataclass(frozen=True)
class AnalyticsValidationError:
    """Analytics error result entry."""

    code: str
    message: str
    field_name: str | None = None


# --- Write Models ---


@dataclass(frozen=True)
class EventAttributes:
    """
    Validated write input from the routing layer.

    There is no timestamp field: the store assigns it at insert time.
    """

    ip: str
    device_size: DeviceSize | str
    country: str | None = None
    page_path: str | None = None
    page_title: str | None = None
    referrer: str | None = None
    referrer_domain: str | None = None
    source_type: SourceType | str | None = None
    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    device_type: DeviceType | str | None = None
    session_id: str | None = None
    event_type: str = PAGEVIEW
    event_data: dict[str, Any] | None = None
    dedup_window_hours: int | None = None


@dataclass(frozen=True)
class EventRow:
    """Row handed to the repository. Holds the masked address only."""

    masked_ip: str
    timestamp: datetime
    device_size: str
    is_unique: bool
    event_type: str = PAGEVIEW
    country: str | None = None
    page_path: str | None = None
    page_title: str | None = None
    referrer: str | None = None
    referrer_domain: str | None = None
    source_type: str | None = None
    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    device_type: str | None = None
    session_id: str | None = None
    event_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class RegisterResult:
    """Outcome of one register_event call."""

    insert_id: int
    is_unique: bool

    @property
    def duplicate(self) -> bool:
        return not self.is_unique


# --- Read Models ---


@dataclass(frozen=True)
class CountItem:
    """Single (value, count) frequency entry."""

    value: str | None
    count: int


@dataclass(frozen=True)
class StatsResult:
    """Tenant summary."""

    total_views: int
    unique_views: int
    unique_visitors: int
    last_24_hours: int
    by_country: tuple[CountItem, ...] = ()
    by_device: tuple[CountItem, ...] = ()


@dataclass(frozen=True)
class TrendPoint:
    """One non-empty calendar bucket."""

    period: str
    count: int


@dataclass(frozen=True)
class TrendsResult:
    period: TrendPeriod
    days: int
    points: tuple[TrendPoint, ...] = ()


@dataclass(frozen=True)
class ReferrerStats:
    by_source: tuple[CountItem, ...] = ()
    by_domain: tuple[CountItem, ...] = ()


@dataclass(frozen=True)
class BrowserStats:
    by_browser: tuple[CountItem, ...] = ()
    by_os: tuple[CountItem, ...] = ()
    by_device_type: tuple[CountItem, ...] = ()


@dataclass(frozen=True)
class PageStat:
    page_path: str
    page_title: str | None
    views: int


@dataclass(frozen=True)
class SessionEvent:
    """Stored event as exposed to readers. Only the masked address is present."""

    id: int
    masked_ip: str
    timestamp: datetime
    device_size: str
    event_type: str
    is_unique: bool
    country: str | None = None
    page_path: str | None = None
    page_title: str | None = None
    referrer: str | None = None
    referrer_domain: str | None = None
    source_type: str | None = None
    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    device_type: str | None = None
    session_id: str | None = None
    event_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class ViewRecord:
    masked_ip: str
    country: str | None
    timestamp: datetime
    device_size: str


@dataclass(frozen=True)
class ViewsPage:
    views: tuple[ViewRecord, ...]
    total: int
    limit: int
    offset: int


# --- Component Inputs ---


@dataclass(frozen=True)
class RegisterEventInput:
    tenant_id: str
    attrs: EventAttributes


@dataclass(frozen=True)
class QueryStatsInput:
    tenant_id: str


@dataclass(frozen=True)
class QueryTrendsInput:
    tenant_id: str
    period: TrendPeriod | str = TrendPeriod.DAILY
    days: int = 30


@dataclass(frozen=True)
class QueryReferrersInput:
    tenant_id: str
    limit: int = 20


@dataclass(frozen=True)
class QueryBrowsersInput:
    tenant_id: str


@dataclass(frozen=True)
class QueryPagesInput:
    tenant_id: str
    limit: int = 20


@dataclass(frozen=True)
class QuerySessionInput:
    tenant_id: str
    session_id: str


@dataclass(frozen=True)
class QueryViewsInput:
    tenant_id: str
    limit: int = 50
    offset: int = 0


# --- Component Outputs ---


@dataclass(frozen=True)
class RegisterEventOutput:
    result: RegisterResult | None
    errors: list[AnalyticsValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class QueryOutput:
    """Output for every read operation; value holds the typed result."""

    value: Any
    errors: list[AnalyticsValidationError] = field(default_factory=list)
    success: bool = True
