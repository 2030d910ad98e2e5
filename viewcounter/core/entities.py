"""
Core entity types shared by the write and read paths.
"""

from __future__ import annotations

from enum import Enum

PAGEVIEW = "pageview"


class DeviceSize(str, Enum):
    """Coarse screen-size class supplied by the tracker."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class DeviceType(str, Enum):
    """Normalized client hardware category."""

    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    WEARABLE = "wearable"
    TV = "tv"
    CONSOLE = "console"


class SourceType(str, Enum):
    """Referral origin classification."""

    DIRECT = "direct"
    SEARCH = "search"
    SOCIAL = "social"
    EMAIL = "email"
    CAMPAIGN = "campaign"
    REFERRAL = "referral"
    UNKNOWN = "unknown"


class TrendPeriod(str, Enum):
    """Calendar bucket size for trend queries."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class Dimension(str, Enum):
    """Groupable event columns. Values are the persisted column names."""

    COUNTRY = "country"
    DEVICE_SIZE = "device_size"
    SOURCE_TYPE = "source_type"
    REFERRER_DOMAIN = "referrer_domain"
    BROWSER = "browser"
    OS = "os"
    DEVICE_TYPE = "device_type"


# Storage column limits
MAX_MASKED_IP = 45
MAX_PAGE_PATH = 500
MAX_PAGE_TITLE = 200
MAX_REFERRER = 500
MAX_REFERRER_DOMAIN = 200
MAX_BROWSER = 50
MAX_VERSION = 20
MAX_OS = 50
MAX_SESSION_ID = 64
MAX_EVENT_TYPE = 50


def truncate(value: str | None, limit: int) -> str | None:
    """Truncate an optional string to a column limit; empty strings become None."""
    if not value:
        return None
    return value[:limit]
