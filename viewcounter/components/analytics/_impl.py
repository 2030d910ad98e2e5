"""
EventStore - the analytics write path.

Masks the client address, computes pageview uniqueness within a trailing
window and appends the event.

Key behaviors:
- Address masked before any storage access; only the masked form reaches the repo
- Pageviews with a positive window: one lookup for the same masked address
  inside the window; a hit marks the new row non-unique
- Every other event (or window 0) is unique and skips the lookup
- Every call appends a row; dedup only annotates it
- Timestamp assigned here from the time port, never taken from the caller
- Lookup and insert are two independent storage operations (no transaction);
  concurrent pageviews from one address may both be marked unique
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from viewcounter.core.entities import (
    MAX_BROWSER,
    MAX_EVENT_TYPE,
    MAX_OS,
    MAX_PAGE_PATH,
    MAX_PAGE_TITLE,
    MAX_REFERRER,
    MAX_REFERRER_DOMAIN,
    MAX_SESSION_ID,
    MAX_VERSION,
    PAGEVIEW,
    DeviceSize,
    DeviceType,
    SourceType,
    truncate,
)
from viewcounter.core.errors import NotInitializedError, ValidationError
from viewcounter.core.ports.clock import TimePort
from viewcounter.core.services.privacy import ensure_masked, mask_ip

from .models import EventAttributes, EventRow, RegisterResult
from .ports import EventRepoPort

logger = logging.getLogger(__name__)


# --- Configuration ---


@dataclass(frozen=True)
class EventStoreConfig:
    """Write path configuration."""

    # Used when the caller leaves dedup_window_hours unset
    default_window_hours: int = 24


DEFAULT_CONFIG = EventStoreConfig()


# --- Default Implementations ---


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


class InMemoryEventRepo:
    """In-memory event repository for testing/dev."""

    def __init__(self, tenant_ids: set[str] | frozenset[str], ready: bool = True) -> None:
        self._allowed = frozenset(tenant_ids)
        self._rows: dict[str, list[tuple[int, EventRow]]] = {}
        if ready:
            for tenant_id in self._allowed:
                self._rows[tenant_id] = []

    def ensure_tenant(self, tenant_id: str) -> None:
        if tenant_id not in self._allowed:
            raise ValidationError(
                f"Unknown tenant '{tenant_id}'", field_name="tenant_id", code="invalid_tenant"
            )
        if tenant_id not in self._rows:
            raise NotInitializedError(tenant_id)

    def initialize(self, tenant_id: str) -> None:
        """Mark a tenant as provisioned."""
        self._rows.setdefault(tenant_id, [])

    def has_recent_pageview(self, tenant_id: str, masked_ip: str, since: datetime) -> bool:
        self.ensure_tenant(tenant_id)
        return any(
            row.masked_ip == masked_ip and row.event_type == PAGEVIEW and row.timestamp >= since
            for _, row in self._rows[tenant_id]
        )

    def insert(self, tenant_id: str, row: EventRow) -> int:
        self.ensure_tenant(tenant_id)
        ensure_masked(row.masked_ip)
        rows = self._rows[tenant_id]
        insert_id = len(rows) + 1
        rows.append((insert_id, row))
        return insert_id

    def rows(self, tenant_id: str) -> list[tuple[int, EventRow]]:
        """Stored (id, row) pairs in insertion order."""
        self.ensure_tenant(tenant_id)
        return list(self._rows[tenant_id])

    def get_all(self, tenant_id: str) -> list[EventRow]:
        """Get all stored rows (for testing)."""
        return [row for _, row in self._rows.get(tenant_id, [])]


# --- Normalization ---


def _coerce_enum(enum_cls: type, value: object, field_name: str) -> str | None:
    if value is None or value == "":
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"'{value}' is not a valid {field_name} (expected one of: {allowed})",
            field_name=field_name,
        ) from None


def normalize_country(country: str | None) -> str | None:
    """Two-letter upper-case country code, or None."""
    if not country:
        return None
    code = country.strip().upper()
    if len(code) != 2 or not code.isalpha():
        return None
    return code


# --- Event Store ---


class EventStore:
    """
    Analytics event store.

    Shares its repository (and through it the connection pool) with the
    aggregation engine.
    """

    def __init__(
        self,
        repo: EventRepoPort,
        time_port: TimePort | None = None,
        config: EventStoreConfig | None = None,
    ) -> None:
        """Initialize store."""
        self._repo = repo
        self._time = time_port or DefaultTimePort()
        self._config = config or DEFAULT_CONFIG

    def _window_hours(self, attrs: EventAttributes) -> int:
        if attrs.dedup_window_hours is None:
            return self._config.default_window_hours
        return max(attrs.dedup_window_hours, 0)

    def _build_row(
        self,
        attrs: EventAttributes,
        masked_ip: str,
        event_type: str,
        now: datetime,
    ) -> EventRow:
        device_size = _coerce_enum(DeviceSize, attrs.device_size, "device_size")
        if device_size is None:
            raise ValidationError("device_size is required", field_name="device_size")

        return EventRow(
            masked_ip=masked_ip,
            timestamp=now,
            device_size=device_size,
            is_unique=True,
            event_type=event_type,
            country=normalize_country(attrs.country),
            page_path=truncate(attrs.page_path, MAX_PAGE_PATH),
            page_title=truncate(attrs.page_title, MAX_PAGE_TITLE),
            referrer=truncate(attrs.referrer, MAX_REFERRER),
            referrer_domain=truncate(attrs.referrer_domain, MAX_REFERRER_DOMAIN),
            source_type=_coerce_enum(SourceType, attrs.source_type, "source_type"),
            browser=truncate(attrs.browser, MAX_BROWSER),
            browser_version=truncate(attrs.browser_version, MAX_VERSION),
            os=truncate(attrs.os, MAX_OS),
            os_version=truncate(attrs.os_version, MAX_VERSION),
            device_type=_coerce_enum(DeviceType, attrs.device_type, "device_type"),
            session_id=truncate(attrs.session_id, MAX_SESSION_ID),
            event_data=attrs.event_data,
        )

    def register_event(self, tenant_id: str, attrs: EventAttributes) -> RegisterResult:
        """
        Register a view or custom event.

        Raises:
            ValidationError: tenant not on the allow-list or bad enum value.
            NotInitializedError: tenant relation not provisioned.
            StorageError: lookup or insert failed.
        """
        try:
            self._repo.ensure_tenant(tenant_id)
        except NotInitializedError:
            logger.error("register_event called before tenant '%s' was initialized", tenant_id)
            raise

        masked_ip = mask_ip(attrs.ip) or ""
        event_type = truncate(attrs.event_type, MAX_EVENT_TYPE) or PAGEVIEW
        window_hours = self._window_hours(attrs)
        now = self._time.now_utc()
        row = self._build_row(attrs, masked_ip, event_type, now)

        is_unique = True
        if event_type == PAGEVIEW and window_hours > 0:
            since = now - timedelta(hours=window_hours)
            is_unique = not self._repo.has_recent_pageview(tenant_id, masked_ip, since)
            row = replace(row, is_unique=is_unique)

        insert_id = self._repo.insert(tenant_id, row)

        logger.debug(
            "Registered %s for %s from %s (id=%s, unique=%s)",
            event_type,
            tenant_id,
            masked_ip,
            insert_id,
            is_unique,
        )
        return RegisterResult(insert_id=insert_id, is_unique=is_unique)

    def register_view(
        self,
        tenant_id: str,
        ip: str,
        country: str | None,
        device_size: DeviceSize | str,
        window_hours: int | None = None,
    ) -> RegisterResult:
        """Pageview-only wrapper kept for legacy callers."""
        return self.register_event(
            tenant_id,
            EventAttributes(
                ip=ip,
                country=country,
                device_size=device_size,
                dedup_window_hours=window_hours,
            ),
        )


# --- Factory ---


def create_event_store(
    repo: EventRepoPort,
    time_port: TimePort | None = None,
    config: EventStoreConfig | None = None,
) -> EventStore:
    """Create an EventStore."""
    return EventStore(repo=repo, time_port=time_port, config=config)
