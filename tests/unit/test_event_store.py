"""
Tests for EventStore (write path) against the in-memory repository.
"""

from __future__ import annotations

import pytest

from viewcounter.components.analytics import (
    EventAttributes,
    EventStore,
    EventStoreConfig,
    InMemoryEventRepo,
    create_event_store,
)
from viewcounter.core.entities import DeviceSize, SourceType
from viewcounter.core.errors import NotInitializedError, ValidationError

# --- Fixtures ---


@pytest.fixture
def repo() -> InMemoryEventRepo:
    return InMemoryEventRepo({"example_app", "other_app"})


@pytest.fixture
def store(repo: InMemoryEventRepo, clock) -> EventStore:
    return create_event_store(repo, time_port=clock)


def _attrs(ip: str = "203.0.113.7", **kwargs) -> EventAttributes:
    kwargs.setdefault("device_size", DeviceSize.LARGE)
    return EventAttributes(ip=ip, **kwargs)


# --- Masking ---


class TestMasking:
    """Only masked addresses reach the repository."""

    def test_ipv4_masked_before_storage(self, store, repo) -> None:
        store.register_event("example_app", _attrs("203.0.113.7"))
        assert repo.get_all("example_app")[0].masked_ip == "203.0.113.0"

    def test_ipv6_masked_before_storage(self, store, repo) -> None:
        store.register_event("example_app", _attrs("2001:db8::1"))
        assert repo.get_all("example_app")[0].masked_ip == "2001:0db8:0000:0000:0:0:0:0"


# --- Deduplication ---


class TestDedup:
    """Uniqueness within the trailing window."""

    def test_first_pageview_unique(self, store) -> None:
        result = store.register_event("example_app", _attrs())
        assert result.is_unique
        assert not result.duplicate
        assert result.insert_id == 1

    def test_repeat_within_window_not_unique(self, store, clock, repo) -> None:
        store.register_event("example_app", _attrs())
        clock.advance(hours=2)
        result = store.register_event("example_app", _attrs())

        assert not result.is_unique
        assert result.duplicate
        assert len(repo.get_all("example_app")) == 2

    def test_same_subnet_counts_as_same_visitor(self, store) -> None:
        store.register_event("example_app", _attrs("203.0.113.7"))
        assert not store.register_event("example_app", _attrs("203.0.113.99")).is_unique

    def test_unique_again_after_window(self, store, clock) -> None:
        store.register_event("example_app", _attrs())
        clock.advance(hours=24, seconds=1)
        assert store.register_event("example_app", _attrs()).is_unique

    def test_zero_window_always_unique(self, store) -> None:
        store.register_event("example_app", _attrs(dedup_window_hours=0))
        assert store.register_event("example_app", _attrs(dedup_window_hours=0)).is_unique

    def test_default_window_from_config(self, repo, clock) -> None:
        store = EventStore(repo, time_port=clock, config=EventStoreConfig(default_window_hours=1))
        store.register_event("example_app", _attrs())
        clock.advance(hours=2)
        assert store.register_event("example_app", _attrs()).is_unique

    def test_custom_events_never_deduplicated(self, store) -> None:
        store.register_event("example_app", _attrs())
        result = store.register_event("example_app", _attrs(event_type="click"))
        assert result.is_unique

    def test_custom_event_does_not_count_as_pageview(self, store) -> None:
        store.register_event("example_app", _attrs(event_type="click"))
        assert store.register_event("example_app", _attrs()).is_unique

    def test_tenants_isolated(self, store) -> None:
        store.register_event("example_app", _attrs())
        assert store.register_event("other_app", _attrs()).is_unique


# --- Row Contents ---


class TestRowContents:
    """Normalization of the stored row."""

    def test_timestamp_from_clock(self, store, repo, clock) -> None:
        store.register_event("example_app", _attrs())
        assert repo.get_all("example_app")[0].timestamp == clock.now_utc()

    def test_fields_truncated(self, store, repo) -> None:
        store.register_event(
            "example_app",
            _attrs(page_path="/" + "p" * 600, page_title="t" * 300, session_id="s" * 100),
        )
        row = repo.get_all("example_app")[0]
        assert len(row.page_path) == 500
        assert len(row.page_title) == 200
        assert len(row.session_id) == 64

    def test_enums_stored_as_values(self, store, repo) -> None:
        store.register_event(
            "example_app", _attrs(source_type=SourceType.SEARCH, device_type="mobile")
        )
        row = repo.get_all("example_app")[0]
        assert row.device_size == "large"
        assert row.source_type == "search"
        assert row.device_type == "mobile"

    def test_country_normalized(self, store, repo) -> None:
        store.register_event("example_app", _attrs(country="de"))
        store.register_event("example_app", _attrs(country="XX1"))
        rows = repo.get_all("example_app")
        assert [r.country for r in rows] == ["DE", None]

    def test_register_view_wrapper(self, store, repo) -> None:
        result = store.register_view("example_app", "198.51.100.4", "US", "small")
        row = repo.get_all("example_app")[0]
        assert result.is_unique
        assert row.event_type == "pageview"
        assert row.country == "US"
        assert row.device_size == "small"


# --- Errors ---


class TestErrors:
    def test_unknown_tenant(self, store) -> None:
        with pytest.raises(ValidationError) as exc:
            store.register_event("nope", _attrs())
        assert exc.value.code == "invalid_tenant"

    def test_not_initialized(self, clock) -> None:
        repo = InMemoryEventRepo({"example_app"}, ready=False)
        store = EventStore(repo, time_port=clock)
        with pytest.raises(NotInitializedError):
            store.register_event("example_app", _attrs())

        repo.initialize("example_app")
        assert store.register_event("example_app", _attrs()).insert_id == 1

    def test_invalid_device_size(self, store, repo) -> None:
        with pytest.raises(ValidationError) as exc:
            store.register_event("example_app", _attrs(device_size="huge"))
        assert exc.value.field_name == "device_size"
        assert repo.get_all("example_app") == []

    def test_invalid_source_type(self, store) -> None:
        with pytest.raises(ValidationError):
            store.register_event("example_app", _attrs(source_type="telepathy"))
