"""
Tests for the tracking routes (/registerView, /event).
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from viewcounter.api.main import create_app
from viewcounter.config import (
    AllowedConfig,
    AppConfig,
    DatabaseConfig,
    RateLimitConfig,
    ServerConfig,
)

CLIENT = {"X-Forwarded-For": "203.0.113.7"}
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)


def _rows(client: TestClient, table: str = "example_app") -> list[dict]:
    with client.app.state.ctx.pool.connection() as conn:
        return conn.execute(f'SELECT * FROM "{table}" ORDER BY id').fetchall()


# --- Register View ---


class TestRegisterView:
    """GET /registerView"""

    def test_first_view_unique(self, client) -> None:
        resp = client.get(
            "/registerView", params={"appId": "example_app", "deviceSize": "large"}, headers=CLIENT
        )
        assert resp.status_code == 200
        assert resp.json() == {"message": "Success!", "duplicate": False, "isUnique": True}

    def test_repeat_view_duplicate(self, client) -> None:
        params = {"appId": "example_app", "deviceSize": "large"}
        client.get("/registerView", params=params, headers=CLIENT)
        resp = client.get("/registerView", params=params, headers=CLIENT)

        assert resp.status_code == 200
        assert resp.json()["duplicate"] is True
        assert resp.json()["isUnique"] is False
        assert len(_rows(client)) == 2

    def test_stores_masked_address_and_attributes(self, client) -> None:
        client.get(
            "/registerView",
            params={
                "appId": "example_app",
                "deviceSize": "small",
                "page": "/pricing",
                "title": "Pricing",
                "referrer": "https://www.google.com/search?q=x",
                "sessionId": "abc",
            },
            headers={**CLIENT, "User-Agent": IPHONE_UA, "CF-IPCountry": "nz"},
        )
        row = _rows(client)[0]
        assert row["masked_ip"] == "203.0.113.0"
        assert row["country"] == "NZ"
        assert row["page_path"] == "/pricing"
        assert row["source_type"] == "search"
        assert row["referrer_domain"] == "www.google.com"
        assert row["browser"] == "Mobile Safari"
        assert row["device_type"] == "mobile"
        assert row["session_id"] == "abc"

    def test_real_ip_header(self, client) -> None:
        client.get(
            "/registerView",
            params={"appId": "example_app", "deviceSize": "large"},
            headers={"X-Real-IP": "198.51.100.23"},
        )
        assert _rows(client)[0]["masked_ip"] == "198.51.100.0"

    def test_unknown_app(self, client) -> None:
        resp = client.get(
            "/registerView", params={"appId": "nope", "deviceSize": "large"}, headers=CLIENT
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["message"] == "Validation failed"
        assert body["errors"][0]["field"] == "appId"

    def test_missing_app(self, client) -> None:
        resp = client.get("/registerView", params={"deviceSize": "large"}, headers=CLIENT)
        assert resp.status_code == 422

    @pytest.mark.parametrize("size", ["", "huge"])
    def test_bad_device_size(self, client, size: str) -> None:
        resp = client.get(
            "/registerView", params={"appId": "example_app", "deviceSize": size}, headers=CLIENT
        )
        assert resp.status_code == 422
        assert resp.json()["errors"][0]["field"] == "deviceSize"
        assert _rows(client) == []


# --- Custom Events ---


class TestTrackEvent:
    """POST /event"""

    def test_tracks_event(self, client) -> None:
        resp = client.post(
            "/event",
            json={
                "appId": "example_app",
                "eventType": "signup",
                "deviceSize": "medium",
                "eventData": {"plan": "pro"},
            },
            headers=CLIENT,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Event tracked successfully"
        assert body["insertId"] == 1
        assert body["isUnique"] is True

    def test_events_never_duplicate(self, client) -> None:
        payload = {"appId": "example_app", "eventType": "click", "deviceSize": "large"}
        client.post("/event", json=payload, headers=CLIENT)
        assert client.post("/event", json=payload, headers=CLIENT).json()["isUnique"] is True

    def test_device_size_defaults_from_user_agent(self, client) -> None:
        client.post(
            "/event",
            json={"appId": "example_app", "eventType": "click"},
            headers={**CLIENT, "User-Agent": IPHONE_UA},
        )
        assert _rows(client)[0]["device_size"] == "small"

    def test_missing_event_type(self, client) -> None:
        resp = client.post("/event", json={"appId": "example_app"}, headers=CLIENT)
        assert resp.status_code == 422
        assert resp.json()["message"] == "Validation failed"

    def test_event_type_too_long(self, client) -> None:
        resp = client.post(
            "/event", json={"appId": "example_app", "eventType": "x" * 51}, headers=CLIENT
        )
        assert resp.status_code == 422

    def test_unknown_app(self, client) -> None:
        resp = client.post("/event", json={"appId": "ghost", "eventType": "x"}, headers=CLIENT)
        assert resp.status_code == 422
        assert resp.json()["errors"][0]["code"] == "invalid_tenant"


# --- Rate Limiting ---


@pytest.fixture
def limited_client(db_path, clock) -> Iterator[TestClient]:
    config = AppConfig(
        database=DatabaseConfig(path=db_path),
        allowed=AllowedConfig(app_ids=["example_app"]),
        server=ServerConfig(rate_limit=RateLimitConfig(window_seconds=60, max_requests=2)),
    )
    with TestClient(create_app(config, time_port=clock)) as c:
        yield c


class TestRateLimit:
    def test_limit_exceeded(self, limited_client) -> None:
        params = {"appId": "example_app", "deviceSize": "large"}
        for _ in range(2):
            assert limited_client.get("/registerView", params=params, headers=CLIENT).is_success

        resp = limited_client.get("/registerView", params=params, headers=CLIENT)
        assert resp.status_code == 429
        assert resp.json()["retryAfter"] == 60
        assert len(_rows(limited_client)) == 2

    def test_window_slides(self, limited_client, clock) -> None:
        params = {"appId": "example_app", "deviceSize": "large"}
        limited_client.get("/registerView", params=params, headers=CLIENT)
        limited_client.get("/registerView", params=params, headers=CLIENT)
        clock.advance(seconds=61)
        assert limited_client.get("/registerView", params=params, headers=CLIENT).is_success

    def test_clients_limited_separately(self, limited_client) -> None:
        params = {"appId": "example_app", "deviceSize": "large"}
        limited_client.get("/registerView", params=params, headers=CLIENT)
        limited_client.get("/registerView", params=params, headers=CLIENT)

        other = {"X-Forwarded-For": "198.51.100.9"}
        assert limited_client.get("/registerView", params=params, headers=other).is_success
