"""
End-to-end flow: track over HTTP, read back through the analytics routes and
inspect what actually landed in the database.
"""

from __future__ import annotations

import pytest

RAW_IP = "203.0.113.7"
HEADERS = {"X-Forwarded-For": RAW_IP}


def _stored_values(client) -> list[str]:
    with client.app.state.ctx.pool.connection() as conn:
        rows = conn.execute('SELECT * FROM "example_app"').fetchall()
    return [str(v) for row in rows for v in row.values()]


class TestVisitorJourney:
    """Repeated visits from a single client."""

    def test_three_views_one_visitor(self, client, clock) -> None:
        params = {"appId": "example_app", "deviceSize": "large", "page": "/"}
        results = []
        for _ in range(3):
            results.append(client.get("/registerView", params=params, headers=HEADERS).json())
            clock.advance(minutes=10)

        assert [r["isUnique"] for r in results] == [True, False, False]

        stats = client.get("/stats/example_app", headers=HEADERS).json()
        assert stats["totalViews"] == 3
        assert stats["uniqueViews"] == 1
        assert stats["uniqueVisitors"] == 1
        assert stats["last24Hours"] == 3

        views = client.get("/views/example_app", headers=HEADERS).json()
        assert {v["ip"] for v in views["views"]} == {"203.0.113.0"}

    def test_visitor_unique_again_next_day(self, client, clock) -> None:
        params = {"appId": "example_app", "deviceSize": "large"}
        client.get("/registerView", params=params, headers=HEADERS)
        clock.advance(hours=25)
        assert client.get("/registerView", params=params, headers=HEADERS).json()["isUnique"]

        stats = client.get("/stats/example_app", headers=HEADERS).json()
        assert stats["uniqueViews"] == 2
        assert stats["last24Hours"] == 1

    def test_raw_address_never_stored(self, client) -> None:
        client.get(
            "/registerView", params={"appId": "example_app", "deviceSize": "small"}, headers=HEADERS
        )
        client.post(
            "/event",
            json={"appId": "example_app", "eventType": "click", "eventData": {"n": 1}},
            headers=HEADERS,
        )
        values = _stored_values(client)
        assert values
        assert all(RAW_IP not in v for v in values)

    def test_tenants_do_not_mix(self, client) -> None:
        client.get(
            "/registerView", params={"appId": "other_app", "deviceSize": "large"}, headers=HEADERS
        )
        assert client.get("/stats/example_app", headers=HEADERS).json()["totalViews"] == 0
        assert client.get("/stats/other_app", headers=HEADERS).json()["totalViews"] == 1

    @pytest.mark.parametrize(
        ("forwarded", "raw", "masked"),
        [
            ("203.0.113.7:51234", "203.0.113.7", "203.0.113.0"),
            ("[2001:db8::7]:443", "2001:db8::7", "2001:0db8:0000:0000:0:0:0:0"),
            ("203.0.113.7, 10.0.0.1", "203.0.113.7", "203.0.113.0"),
        ],
    )
    def test_proxy_address_with_port_is_masked(
        self, client, forwarded: str, raw: str, masked: str
    ) -> None:
        headers = {"X-Forwarded-For": forwarded}
        params = {"appId": "example_app", "deviceSize": "large"}
        assert client.get("/registerView", params=params, headers=headers).status_code == 200
        assert client.get("/registerView", params=params, headers=headers).json()["duplicate"]

        with client.app.state.ctx.pool.connection() as conn:
            stored = {r["masked_ip"] for r in conn.execute('SELECT masked_ip FROM "example_app"')}
        assert stored == {masked}
        assert all(raw not in v and forwarded not in v for v in _stored_values(client))
