from __future__ import annotations

from datetime import date, timedelta

import apistats.main as main_module
from apistats.reporter import StatsReporter
from apistats.store import StoreError

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


class BrokenStore:
    async def exists(self, key: str) -> bool:
        raise StoreError(f"exists failed for {key}: connection refused")


async def _seed(day: date, *, user_agents: dict[str, int], ips: dict[str, int]) -> None:
    store = main_module.stats_store
    for agent, count in user_agents.items():
        await store.zincrby(f"api_requests:{day.isoformat()}", count, agent)
    for ip, count in ips.items():
        await store.zincrby(f"api_requests:ips:{day.isoformat()}", count, ip)


async def test_stats_endpoints_require_admin_token(client, monkeypatch) -> None:
    not_configured = await client.get("/api/v1/stats")
    assert not_configured.status_code == 404

    monkeypatch.setattr(main_module.settings, "admin_api_token", "test-admin-token")
    missing = await client.get("/api/v1/stats")
    assert missing.status_code == 401

    wrong = await client.get("/api/v1/stats/report", headers={"X-Admin-Token": "nope"})
    assert wrong.status_code == 401


async def test_stats_summary_merges_trailing_days(client, monkeypatch) -> None:
    monkeypatch.setattr(main_module.settings, "admin_api_token", "test-admin-token")
    today = date.today()
    await _seed(today - timedelta(days=1), user_agents={"Chrome": 10}, ips={"203.0.113.1": 10})
    await _seed(today - timedelta(days=2), user_agents={"Chrome": 5, "Firefox": 2}, ips={"10.0.0.1": 7})
    await _seed(today - timedelta(days=5), user_agents={"Opera": 99}, ips={"10.0.0.9": 99})

    response = await client.get(
        "/api/v1/stats",
        params={"days": 3, "limit": 2},
        headers={**ADMIN_HEADERS, "User-Agent": "stats-client"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["days"] == 3
    # The stats request itself is an in-scope API request.
    assert body["user_agents"] == {"stats-client": 1, "Chrome": 15, "Firefox": 2}
    assert body["ips"] == {"192.168.1.100": 1, "203.0.113.1": 10, "10.0.0.1": 7}
    assert body["totals"] == {"unique_user_agents": 3, "unique_ips": 3, "requests": 18}
    assert body["top_user_agents"] == [
        {"user_agent": "Chrome", "count": 15},
        {"user_agent": "Firefox", "count": 2},
    ]
    assert body["top_ips"] == [{"ip": "203.0.113.1", "count": 10}, {"ip": "10.0.0.1", "count": 7}]


async def test_stats_report_renders_plain_text(client, monkeypatch) -> None:
    monkeypatch.setattr(main_module.settings, "admin_api_token", "test-admin-token")
    await _seed(date.today(), user_agents={"Chrome": 100, "Firefox": 50}, ips={"192.168.1.1": 75})

    response = await client.get(
        "/api/v1/stats/report",
        params={"days": 7},
        headers={**ADMIN_HEADERS, "User-Agent": "Chrome"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "Period: Past 7 days" in response.text
    assert "   1. Chrome  :    101 requests" in response.text
    assert "Total API requests: 151" in response.text


async def test_stats_rejects_out_of_range_window(client, monkeypatch) -> None:
    monkeypatch.setattr(main_module.settings, "admin_api_token", "test-admin-token")

    response = await client.get("/api/v1/stats", params={"days": 0}, headers=ADMIN_HEADERS)

    assert response.status_code == 422


async def test_stats_store_failure_returns_503(client, monkeypatch) -> None:
    monkeypatch.setattr(main_module.settings, "admin_api_token", "test-admin-token")
    monkeypatch.setattr(main_module, "stats_reporter", StatsReporter(BrokenStore()))

    response = await client.get("/api/v1/stats/report", headers=ADMIN_HEADERS)

    assert response.status_code == 503
    assert response.json()["detail"] == "Stats store unavailable"
