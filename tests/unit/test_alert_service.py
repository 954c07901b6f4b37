"""Unit tests for AlertService."""

from datetime import datetime, timedelta, timezone

import pytest

from services.alert_service import AlertService

UTC = timezone.utc
NOW = datetime(2024, 3, 15, 12, tzinfo=UTC)


@pytest.fixture
def alerts(events, links, no_cache):
    return AlertService(events, links, no_cache, concurrency=2)


def _at(hours_ago: float) -> datetime:
    return NOW - timedelta(hours=hours_ago)


def _types(found) -> list[str]:
    return [a.type for a in found]


class TestEvaluateLink:
    async def test_spike(self, alerts, events, make_click):
        events.append(
            *[make_click(timestamp=_at(2)) for _ in range(40)],
            *[make_click(timestamp=_at(30)) for _ in range(10)],
        )
        found = await alerts.evaluate_link("abc123", now=NOW)
        spike = next(a for a in found if a.type == "traffic_spike")
        assert spike.severity == "warning"
        assert spike.data == {"current_clicks": 40, "previous_clicks": 10, "increase": 30}
        assert "300%" in spike.message

    async def test_exactly_three_times_is_not_a_spike(self, alerts, events, make_click):
        events.append(
            *[make_click(timestamp=_at(2)) for _ in range(30)],
            *[make_click(timestamp=_at(30)) for _ in range(10)],
        )
        assert "traffic_spike" not in _types(await alerts.evaluate_link("abc123", now=NOW))

    async def test_no_spike_without_previous_traffic(self, alerts, events, make_click):
        events.append(*[make_click(timestamp=_at(2)) for _ in range(100)])
        assert "traffic_spike" not in _types(await alerts.evaluate_link("abc123", now=NOW))

    async def test_drop(self, alerts, events, make_click):
        events.append(
            make_click(timestamp=_at(2)),
            *[make_click(timestamp=_at(30)) for _ in range(20)],
        )
        found = await alerts.evaluate_link("abc123", now=NOW)
        drop = next(a for a in found if a.type == "traffic_drop")
        assert drop.severity == "critical"
        assert drop.data["decrease"] == 19

    async def test_drop_to_zero(self, alerts, events, make_click):
        events.append(*[make_click(timestamp=_at(30)) for _ in range(20)])
        assert _types(await alerts.evaluate_link("abc123", now=NOW)) == ["traffic_drop"]

    async def test_drop_needs_more_than_ten_previous(self, alerts, events, make_click):
        events.append(*[make_click(timestamp=_at(30)) for _ in range(10)])
        assert await alerts.evaluate_link("abc123", now=NOW) == []

    async def test_new_countries(self, alerts, events, make_click):
        events.append(
            make_click(timestamp=_at(200), country="US"),
            make_click(timestamp=_at(1), country="US"),
            make_click(timestamp=_at(1), country="JP"),
            make_click(timestamp=_at(1), country="BR"),
        )
        found = await alerts.evaluate_link("abc123", now=NOW)
        new = next(a for a in found if a.type == "new_countries")
        assert new.severity == "info"
        assert new.data == {"new_countries": ["BR", "JP"]}
        assert new.message == "Link accessed from 2 new countries"

    async def test_new_referrers_need_volume(self, alerts, events, make_click):
        events.append(
            *[make_click(timestamp=_at(1), referrer_domain=f"site{i}.com") for i in range(8)]
        )
        found = await alerts.evaluate_link("abc123", now=NOW)
        assert "new_referrers" not in _types(found)

        events.append(
            *[make_click(timestamp=_at(1), referrer_domain=f"site{i}.com") for i in range(8, 11)]
        )
        found = await alerts.evaluate_link("abc123", now=NOW)
        new = next(a for a in found if a.type == "new_referrers")
        assert len(new.data["new_referrers"]) == 5


class TestGetAlerts:
    async def test_ordered_by_link(self, alerts, events, make_click):
        for link_id in ("def456", "abc123"):
            events.append(*[make_click(link_id=link_id, timestamp=_at(30)) for _ in range(20)])
        view = await alerts.get_alerts("user-1", now=NOW)
        assert [a.link_id for a in view.alerts] == ["abc123", "def456"]

    async def test_quiet_user(self, alerts):
        assert (await alerts.get_alerts("user-1", now=NOW)).alerts == []

    async def test_failing_link_skipped(self, alerts, events, make_click, monkeypatch):
        events.append(*[make_click(link_id="def456", timestamp=_at(30)) for _ in range(20)])
        original = alerts.evaluate_link

        async def flaky(link_id, now=None):
            if link_id == "abc123":
                raise RuntimeError("boom")
            return await original(link_id, now)

        monkeypatch.setattr(alerts, "evaluate_link", flaky)
        view = await alerts.get_alerts("user-1", now=NOW)
        assert [a.link_id for a in view.alerts] == ["def456"]
