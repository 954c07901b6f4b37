"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests. Tests control config exclusively through monkeypatch.setenv().

Also provides in-memory stores and a click factory shared by the service and
job tests.
"""

from datetime import datetime, timezone

import pytest

from infrastructure.cache.analytics_cache import AnalyticsCache
from infrastructure.visitors import InMemoryVisitorTracker
from repositories.memory import (
    InMemoryEventStore,
    InMemoryLinkRepository,
    InMemoryRollupRepository,
)
from schemas.models.click import (
    Browser,
    ClickEvent,
    Device,
    Location,
    OperatingSystem,
    Referrer,
    Utm,
)
from services.aggregation_service import AggregationService

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


@pytest.fixture
def make_click():
    """Factory for ClickEvent with sensible defaults; keyword args override."""

    def _make(
        link_id: str = "abc123",
        timestamp: datetime = NOW,
        visitor: str = "v1",
        owner_id: str = "user-1",
        country=None,
        country_code=None,
        region=None,
        city=None,
        device_type="desktop",
        brand=None,
        model=None,
        os_name=None,
        browser=None,
        referrer_domain=None,
        referrer_type="direct",
        utm_campaign=None,
        utm_source=None,
        utm_medium=None,
    ) -> ClickEvent:
        return ClickEvent(
            link_id=link_id,
            owner_id=owner_id,
            timestamp=timestamp,
            visitor_hash=visitor,
            location=Location(
                country=country, country_code=country_code, region=region, city=city
            ),
            device=Device(type=device_type, brand=brand, model=model),
            os=OperatingSystem(name=os_name),
            browser=Browser(name=browser),
            referrer=Referrer(domain=referrer_domain, type=referrer_type),
            utm=Utm(campaign=utm_campaign, source=utm_source, medium=utm_medium),
        )

    return _make


@pytest.fixture
def events():
    return InMemoryEventStore()


@pytest.fixture
def links():
    return InMemoryLinkRepository({"abc123": "user-1", "def456": "user-1", "xyz789": "user-2"})


@pytest.fixture
def rollups():
    return InMemoryRollupRepository()


@pytest.fixture
def visitors():
    return InMemoryVisitorTracker()


@pytest.fixture
def no_cache():
    return AnalyticsCache(redis_client=None)


@pytest.fixture
def aggregation(events, links, visitors, no_cache):
    return AggregationService(events, links, visitors, no_cache)
