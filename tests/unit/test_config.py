"""Unit tests for AppSettings and sub-configs."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config import (
    AnalyticsSettings,
    AppSettings,
    DatabaseSettings,
    LoggingSettings,
    RedisSettings,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def with_mongo(monkeypatch):
    """Set the required MONGODB_URI so AppSettings can be instantiated."""
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    return monkeypatch


# ---------------------------------------------------------------------------
# DatabaseSettings
# ---------------------------------------------------------------------------


class TestDatabaseSettings:
    def test_loads_mongodb_uri(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        assert DatabaseSettings().mongodb_uri == "mongodb://localhost:27017/"

    def test_default_names(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        s = DatabaseSettings()
        assert s.db_name == "link-analytics"
        assert s.events_collection == "click_events"
        assert s.rollups_collection == "rollups"

    def test_missing_mongodb_uri_raises(self, monkeypatch):
        monkeypatch.delenv("MONGODB_URI", raising=False)
        with pytest.raises(PydanticValidationError):
            DatabaseSettings()


# ---------------------------------------------------------------------------
# RedisSettings
# ---------------------------------------------------------------------------


class TestRedisSettings:
    def test_redis_uri_optional(self, monkeypatch):
        monkeypatch.delenv("REDIS_URI", raising=False)
        assert RedisSettings().redis_uri is None

    def test_redis_uri_loaded(self, monkeypatch):
        monkeypatch.setenv("REDIS_URI", "redis://localhost:6379")
        assert RedisSettings().redis_uri == "redis://localhost:6379"

    def test_socket_timeout_override(self, monkeypatch):
        monkeypatch.setenv("REDIS_SOCKET_TIMEOUT_SECONDS", "2.5")
        assert RedisSettings().redis_socket_timeout_seconds == 2.5


# ---------------------------------------------------------------------------
# AnalyticsSettings
# ---------------------------------------------------------------------------


class TestAnalyticsSettings:
    def test_defaults(self, monkeypatch):
        for var in (
            "RETENTION_DAYS",
            "BATCH_CONCURRENCY",
            "EXPORT_BATCH_SIZE",
            "SCHEDULER_ENABLED",
        ):
            monkeypatch.delenv(var, raising=False)
        s = AnalyticsSettings()
        assert s.retention_days == 730
        assert s.batch_concurrency == 8
        assert s.export_batch_size == 100
        assert s.scheduler_enabled is True

    @pytest.mark.parametrize(
        "raw, expected",
        [("false", False), ("0", False), ("true", True)],
        ids=["false", "zero", "true"],
    )
    def test_scheduler_flag(self, monkeypatch, raw, expected):
        monkeypatch.setenv("SCHEDULER_ENABLED", raw)
        assert AnalyticsSettings().scheduler_enabled is expected


def test_logging_defaults(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    s = LoggingSettings()
    assert s.log_level == "INFO"
    assert s.log_format == "console"


# ---------------------------------------------------------------------------
# AppSettings
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "env, expected",
    [("production", True), ("development", False)],
    ids=["production", "development"],
)
def test_is_production(with_mongo, env, expected):
    with_mongo.setenv("ENV", env)
    assert AppSettings().is_production is expected


class TestAppSettings:
    def test_sub_configs_populated(self, with_mongo):
        s = AppSettings()
        for attr in ("db", "redis", "analytics", "logging", "sentry"):
            assert getattr(s, attr) is not None, f"sub-config '{attr}' is None"

    def test_cors_origins_default(self, with_mongo):
        assert AppSettings().cors_origins == ["*"]

    def test_explicit_sub_config_kept(self, with_mongo):
        analytics = AnalyticsSettings(retention_days=30)
        assert AppSettings(analytics=analytics).analytics.retention_days == 30
