"""
Unit Tests - Configuration and Logging
"""
import logging

import pytest
from pydantic import ValidationError

from storefront_core.config import Settings, get_settings
from storefront_core.config.logging import LIBRARY_LOGGERS, ServiceContext, configure_logging
from storefront_core.config.settings import CacheSettings, DatabaseSettings, RedisSettings


@pytest.fixture
def clean_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestSettings:
    """Environment driven sections"""

    def test_defaults(self):
        settings = Settings()

        assert settings.cache.default_ttl_seconds == 300
        assert settings.cache.fetch_timeout_seconds == 10.0
        assert settings.analytics.max_range_days == 90
        assert settings.revalidation.base_url is None

    def test_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", "MEMORY")
        monkeypatch.setenv("CACHE_ANALYTICS_TTL_SECONDS", "60")
        monkeypatch.setenv("ANALYTICS_TIMEZONE", "Asia/Kuala_Lumpur")
        monkeypatch.setenv("POSTGRES_DB", "shop")

        settings = Settings()

        assert settings.cache.backend == "memory"
        assert settings.cache.analytics_ttl_seconds == 60
        assert settings.analytics.timezone == "Asia/Kuala_Lumpur"
        assert settings.database.db == "shop"

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            CacheSettings(backend="memcached")

    @pytest.mark.parametrize("field", ["default_ttl_seconds", "analytics_ttl_seconds"])
    def test_non_positive_ttl_rejected(self, field):
        with pytest.raises(ValidationError):
            CacheSettings(**{field: 0})

    def test_unknown_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(APP_ENV="qa")

    def test_urls(self):
        assert RedisSettings(host="cache", port=6380, db=2).get_url() == "redis://cache:6380/2"
        assert DatabaseSettings(host="db").async_url.startswith("postgresql+asyncpg://")

    def test_get_settings_is_cached(self, clean_settings):
        assert get_settings() is get_settings()


class TestLogging:
    def test_service_context_does_not_override(self):
        processor = ServiceContext("storefront-core", "testing")

        event = processor(None, "info", {"event": "x", "environment": "override"})

        assert event["service"] == "storefront-core"
        assert event["environment"] == "override"

    def test_library_loggers_quiet_above_debug(self, clean_settings, restore_logging):
        configure_logging("INFO")

        assert logging.getLogger().level == logging.INFO
        for name in LIBRARY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_debug_level_opens_library_loggers(self, clean_settings, restore_logging):
        configure_logging("debug")

        assert logging.getLogger("httpx").level == logging.DEBUG
        assert len(logging.getLogger().handlers) == 1
