"""
Unit Tests for Configuration
============================

Tests for settings defaults, environment overrides and validation.
"""

import pytest

from pydantic import ValidationError as PydanticValidationError

from newsmirror.config.settings import (
    CrawlerSettings,
    NewsMirrorSettings,
    SchedulerSettings,
    load_settings,
)
from newsmirror.utils.exceptions import ConfigurationError, ErrorCode


class TestDefaults:

    def test_scheduler_is_disabled_by_default(self):
        settings = SchedulerSettings()

        assert settings.enabled is False
        assert settings.interval_minutes == 15
        assert settings.item_delay_seconds == 0.3

    def test_crawler_defaults(self):
        settings = CrawlerSettings()

        assert settings.slug_prefix == "khabar"
        assert settings.image_key_prefix == "news/khabaronline"
        assert settings.persist_watermark is True

    def test_effective_log_level(self):
        assert NewsMirrorSettings(debug=True).get_effective_log_level() == "DEBUG"
        assert NewsMirrorSettings().get_effective_log_level() == "INFO"


class TestEnvironmentOverrides:

    def test_nested_values_come_from_environment(self, monkeypatch):
        monkeypatch.setenv("NEWSMIRROR_SCHEDULER__ENABLED", "true")
        monkeypatch.setenv("NEWSMIRROR_SCHEDULER__INTERVAL_MINUTES", "5")
        monkeypatch.setenv("NEWSMIRROR_CRAWLER__SLUG_PREFIX", "asriran")
        monkeypatch.setenv("NEWSMIRROR_STORAGE__PUBLIC_ENDPOINT", "cdn.example.org")

        settings = NewsMirrorSettings()

        assert settings.scheduler.enabled is True
        assert settings.scheduler.interval_minutes == 5
        assert settings.crawler.slug_prefix == "asriran"
        assert settings.storage.public_endpoint == "cdn.example.org"

    def test_load_settings_wraps_invalid_values(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("NEWSMIRROR_CRAWLER__FEED_URL", "ftp://example.com/rss")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID


class TestValidation:

    def test_pattern_must_compile(self):
        with pytest.raises(PydanticValidationError):
            CrawlerSettings(article_id_pattern=r"/news/(\d+")

    def test_pattern_needs_a_group(self):
        with pytest.raises(PydanticValidationError):
            CrawlerSettings(article_id_pattern=r"/news/\d+")

    def test_key_prefix_slashes_are_stripped(self):
        assert CrawlerSettings(image_key_prefix="/news/example/").image_key_prefix == "news/example"

    def test_urls_are_normalized(self):
        settings = CrawlerSettings(feed_url="  HTTPS://Example.COM/rss#top ")

        assert settings.feed_url == "https://example.com/rss"

    def test_delay_must_fit_in_interval(self, tmp_path):
        settings = NewsMirrorSettings(
            scheduler=SchedulerSettings(interval_minutes=1, item_delay_seconds=30.0),
            database={"path": str(tmp_path / "db" / "test.db")},
            logging={"file_path": None},
        )

        with pytest.raises(ConfigurationError):
            settings.validate_configuration()

    def test_valid_configuration_creates_directories(self, tmp_path):
        settings = NewsMirrorSettings(
            database={"path": str(tmp_path / "db" / "test.db")},
            logging={"file_path": str(tmp_path / "logs" / "test.log")},
        )

        settings.validate_configuration()

        assert (tmp_path / "db").is_dir()
        assert (tmp_path / "logs").is_dir()
