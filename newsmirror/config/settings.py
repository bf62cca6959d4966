"""
NewsMirror Configuration System
==============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

import re
from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode
from ..utils.validators import URLValidator


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SchedulerSettings(BaseModel):
    """Recurring crawl configuration."""
    enabled: bool = Field(default=False, description="Run real crawls; a disabled scheduler makes every tick a no-op")
    interval_minutes: int = Field(default=15, ge=1, le=1440, description="Minutes between two crawl ticks")
    item_delay_seconds: float = Field(default=0.3, ge=0.0, le=30.0, description="Pause after each stored article")
    lock_dir: Optional[str] = Field(default=None, description="Directory for the service lock file")


class CrawlerSettings(BaseModel):
    """Feed source and article layout configuration."""
    feed_url: str = Field(default="https://www.khabaronline.ir/rss/tp/21", description="Syndication feed to poll")
    base_url: str = Field(default="https://www.khabaronline.ir", description="Base for relative article and image links")
    article_id_pattern: str = Field(default=r"/news/(\d+)", description="Regex whose first group is the numeric article id")
    body_selector: str = Field(default='div.item-text[itemprop="articleBody"]', description="CSS selector of the article body container")
    strip_selectors: List[str] = Field(
        default_factory=lambda: ["div.news_end", "#MV_afterBody"],
        description="Boilerplate blocks removed from the body before storing"
    )
    slug_prefix: str = Field(default="khabar", min_length=1, description="Prefix of stored news slugs")
    image_key_prefix: str = Field(default="news/khabaronline", min_length=1, description="Object storage prefix for mirrored images")
    category_slug: str = Field(default="khabaronline-housing", min_length=1)
    category_name: str = Field(default="اخبار مسکن خبرآنلاین", min_length=1)
    source_slug: str = Field(default="khabaronline", min_length=1)
    source_name: str = Field(default="خبرآنلاین", min_length=1)
    user_agent: str = Field(
        default="Mozilla/5.0 (X11; Linux x86_64; rv:146.0) Gecko/20100101 Firefox/146.0",
        description="User-Agent header sent upstream"
    )
    persist_watermark: bool = Field(default=True, description="Store the watermark in the database between restarts")

    @field_validator('feed_url', 'base_url')
    @classmethod
    def validate_url(cls, v):
        """Ensure URLs are absolute http(s) URLs."""
        return URLValidator.validate_feed_url(v)

    @field_validator('article_id_pattern')
    @classmethod
    def validate_pattern(cls, v):
        """Ensure the id pattern compiles and captures a group."""
        try:
            compiled = re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid article_id_pattern: {e}")
        if compiled.groups < 1:
            raise ValueError("article_id_pattern must contain a capturing group")
        return v

    @field_validator('image_key_prefix')
    @classmethod
    def strip_key_prefix(cls, v):
        """Object keys never start or end with a slash."""
        return v.strip("/")


class LimitsSettings(BaseModel):
    """Network and cache limits."""
    request_timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")
    max_image_bytes: int = Field(default=15 * 1024 * 1024, ge=1024, description="Largest image that is mirrored")
    seen_cache_size: int = Field(default=5000, ge=10, le=1_000_000, description="Maximum identities kept in the seen cache")
    seen_cache_ttl_seconds: int = Field(default=7 * 24 * 3600, ge=60, description="Seconds an identity stays in the seen cache")


class StorageSettings(BaseModel):
    """MinIO / S3 object storage configuration."""
    endpoint: str = Field(default="minio", description="Object storage host")
    port: int = Field(default=6204, ge=1, le=65535)
    use_ssl: bool = Field(default=False)
    access_key: str = Field(default="minioadmin")
    secret_key: str = Field(default="minioadmin")
    bucket: str = Field(default="upload", min_length=3)
    region: Optional[str] = Field(default=None)
    public_endpoint: Optional[str] = Field(default=None, description="Host used in public URLs")
    public_port: Optional[int] = Field(default=None, ge=1, le=65535)
    public_use_ssl: Optional[bool] = Field(default=None)
    public_path: str = Field(default="", description="Path prefix in front of the bucket in public URLs")

    @property
    def endpoint_url(self) -> str:
        """Endpoint URL handed to the S3 client."""
        protocol = "https" if self.use_ssl else "http"
        return f"{protocol}://{self.endpoint}:{self.port}"


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/newsmirror.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/newsmirror.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class NewsMirrorSettings(BaseSettings):
    """Main application settings."""

    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="NewsMirror", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "NEWSMIRROR_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if self.scheduler.item_delay_seconds >= self.scheduler.interval_minutes * 60:
            errors.append("item_delay_seconds is too large for the crawl interval")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> NewsMirrorSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = NewsMirrorSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


# Global settings instance
_settings: Optional[NewsMirrorSettings] = None


def get_settings(reload: bool = False) -> NewsMirrorSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
