"""
NewsMirror Logging Configuration
================================

Logging setup for the crawler: colored console lines for operators, JSON
lines in a rotating file for machines.

Every component logs through a ``LoggerAdapter`` carrying crawl context
(component, source slug, article id, slug, stage). Both formatters surface
that context, so a single article can be followed through poll, scrape,
mirror and store.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "newsmirror"

# Context keys promoted to top-level fields of a JSON log line
CONTEXT_FIELDS = ("component", "source", "article_id", "slug", "stage")

# Attributes every LogRecord has; anything else arrived through ``extra``
_RECORD_ATTRIBUTES = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Libraries that are chatty at INFO/DEBUG
QUIET_LIBRARIES = ("urllib3", "requests", "feedparser", "botocore", "boto3", "s3transfer")


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRIBUTES}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; crawl context at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        extras = _record_extras(record)

        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if key in extras:
                entry[key] = extras.pop(key)

        if extras:
            entry["extra"] = extras
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL component[source] id: message`` with a colored level."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        extras = _record_extras(record)

        where = extras.get("component") or record.name
        if extras.get("source"):
            where = f"{where}[{extras['source']}]"
        if extras.get("article_id"):
            where = f"{where} {extras['article_id']}"

        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{clock} {color}{record.levelname:<8}{self.RESET} {where}: {record.getMessage()}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    structured: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and/or rotating file handlers to ``name``.

    Existing handlers are replaced, so calling this twice does not double
    every line. The file handler always writes JSON.

    Args:
        name: Logger name
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Rotating log file, None for console only
        console: Log to stdout
        structured: JSON on the console too
        max_file_size: Rotate after this many bytes
        backup_count: Rotated files kept

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper())
    logger.handlers.clear()

    if console:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter() if structured else ColoredConsoleFormatter())
        logger.addHandler(handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
        )
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter merging its crawl context into every record's ``extra``."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "LoggerAdapter":
        """Child adapter with extra context; None values are left out."""
        merged = dict(self.extra)
        merged.update({k: v for k, v in context.items() if v is not None})
        return LoggerAdapter(self.logger, merged)


def get_logger_for_component(
    component_name: str,
    source: Optional[str] = None,
    article_id: Optional[str] = None,
) -> LoggerAdapter:
    """Logger adapter for one crawler component.

    Args:
        component_name: Component name, e.g. ``feed_poller`` or ``asset_mirror``
        source: Source slug being crawled
        article_id: Article the messages are about

    Returns:
        Adapter logging to ``newsmirror.<component_name>``
    """
    adapter = LoggerAdapter(
        logging.getLogger(f"{ROOT_LOGGER_NAME}.{component_name}"),
        {"component": component_name},
    )
    return adapter.bind(source=source, article_id=article_id)


def configure_application_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/newsmirror.log",
    enable_console: bool = True,
    structured_logging: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure the ``newsmirror`` logger tree and quiet library loggers."""
    setup_logger(
        name=ROOT_LOGGER_NAME,
        level=log_level,
        log_file=log_file,
        console=enable_console,
        structured=structured_logging,
        max_file_size=max_file_size_mb * 1024 * 1024,
        backup_count=backup_count,
    )

    for library in QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)


def configure_logging_from_settings(settings, debug: bool = False) -> None:
    """Apply the ``logging`` section of application settings.

    Args:
        settings: ``NewsMirrorSettings`` instance
        debug: Force DEBUG regardless of the configured level
    """
    log_settings = settings.logging
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=log_settings.file_path,
        enable_console=log_settings.console_logging,
        structured_logging=log_settings.structured_logging,
        max_file_size_mb=log_settings.max_file_size_mb,
        backup_count=log_settings.backup_count,
    )


class PerformanceLogger:
    """Times a block and logs its outcome; ``duration`` is set on exit."""

    def __init__(self, logger: logging.LoggerAdapter, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.duration: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self._started = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration = time.perf_counter() - self._started
        context = {**self.context, "duration_seconds": round(self.duration, 3), "success": exc_type is None}

        if exc_type is not None:
            self.logger.error(f"Failed {self.operation} after {self.duration:.3f}s", extra=context)
        else:
            self.logger.debug(f"Completed {self.operation} in {self.duration:.3f}s", extra=context)
