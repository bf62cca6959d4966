"""
NewsMirror - Incremental News Feed Crawler
==========================================

Polls a news feed, scrapes new articles, mirrors their images into object
storage and stores each article exactly once.

Main Components:
- Ingestion: feed polling, article scraping, HTML cleanup
- Processing: watermark and dedup gate, asset mirror, content assembly
- Storage: SQLite repositories and S3-compatible object storage
- Scheduler: run orchestration on a fixed interval
"""

__version__ = "1.0.0"
__description__ = "Incremental news feed crawler with image mirroring"

from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import NewsMirrorError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "NewsMirrorError",
]
