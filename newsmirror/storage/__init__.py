"""
NewsMirror Storage Layer
========================

Repository pattern implementations for data access abstraction.

This module provides:
- News repository for records, categories and sources
- Crawler state repository for the durable watermark
- Object storage for mirrored images
"""

from .news_repository import NewsRepository
from .state_repository import CrawlerStateRepository
from .object_storage import ObjectStorage, StoredObject

__all__ = [
    "NewsRepository",
    "CrawlerStateRepository",
    "ObjectStorage",
    "StoredObject",
]
