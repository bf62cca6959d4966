"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for NewsMirror tests.

Network and object storage are replaced by in-memory fakes; the database is
a real SQLite file in a temporary directory.
"""

import pytest
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union
from unittest.mock import Mock

import requests

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["NEWSMIRROR_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["NEWSMIRROR_LOGGING__FILE_PATH"] = ""
os.environ["NEWSMIRROR_STORAGE__ENDPOINT"] = "minio.test"


# ============================================================================
# Fakes
# ============================================================================


class FakeFetcher:
    """HttpFetcher stand-in serving canned responses by URL.

    A route maps to bytes/str (200 response), a ``(body, content_type)``
    tuple, or an exception instance raised on request. Unknown URLs answer
    404 like a real server would.
    """

    def __init__(self, routes: Optional[Dict[str, object]] = None):
        self.routes: Dict[str, object] = dict(routes or {})
        self.calls: List[str] = []

    def add(self, url: str, body: Union[bytes, str, Exception], content_type: Optional[str] = None) -> None:
        self.routes[url] = (body, content_type) if content_type else body

    def get(self, url: str, accept: Optional[str] = None):
        from newsmirror.ingestion.http_client import FetchResponse

        self.calls.append(url)
        route = self.routes.get(url)

        if route is None:
            raise requests.HTTPError(
                f"404 Client Error: Not Found for url: {url}", response=Mock(status_code=404)
            )
        if isinstance(route, Exception):
            raise route

        content_type = None
        if isinstance(route, tuple):
            route, content_type = route

        content = route.encode("utf-8") if isinstance(route, str) else route
        headers = {"content-type": content_type} if content_type else {}
        return FetchResponse(
            content=content,
            status_code=200,
            url=url,
            headers=headers,
        )


class FakeObjectStorage:
    """ObjectStorage stand-in keeping uploads in a dict."""

    base_url = "http://minio.test:9000/upload"

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, Optional[str]] = {}
        self.fail_keys = set()

    def upload(self, key, body, content_type=None, length=None):
        from newsmirror.storage.object_storage import StoredObject
        from newsmirror.utils.exceptions import AssetMirrorError, ErrorCode

        if key in self.fail_keys:
            raise AssetMirrorError(
                f"Failed to upload {key}: simulated outage",
                storage_key=key,
                error_code=ErrorCode.ASSET_UPLOAD_FAILED,
            )

        self.objects[key] = body
        self.content_types[key] = content_type
        return StoredObject(bucket="upload", key=key, url=f"{self.base_url}/{key}", etag="etag")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def fake_storage():
    return FakeObjectStorage()


@pytest.fixture
def db_path(tmp_path):
    """Fresh database file with schema."""
    from newsmirror.database.schema import DatabaseSchema

    path = tmp_path / "newsmirror_test.db"
    DatabaseSchema(str(path)).create_tables()
    return str(path)


@pytest.fixture
def db_connection(db_path):
    """Create a database connection manager for testing."""
    from newsmirror.database.connection import DatabaseConnection

    connection = DatabaseConnection(db_path, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def news_repository(db_connection):
    from newsmirror.storage.news_repository import NewsRepository

    return NewsRepository(db_connection)


@pytest.fixture
def state_repository(db_connection):
    from newsmirror.storage.state_repository import CrawlerStateRepository

    return CrawlerStateRepository(db_connection)


@pytest.fixture
def test_settings(db_path):
    """Settings pointing at example.com with crawling enabled."""
    from newsmirror.config.settings import (
        NewsMirrorSettings,
        SchedulerSettings,
        CrawlerSettings,
        DatabaseSettings,
    )

    return NewsMirrorSettings(
        scheduler=SchedulerSettings(enabled=True, item_delay_seconds=0.3),
        crawler=CrawlerSettings(
            feed_url="https://example.com/rss",
            base_url="https://example.com",
            body_selector="div.item-text",
            slug_prefix="prefix",
            image_key_prefix="news/example",
            category_slug="example-housing",
            category_name="Example housing",
            source_slug="example",
            source_name="Example",
        ),
        database=DatabaseSettings(path=db_path, pool_size=2),
    )


@pytest.fixture
def utc():
    """Build UTC datetimes tersely: ``utc(2024, 9, 5, 12)``."""
    def _build(*args):
        return datetime(*args, tzinfo=timezone.utc)
    return _build
