"""
Feed Poller
===========

Fetches the syndication feed and normalizes its entries into ``FeedItem``
objects using feedparser.

feedparser already presents a feed with a single item and one with many in
the same shape (``entries`` is always a list), understands RSS, Atom and RDF,
and exposes publication dates as UTC ``struct_time`` values.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import requests

from .http_client import HttpFetcher, FEED_ACCEPT
from .content_cleaner import ContentCleaner
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedFetchError, ErrorCode
from ..utils.validators import normalize_link


def _fetch_error_code(error: requests.RequestException) -> ErrorCode:
    if isinstance(error, requests.Timeout):
        return ErrorCode.FEED_FETCH_TIMEOUT
    response = getattr(error, "response", None)
    if response is not None and response.status_code in (404, 410):
        return ErrorCode.FEED_NOT_FOUND
    return ErrorCode.FEED_NETWORK_ERROR


@dataclass
class FeedItem:
    """One candidate entry of a feed pass."""

    title: str
    link: str
    description: str
    guid: str
    published: Optional[datetime] = None
    published_raw: str = ""
    enclosure_url: Optional[str] = None

    @property
    def identity(self) -> str:
        """Identity key: the GUID, or the link when the feed has none."""
        return self.guid or self.link


class FeedPoller:
    """Polls one feed URL and returns its items in feed order."""

    def __init__(self, fetcher: HttpFetcher, base_url: Optional[str] = None):
        """Initialize feed poller.

        Args:
            fetcher: HTTP client used to download the feed
            base_url: Base for relative entry links and enclosure URLs
        """
        self.fetcher = fetcher
        self.base_url = base_url
        self.cleaner = ContentCleaner()
        self.logger = get_logger_for_component("feed_poller")

    def poll(self, feed_url: str) -> List[FeedItem]:
        """Fetch and parse ``feed_url``.

        Args:
            feed_url: Feed URL to fetch

        Returns:
            Items in feed order; empty for a valid feed without entries

        Raises:
            FeedFetchError: If the feed cannot be fetched or is not a feed
        """
        self.logger.info(f"Fetching feed: {feed_url}")
        start_time = time.time()

        try:
            response = self.fetcher.get(feed_url, accept=FEED_ACCEPT)
        except requests.RequestException as e:
            raise FeedFetchError(
                f"Failed to fetch feed {feed_url}: {e}",
                feed_url=feed_url,
                error_code=_fetch_error_code(e),
            ) from e

        self.logger.debug(
            f"Feed fetched in {time.time() - start_time:.2f}s, size: {len(response.content)} bytes"
        )

        parsed = feedparser.parse(response.content, response_headers=response.headers)

        # An empty channel still has a version; a well-formed HTML page does not
        if not parsed.entries and not parsed.get("version"):
            reason = parsed.get("bozo_exception") or "no feed version detected"
            raise FeedFetchError(
                f"Malformed feed {feed_url}: {reason}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )

        if parsed.bozo:
            # Many feeds have minor formatting issues; keep what parsed
            self.logger.warning(
                f"Feed parsing warning for {feed_url}: {parsed.get('bozo_exception')}"
            )

        items = []
        for entry in parsed.entries:
            item = self._extract_item(entry)
            if item is None:
                continue
            items.append(item)

        self.logger.info(f"Parsed {len(items)} items from {feed_url}")
        return items

    def _extract_item(self, entry: Any) -> Optional[FeedItem]:
        """Normalize one feed entry; entries without a usable link are dropped."""
        link = normalize_link(entry.get("link"), self.base_url)
        if not link:
            self.logger.warning(
                f"Dropping feed entry without link: {entry.get('title', '')!r}"
            )
            return None

        guid = (entry.get("id") or "").strip() or link

        return FeedItem(
            title=self.cleaner.clean_text(entry.get("title", "")),
            link=link,
            description=entry.get("summary", "") or "",
            guid=guid,
            published=self._parse_published(entry),
            published_raw=entry.get("published", "") or "",
            enclosure_url=self._extract_enclosure(entry),
        )

    def _parse_published(self, entry: Any) -> Optional[datetime]:
        """UTC publication time, or None when the feed date is unparseable."""
        parsed_time = entry.get("published_parsed")
        if not parsed_time:
            return None
        try:
            return datetime(*parsed_time[:6], tzinfo=timezone.utc)
        except (ValueError, TypeError):
            return None

    def _extract_enclosure(self, entry: Any) -> Optional[str]:
        """First enclosure URL, preferring image enclosures."""
        enclosures = [enc for enc in entry.get("enclosures", []) if enc.get("href")]
        if not enclosures:
            return None

        images = [enc for enc in enclosures if str(enc.get("type", "")).startswith("image/")]
        chosen = (images or enclosures)[0]
        return normalize_link(chosen["href"], self.base_url) or None
