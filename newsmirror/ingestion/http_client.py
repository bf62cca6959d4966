"""
HTTP Fetcher
============

Shared synchronous HTTP client for the feed, article pages and images.

Requests are made exactly once: the session is mounted with a zero-retry
policy, and a failed call surfaces immediately to the caller, which decides
whether the failure is fatal or soft.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..utils.logging import get_logger_for_component

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml"
HTML_ACCEPT = "text/html,application/xhtml+xml"
IMAGE_ACCEPT = "image/avif,image/webp,image/*,*/*;q=0.8"


@dataclass
class FetchResponse:
    """Body and metadata of a successful response.

    Only raw bytes are kept; feedparser and BeautifulSoup detect the
    charset themselves, and images are never decoded.
    """
    content: bytes
    status_code: int
    url: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        """Lower-cased media type without parameters."""
        value = self.headers.get("content-type") or self.headers.get("Content-Type") or ""
        return value.split(";")[0].strip().lower()


class HttpFetcher:
    """GET-only HTTP client with a fixed User-Agent and timeout."""

    def __init__(self, user_agent: str, timeout: int = 30, session: Optional[requests.Session] = None):
        """Initialize the fetcher.

        Args:
            user_agent: User-Agent header sent with every request
            timeout: Request timeout in seconds
            session: Pre-configured session (a new one is created when omitted)
        """
        self.timeout = timeout
        self.logger = get_logger_for_component("http_fetcher")

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(max_retries=Retry(total=0, redirect=False))
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session
        self.session.headers.update({"User-Agent": user_agent})

    def get(self, url: str, accept: Optional[str] = None) -> FetchResponse:
        """Fetch ``url``.

        Raises:
            requests.RequestException: On connection errors, timeouts and
                non-2xx responses
        """
        headers = {"Accept": accept} if accept else None
        response = self.session.get(url, headers=headers, timeout=self.timeout)
        response.raise_for_status()

        self.logger.debug(
            f"GET {url} -> {response.status_code}, {len(response.content)} bytes"
        )

        return FetchResponse(
            content=response.content,
            status_code=response.status_code,
            url=response.url,
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    def close(self) -> None:
        self.session.close()
