"""
Article Scraper
===============

Fetches one article page and extracts the article body container.

A missing body container is not an error: the extract then has no HTML and
the content assembler falls back to plain text. Transport failures and
unexpected parse failures are fatal for the item and surface as
``ArticleScrapeError``.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from .http_client import HttpFetcher, HTML_ACCEPT
from .content_cleaner import ContentCleaner
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ArticleScrapeError, ErrorCode
from ..utils.validators import normalize_link

# Attribute order used to locate an inline image; lazy-loaded pages keep the
# real URL in data-src and a placeholder (often a data: URI) in src
IMAGE_SOURCE_ATTRIBUTES = ("src", "data-src")


@dataclass
class ArticleExtract:
    """Parts of an article page the crawler keeps."""

    html: Optional[str]
    text: str
    images: List[str] = field(default_factory=list)
    image_sources: Dict[str, str] = field(default_factory=dict)
    lead_image_url: Optional[str] = None
    summary: Optional[str] = None
    title: Optional[str] = None


class ArticleScraper:
    """Extracts body HTML, text and images from article pages."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        body_selector: str,
        base_url: Optional[str] = None,
        strip_selectors: Iterable[str] = (),
    ):
        """Initialize article scraper.

        Args:
            fetcher: HTTP client used to download pages
            body_selector: CSS selector of the article body container
            base_url: Base for relative image links
            strip_selectors: Boilerplate blocks removed from the body
        """
        self.fetcher = fetcher
        self.body_selector = body_selector
        self.base_url = base_url
        self.strip_selectors = list(strip_selectors)
        self.cleaner = ContentCleaner()
        self.logger = get_logger_for_component("article_scraper")

    def scrape(self, url: str) -> ArticleExtract:
        """Fetch ``url`` and extract its article body.

        Raises:
            ArticleScrapeError: If the page cannot be fetched or parsed
        """
        try:
            response = self.fetcher.get(url, accept=HTML_ACCEPT)
        except requests.RequestException as e:
            raise ArticleScrapeError(
                f"Failed to fetch article {url}: {e}",
                article_url=url,
                error_code=ErrorCode.ARTICLE_FETCH_FAILED,
            ) from e

        try:
            # Bytes let BeautifulSoup honour the page's own charset declaration
            soup = BeautifulSoup(response.content, self.cleaner.parser)
            extract = self._extract(soup, base_url=self.base_url or response.url)
        except Exception as e:
            raise ArticleScrapeError(
                f"Failed to parse article {url}: {e}",
                article_url=url,
                error_code=ErrorCode.CONTENT_EXTRACTION_FAILED,
            ) from e

        if extract.html is None:
            self.logger.warning(f"No article body matched {self.body_selector!r} on {url}")
        else:
            self.logger.debug(
                f"Scraped {url}: {len(extract.text)} chars, {len(extract.images)} images"
            )
        return extract

    def _extract(self, soup: BeautifulSoup, base_url: str) -> ArticleExtract:
        summary = self._extract_summary(soup)
        lead_image_url = self._extract_lead_image(soup, base_url)
        title = self._extract_title(soup)

        body = soup.select_one(self.body_selector)
        if body is None:
            return ArticleExtract(
                html=None,
                text="",
                lead_image_url=lead_image_url,
                summary=summary,
                title=title,
            )

        self.cleaner.strip_non_content(body, self.strip_selectors)

        images: List[str] = []
        image_sources: Dict[str, str] = {}
        for img in body.find_all("img"):
            raw, absolute = self._resolve_image(img, base_url)
            if not absolute or absolute in image_sources:
                continue
            images.append(absolute)
            image_sources[absolute] = raw

        html = body.decode_contents().strip()

        return ArticleExtract(
            html=html or None,
            text=self.cleaner.element_text(body),
            images=images,
            image_sources=image_sources,
            lead_image_url=lead_image_url,
            summary=summary,
            title=title,
        )

    def _resolve_image(self, img: Tag, base_url: str):
        """Return ``(raw attribute value, absolute URL)`` for an ``<img>``."""
        for attribute in IMAGE_SOURCE_ATTRIBUTES:
            raw = (img.get(attribute) or "").strip()
            absolute = normalize_link(raw, base_url)
            if absolute:
                return raw, absolute
        return "", ""

    def _extract_lead_image(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        candidates = []

        og = soup.find("meta", attrs={"property": "og:image"})
        if og is not None:
            candidates.append(og.get("content"))

        twitter = soup.find("meta", attrs={"name": "twitter:image"})
        if twitter is not None:
            candidates.append(twitter.get("content"))

        lead = soup.select_one("img.lead_image")
        if lead is not None:
            candidates.append(lead.get("src"))

        for candidate in candidates:
            absolute = normalize_link(candidate, base_url)
            if absolute:
                return absolute
        return None

    def _extract_summary(self, soup: BeautifulSoup) -> Optional[str]:
        subtitle = soup.select_one(".subtitle")
        if subtitle is None:
            return None
        return self.cleaner.element_text(subtitle) or None

    def _extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        og = soup.find("meta", attrs={"property": "og:title"})
        if og is not None and og.get("content"):
            return self.cleaner.normalize_whitespace(og["content"]) or None

        heading = soup.find("h1")
        if heading is not None:
            return self.cleaner.element_text(heading) or None
        return None
