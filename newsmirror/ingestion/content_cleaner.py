"""
Content Cleaner
===============

HTML cleanup and text normalization shared by the feed poller, the article
scraper and the content assembler.

This module provides:
- Plain-text rendering of HTML fragments (tags stripped, entities unescaped)
- Removal of scripts, styles, comments and configured boilerplate blocks
- Escaped plain-text wrapping for bodies without scraped HTML
- Short-text truncation
"""

import re
import html
from typing import Iterable, Optional

from bs4 import BeautifulSoup, Comment
from bs4.element import Tag

from ..utils.logging import get_logger_for_component

SHORT_TEXT_LENGTH = 240


class ContentCleaner:
    """HTML cleaner built on BeautifulSoup's ``html.parser``."""

    # Elements removed together with their content
    NON_CONTENT_ELEMENTS = ("script", "style", "noscript")

    WHITESPACE_PATTERN = re.compile(r"\s+")

    def __init__(self):
        self.logger = get_logger_for_component("content_cleaner")
        self.parser = "html.parser"

    def clean_text(self, value: Optional[str]) -> str:
        """Render an HTML fragment or feed string as a single line of text.

        Tags are stripped, entities unescaped and whitespace runs (including
        non-breaking spaces) collapsed to one space.
        """
        if not value or not value.strip():
            return ""

        soup = BeautifulSoup(value, self.parser)
        return self.normalize_whitespace(soup.get_text(separator=" "))

    def element_text(self, element: Tag) -> str:
        """Plain text of an already-parsed element."""
        return self.normalize_whitespace(element.get_text(separator=" "))

    def normalize_whitespace(self, text: str) -> str:
        # get_text already decodes entities; a second pass catches double-escaped ones
        text = html.unescape(text)
        return self.WHITESPACE_PATTERN.sub(" ", text).strip()

    def strip_non_content(self, element: Tag, selectors: Iterable[str] = ()) -> None:
        """Remove scripts, styles, comments and ``selectors`` matches in place."""
        for tag in element.find_all(self.NON_CONTENT_ELEMENTS):
            tag.decompose()

        for comment in element.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        removed = 0
        for selector in selectors:
            for tag in element.select(selector):
                tag.decompose()
                removed += 1

        if removed:
            self.logger.debug(f"Removed {removed} boilerplate blocks")

    def wrap_plain_text(self, value: Optional[str]) -> str:
        """Wrap text in a paragraph with HTML special characters escaped."""
        if not value:
            return ""
        return f"<p>{escape_html(value)}</p>"

    def truncate(self, value: str, limit: int = SHORT_TEXT_LENGTH) -> str:
        """Cut ``value`` to ``limit`` characters, ellipsis included."""
        if len(value) <= limit:
            return value
        return value[: limit - 3].rstrip() + "..."


def escape_html(value: str) -> str:
    """Escape ``&``, ``<`` and ``>``; quotes are left as-is inside text nodes."""
    return html.escape(value, quote=False)


# Convenience functions for common operations
def clean_text(value: Optional[str]) -> str:
    """Quick function to render HTML as normalized plain text."""
    return ContentCleaner().clean_text(value)
