"""
NewsMirror Input Validators
==========================

URL validation and normalization helpers shared by the feed poller, the
article scraper and the asset mirror.
"""

import re
from urllib.parse import urljoin, urlparse, urlunparse
from typing import Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    ALLOWED_SCHEMES = {'http', 'https'}

    SUSPICIOUS_PATTERNS = [
        r'^\s*javascript:',
        r'^\s*data:',
        r'^\s*file:',
        r'^\s*ftp:',
    ]

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()

        if cls.has_suspicious_patterns(url):
            raise ValidationError(
                "URL contains suspicious patterns",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        parsed = urlparse(url)

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            fragment=''
        ))

    @classmethod
    def has_suspicious_patterns(cls, url: str) -> bool:
        """Check for non-web URL schemes."""
        url_lower = url.lower()
        return any(re.search(pattern, url_lower) for pattern in cls.SUSPICIOUS_PATTERNS)


def is_absolute_http_url(url: str) -> bool:
    """True for ``http(s)://host/...`` URLs."""
    parsed = urlparse(url or "")
    return parsed.scheme.lower() in URLValidator.ALLOWED_SCHEMES and bool(parsed.netloc)


def normalize_link(link: Optional[str], base_url: Optional[str] = None) -> str:
    """Make a link absolute against ``base_url``.

    Absolute http(s) links are returned as-is (trimmed), protocol-relative
    links get ``https:``, anything else is joined onto the base URL. An empty
    or non-web link normalizes to ``""``.
    """
    if not link:
        return ""
    link = link.strip()
    if not link or URLValidator.has_suspicious_patterns(link):
        return ""
    if is_absolute_http_url(link):
        return link
    if link.startswith("//"):
        return f"https:{link}"
    if not base_url:
        return ""
    return urljoin(base_url.rstrip("/") + "/", link)
