"""
Content Assembler
=================

Builds the stored article body: scraped HTML with mirrored image URLs, or an
escaped plain-text paragraph when no HTML was scraped, followed by a
provenance marker of the form ``<!-- source: <link> -->``.
"""

import re
from typing import Dict, Optional

from bs4 import BeautifulSoup

from ..ingestion.content_cleaner import ContentCleaner, escape_html
from ..utils.logging import get_logger_for_component

SOURCE_MARKER_PREFIX = "<!-- source: "
SOURCE_MARKER_SUFFIX = " -->"

SOURCE_MARKER_PATTERN = re.compile(r"<!-- source: (\S+) -->\s*$")

LAZYLOAD_CLASS = "lazyload"


def build_provenance_marker(source_link: str) -> str:
    return f"{SOURCE_MARKER_PREFIX}{source_link}{SOURCE_MARKER_SUFFIX}"


def extract_source_link(content: Optional[str]) -> Optional[str]:
    """Return the original link recorded at the end of stored content."""
    if not content:
        return None
    match = SOURCE_MARKER_PATTERN.search(content)
    return match.group(1) if match else None


def replace_all(text: str, replacements: Dict[str, str]) -> str:
    """Replace every occurrence of each key in a single pass.

    Longer keys win over keys they contain (an absolute URL over its
    relative path), and replaced text is never matched again.
    """
    keys = sorted((key for key in replacements if key), key=len, reverse=True)
    if not keys:
        return text
    pattern = re.compile("|".join(re.escape(key) for key in keys))
    return pattern.sub(lambda match: replacements[match.group(0)], text)


class ContentAssembler:
    """Assembles stored content from scraped parts."""

    def __init__(self):
        self.cleaner = ContentCleaner()
        self.logger = get_logger_for_component("content_assembler")

    def assemble(
        self,
        html: Optional[str],
        replacements: Dict[str, str],
        source_link: str,
        fallback_text: Optional[str] = None,
    ) -> str:
        """Build the content body.

        Args:
            html: Scraped body HTML, None if the page had no body container
            replacements: Original image URL (as written in ``html``) to
                mirrored URL
            source_link: Original article link recorded in the marker
            fallback_text: Plain text used when ``html`` is empty

        Returns:
            Non-empty content ending with the provenance marker
        """
        if html and html.strip():
            body = self.rewrite_images(html.strip(), replacements)
        else:
            body = self.cleaner.wrap_plain_text(fallback_text)

        marker = build_provenance_marker(source_link)
        if body:
            return f"{body}\n{marker}"
        return marker

    def rewrite_images(self, html: str, replacements: Dict[str, str]) -> str:
        """Point every occurrence of mirrored images at their stored copies."""
        if not replacements:
            return html

        expanded = dict(replacements)
        for original, mirrored in replacements.items():
            # Serialized HTML escapes "&" in attribute values
            escaped = escape_html(original)
            if escaped != original:
                expanded.setdefault(escaped, mirrored)

        updated = replace_all(html, expanded)
        return self._promote_lazy_images(updated, set(replacements.values()))

    def _promote_lazy_images(self, html: str, mirrored_urls: set) -> str:
        """Make mirrored lazy-loaded images load eagerly from ``src``."""
        if "data-src" not in html and LAZYLOAD_CLASS not in html:
            return html

        soup = BeautifulSoup(html, self.cleaner.parser)
        changed = False

        for img in soup.find_all("img"):
            data_src = img.get("data-src")
            stored = data_src if data_src in mirrored_urls else None
            if stored is None and img.get("src") in mirrored_urls:
                stored = img.get("src")
            if stored is None:
                continue

            img["src"] = stored
            if data_src is not None:
                del img["data-src"]

            classes = [value for value in img.get("class", []) if value != LAZYLOAD_CLASS]
            if classes:
                img["class"] = classes
            elif "class" in img.attrs:
                del img["class"]
            changed = True

        if not changed:
            return html

        self.logger.debug("Promoted lazy-loaded images to src")
        return soup.decode()
