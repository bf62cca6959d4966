"""
Watermark and Dedup Gate
========================

Decides, item by item, whether a feed entry is new.

Checks, in order:
1. identity (GUID or link) in the in-process seen cache: ``SEEN``
2. no parseable publication time: ``UNDATED``
3. publication time not after the watermark: ``BEHIND_WATERMARK``
4. a record with the derived slug is already stored: ``ALREADY_STORED``

Before check 3 every dated item raises the pass's candidate watermark, so
the next pass starts past everything this one observed. The seen cache is a
bounded LRU with a time window; the unique slug in the store stays the
authoritative check.
"""

import hashlib
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Pattern, Union

from ..ingestion.feed_poller import FeedItem
from ..storage.news_repository import NewsRepository
from ..utils.logging import get_logger_for_component

FALLBACK_ID_PATTERN = re.compile(r"[^a-z0-9]+")


class SeenGuidCache:
    """Bounded identity cache with least-recently-used eviction and expiry."""

    def __init__(
        self,
        max_entries: int = 5000,
        ttl_seconds: float = 7 * 24 * 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    def __contains__(self, key: str) -> bool:
        added_at = self._entries.get(key)
        if added_at is None:
            return False
        if self._clock() - added_at >= self.ttl_seconds:
            del self._entries[key]
            return False
        self._entries.move_to_end(key)
        return True

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, key: str) -> None:
        if not key:
            return
        self._entries[key] = self._clock()
        self._entries.move_to_end(key)
        self._evict()

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        while self._entries:
            oldest_key, added_at = next(iter(self._entries.items()))
            if len(self._entries) > self.max_entries or now - added_at >= self.ttl_seconds:
                del self._entries[oldest_key]
            else:
                break


def extract_article_id(link: str, identity: str, pattern: Union[str, Pattern]) -> str:
    """Stable article id: the first group of ``pattern`` in the link.

    Without a match the identity is reduced to ``[a-z0-9-]``; an identity with
    no usable characters falls back to a short hash of itself.
    """
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    match = compiled.search(link or "")
    if match and match.group(1):
        return match.group(1)

    fallback = FALLBACK_ID_PATTERN.sub("-", (identity or "").lower()).strip("-")
    if fallback:
        return fallback
    return hashlib.sha1((identity or link or "").encode("utf-8")).hexdigest()[:16]


def build_slug(prefix: str, article_id: str) -> str:
    return f"{prefix}-{article_id}"


class GateDecision(str, Enum):
    """Outcome of the gate for one item."""
    SEEN = "seen"
    UNDATED = "undated"
    BEHIND_WATERMARK = "behind_watermark"
    ALREADY_STORED = "already_stored"
    ACCEPTED = "accepted"


@dataclass
class GateResult:
    decision: GateDecision
    item: FeedItem
    article_id: Optional[str] = None
    slug: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.decision is GateDecision.ACCEPTED


class PassTracker:
    """Candidate watermark of one polling pass.

    Starts at the current watermark and only ever moves forward.
    """

    def __init__(self, watermark: Optional[datetime] = None):
        self.starting_watermark = watermark
        self.candidate = watermark

    def observe(self, published: datetime) -> None:
        if self.candidate is None or published > self.candidate:
            self.candidate = published


class DedupGate:
    """Applies the seen-cache, watermark and stored-slug checks."""

    def __init__(
        self,
        repository: NewsRepository,
        slug_prefix: str,
        article_id_pattern: Union[str, Pattern],
        seen_cache: Optional[SeenGuidCache] = None,
    ):
        """Initialize the gate.

        Args:
            repository: Content store queried by slug
            slug_prefix: Prefix of derived slugs
            article_id_pattern: Regex whose first group is the article id
            seen_cache: Identity cache (a default-sized one when omitted)
        """
        self.repository = repository
        self.slug_prefix = slug_prefix
        self.article_id_pattern = re.compile(article_id_pattern) if isinstance(article_id_pattern, str) else article_id_pattern
        self.seen_cache = seen_cache if seen_cache is not None else SeenGuidCache()
        self.logger = get_logger_for_component("dedup_gate")

    def slug_for(self, item: FeedItem) -> GateResult:
        """Accepted result carrying the article id and slug of ``item``."""
        article_id = extract_article_id(item.link, item.identity, self.article_id_pattern)
        return GateResult(
            decision=GateDecision.ACCEPTED,
            item=item,
            article_id=article_id,
            slug=build_slug(self.slug_prefix, article_id),
        )

    def evaluate(
        self,
        item: FeedItem,
        watermark: Optional[datetime],
        tracker: Optional[PassTracker] = None,
    ) -> GateResult:
        """Decide whether ``item`` should be scraped.

        Args:
            item: Feed item to check
            watermark: Last successful publication time, None before the
                first successful pass
            tracker: Pass tracker updated with the item's publication time

        Returns:
            GateResult; only ``ACCEPTED`` items carry on to scraping

        Raises:
            DatabaseError: If the stored-slug lookup fails
        """
        identity = item.identity
        if identity in self.seen_cache:
            return GateResult(GateDecision.SEEN, item)

        if item.published is None:
            self.logger.debug(
                f"Skipping undated item {identity} (raw date {item.published_raw!r})"
            )
            return GateResult(GateDecision.UNDATED, item)

        if tracker is not None:
            tracker.observe(item.published)

        if watermark is not None and item.published <= watermark:
            return GateResult(GateDecision.BEHIND_WATERMARK, item)

        result = self.slug_for(item)
        if self.repository.find_by_slug(result.slug) is not None:
            self.seen_cache.add(identity)
            self.logger.debug(f"Skipping {identity}: {result.slug} already stored")
            result.decision = GateDecision.ALREADY_STORED
            return result

        return result

    def mark_seen(self, item: FeedItem) -> None:
        self.seen_cache.add(item.identity)
