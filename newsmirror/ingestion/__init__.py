"""
NewsMirror Ingestion Module
===========================

Feed polling and article scraping components.

This module handles:
- Feed download and normalization into feed items
- Article page scraping and body extraction
- HTML cleanup and text normalization
"""

from .http_client import HttpFetcher, FetchResponse
from .feed_poller import FeedPoller, FeedItem
from .article_scraper import ArticleScraper, ArticleExtract

__all__ = [
    "HttpFetcher",
    "FetchResponse",
    "FeedPoller",
    "FeedItem",
    "ArticleScraper",
    "ArticleExtract",
]
