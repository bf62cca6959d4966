"""
Integration Tests for Ingestion Runs
====================================

End-to-end passes through the real poller, scraper, mirror, assembler and
SQLite store, with HTTP and object storage served by in-memory fakes.
"""

import pytest
from unittest.mock import Mock

import requests

from newsmirror.ingestion.article_scraper import ArticleScraper
from newsmirror.ingestion.feed_poller import FeedPoller
from newsmirror.processing.asset_mirror import AssetMirror
from newsmirror.processing.content_assembler import ContentAssembler, extract_source_link
from newsmirror.scheduler.ingestion_scheduler import IngestionOrchestrator, IngestionRunStatus

pytestmark = pytest.mark.integration

FEED_URL = "https://example.com/rss"
STORE_URL = "http://minio.test:9000/upload"


def rss(*items):
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Example housing</title>'
        + "".join(items)
        + "</channel></rss>"
    )


def rss_item(guid, link, pub_date, title="Title", description=""):
    return (
        f"<item><title>{title}</title><link>{link}</link>"
        f"<description>{description}</description>"
        f"<pubDate>{pub_date}</pubDate><guid>{guid}</guid></item>"
    )


def article_page(body):
    return (
        '<html><head><meta property="og:title" content="Page title"></head>'
        f'<body><div class="item-text">{body}</div></body></html>'
    )


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def make_orchestrator(test_settings, fake_fetcher, fake_storage, news_repository, state_repository, sleep):
    """Build an orchestrator over the shared fakes and database."""
    def _build():
        crawler = test_settings.crawler
        return IngestionOrchestrator(
            settings=test_settings,
            repository=news_repository,
            poller=FeedPoller(fake_fetcher, base_url=crawler.base_url),
            scraper=ArticleScraper(
                fake_fetcher,
                body_selector=crawler.body_selector,
                base_url=crawler.base_url,
                strip_selectors=crawler.strip_selectors,
            ),
            mirror=AssetMirror(fake_fetcher, fake_storage),
            assembler=ContentAssembler(),
            state_repository=state_repository,
            sleep=sleep,
        )
    return _build


class TestWorkedExample:
    """A single new item with one inline image."""

    def test_item_is_stored_with_mirrored_image(self, make_orchestrator, fake_fetcher, fake_storage, news_repository):
        fake_fetcher.add(FEED_URL, rss(rss_item(
            "g1", "https://example.com/news/4821", "Thu, 05 Sep 2024 12:00:00 GMT",
            title="Rents rise", description="Rents rose again",
        )))
        fake_fetcher.add("https://example.com/news/4821", article_page(
            '<p>Rents rose.</p><img src="/img/a.jpg">'
        ))
        fake_fetcher.add("https://example.com/img/a.jpg", b"\xff\xd8", "image/jpeg")

        result = make_orchestrator().run_once()

        assert result.status == IngestionRunStatus.COMPLETED
        assert result.items_stored == 1

        record = news_repository.find_by_slug("prefix-4821")
        assert record is not None
        assert record.title == "Rents rise"
        assert record.short_text == "Rents rose again"
        assert f"{STORE_URL}/news/example/4821/inline-1.jpg" in record.content
        assert 'src="/img/a.jpg"' not in record.content
        assert record.content.endswith("<!-- source: https://example.com/news/4821 -->")
        assert extract_source_link(record.content) == "https://example.com/news/4821"
        assert record.main_image_url == f"{STORE_URL}/news/example/4821.jpg"
        assert "news/example/4821/inline-1.jpg" in fake_storage.objects


class TestIdempotence:

    @pytest.fixture
    def feed(self, fake_fetcher):
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g2", "https://example.com/news/2", "Thu, 05 Sep 2024 13:00:00 GMT"),
            rss_item("g1", "https://example.com/news/1", "Thu, 05 Sep 2024 12:00:00 GMT"),
        ))
        fake_fetcher.add("https://example.com/news/1", article_page("<p>One</p>"))
        fake_fetcher.add("https://example.com/news/2", article_page("<p>Two</p>"))

    def test_rerun_stores_nothing_new(self, feed, make_orchestrator, news_repository, db_connection):
        orchestrator = make_orchestrator()

        first = orchestrator.run_once()
        second = orchestrator.run_once()

        assert first.items_stored == 2
        assert second.items_stored == 0
        assert db_connection.execute_one("SELECT COUNT(*) AS n FROM news")["n"] == 2

    def test_restart_does_not_duplicate(self, feed, make_orchestrator, db_connection, fake_fetcher):
        make_orchestrator().run_once()
        fake_fetcher.calls.clear()

        # A new process starts with an empty seen cache but the stored watermark
        result = make_orchestrator().run_once()

        assert result.items_stored == 0
        assert result.skipped == {"behind_watermark": 2}
        assert fake_fetcher.calls == [FEED_URL]
        assert db_connection.execute_one("SELECT COUNT(*) AS n FROM news")["n"] == 2

    def test_changed_guid_with_same_link_is_not_duplicated(
        self, feed, make_orchestrator, fake_fetcher, db_connection, state_repository
    ):
        make_orchestrator().run_once()
        # Publisher re-issues item 1 with a new GUID and a newer date
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g1-edited", "https://example.com/news/1", "Thu, 05 Sep 2024 14:00:00 GMT"),
        ))

        result = make_orchestrator().run_once()

        assert result.items_stored == 0
        assert result.skipped == {"already_stored": 1}
        assert db_connection.execute_one("SELECT COUNT(*) AS n FROM news")["n"] == 2
        assert state_repository.load_watermark("example").hour == 14


class TestWatermarkMonotonicity:

    def test_watermark_only_moves_forward(self, make_orchestrator, fake_fetcher, utc):
        orchestrator = make_orchestrator()
        fake_fetcher.add("https://example.com/news/1", article_page("<p>One</p>"))
        fake_fetcher.add("https://example.com/news/2", article_page("<p>Two</p>"))

        fake_fetcher.add(FEED_URL, rss(
            rss_item("g2", "https://example.com/news/2", "Thu, 05 Sep 2024 13:00:00 GMT"),
        ))
        orchestrator.run_once()
        assert orchestrator.watermark == utc(2024, 9, 5, 13)

        fake_fetcher.add(FEED_URL, rss(
            rss_item("g1", "https://example.com/news/1", "Thu, 05 Sep 2024 12:00:00 GMT"),
        ))
        result = orchestrator.run_once()

        assert result.skipped == {"behind_watermark": 1}
        assert orchestrator.watermark == utc(2024, 9, 5, 13)

    def test_undated_items_never_move_the_watermark(self, make_orchestrator, fake_fetcher, news_repository):
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g9", "https://example.com/news/9", "not a date"),
        ))

        orchestrator = make_orchestrator()
        result = orchestrator.run_once()

        assert result.skipped == {"undated": 1}
        assert orchestrator.watermark is None
        assert news_repository.find_by_slug("prefix-9") is None


class TestPartialFailures:

    def test_failed_inline_image_keeps_original_reference(self, make_orchestrator, fake_fetcher, news_repository):
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g1", "https://example.com/news/7", "Thu, 05 Sep 2024 12:00:00 GMT"),
        ))
        fake_fetcher.add("https://example.com/news/7", article_page(
            '<img src="https://example.com/img/a.jpg">'
            '<img src="https://example.com/img/b.jpg">'
            '<img src="https://example.com/img/c.png">'
        ))
        fake_fetcher.add("https://example.com/img/a.jpg", b"a", "image/jpeg")
        fake_fetcher.add("https://example.com/img/b.jpg", requests.HTTPError("404 Client Error"))
        fake_fetcher.add("https://example.com/img/c.png", b"c", "image/png")

        result = make_orchestrator().run_once()

        assert result.status == IngestionRunStatus.COMPLETED
        content = news_repository.find_by_slug("prefix-7").content
        assert f"{STORE_URL}/news/example/7/inline-1.jpg" in content
        assert f"{STORE_URL}/news/example/7/inline-3.png" in content
        assert "https://example.com/img/b.jpg" in content
        assert content.count(STORE_URL) == 2

    def test_scrape_failure_stops_pass_and_keeps_watermark(
        self, make_orchestrator, fake_fetcher, news_repository, state_repository
    ):
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g1", "https://example.com/news/1", "Thu, 05 Sep 2024 12:00:00 GMT"),
            rss_item("g2", "https://example.com/news/2", "Thu, 05 Sep 2024 13:00:00 GMT"),
            rss_item("g3", "https://example.com/news/3", "Thu, 05 Sep 2024 14:00:00 GMT"),
        ))
        fake_fetcher.add("https://example.com/news/1", article_page("<p>One</p>"))
        fake_fetcher.add("https://example.com/news/2", requests.Timeout("read timed out"))
        fake_fetcher.add("https://example.com/news/3", article_page("<p>Three</p>"))

        orchestrator = make_orchestrator()
        result = orchestrator.run_once()

        assert result.status == IngestionRunStatus.FAILED
        assert news_repository.find_by_slug("prefix-1") is not None
        assert news_repository.find_by_slug("prefix-2") is None
        assert news_repository.find_by_slug("prefix-3") is None
        assert orchestrator.watermark is None
        assert state_repository.load_watermark("example") is None

    def test_next_pass_recovers_after_failure(self, make_orchestrator, fake_fetcher, news_repository):
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g1", "https://example.com/news/1", "Thu, 05 Sep 2024 12:00:00 GMT"),
            rss_item("g2", "https://example.com/news/2", "Thu, 05 Sep 2024 13:00:00 GMT"),
        ))
        fake_fetcher.add("https://example.com/news/1", article_page("<p>One</p>"))
        fake_fetcher.add("https://example.com/news/2", requests.ConnectionError("reset"))

        orchestrator = make_orchestrator()
        assert orchestrator.run_once().status == IngestionRunStatus.FAILED

        fake_fetcher.add("https://example.com/news/2", article_page("<p>Two</p>"))
        result = orchestrator.run_once()

        assert result.status == IngestionRunStatus.COMPLETED
        assert result.items_stored == 1
        assert news_repository.find_by_slug("prefix-2") is not None

    def test_unreachable_feed_fails_run(self, make_orchestrator, fake_fetcher):
        fake_fetcher.add(FEED_URL, requests.ConnectionError("refused"))

        result = make_orchestrator().run_once()

        assert result.status == IngestionRunStatus.FAILED
        assert result.items_polled == 0

    def test_rejected_insert_fails_run_and_keeps_watermark(
        self, make_orchestrator, fake_fetcher, news_repository, state_repository, monkeypatch
    ):
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g1", "https://example.com/news/1", "Thu, 05 Sep 2024 12:00:00 GMT"),
        ))
        fake_fetcher.add("https://example.com/news/1", article_page("<p>One</p>"))
        monkeypatch.setattr(news_repository, "ensure_category", lambda slug, name: "missing-category")

        orchestrator = make_orchestrator()
        result = orchestrator.run_once()

        assert result.status == IngestionRunStatus.FAILED
        assert result.skipped == {}
        assert news_repository.find_by_slug("prefix-1") is None
        assert orchestrator.watermark is None
        assert state_repository.load_watermark("example") is None


class TestContentFallback:

    def test_missing_body_stores_escaped_description(self, make_orchestrator, fake_fetcher, news_repository):
        fake_fetcher.add(FEED_URL, rss(rss_item(
            "g1", "https://example.com/news/5", "Thu, 05 Sep 2024 12:00:00 GMT",
            description="Rents &amp;amp; loans",
        )))
        fake_fetcher.add("https://example.com/news/5", "<html><body><p>Paywall</p></body></html>")

        make_orchestrator().run_once()

        record = news_repository.find_by_slug("prefix-5")
        assert record.content == (
            "<p>Rents &amp; loans</p>\n<!-- source: https://example.com/news/5 -->"
        )
        assert record.main_image_url is None


class TestPacing:

    def test_pause_after_each_stored_item(self, make_orchestrator, fake_fetcher, sleep):
        fake_fetcher.add(FEED_URL, rss(
            rss_item("g1", "https://example.com/news/1", "Thu, 05 Sep 2024 12:00:00 GMT"),
            rss_item("g2", "https://example.com/news/2", "Thu, 05 Sep 2024 13:00:00 GMT"),
            rss_item("g3", "https://example.com/news/3", "not a date"),
        ))
        fake_fetcher.add("https://example.com/news/1", article_page("<p>One</p>"))
        fake_fetcher.add("https://example.com/news/2", article_page("<p>Two</p>"))

        make_orchestrator().run_once()

        assert [call.args for call in sleep.call_args_list] == [(0.3,), (0.3,)]
