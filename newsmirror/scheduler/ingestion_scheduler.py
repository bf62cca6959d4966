"""
NewsMirror Ingestion Scheduler
==============================

Runs the incremental crawl: poll the feed, gate each item against the
watermark and the store, scrape, mirror images, assemble and store, then
advance the watermark.

Run states: IDLE -> POLLING -> PROCESSING -> ADVANCING -> IDLE, with FAILED
entered when polling or an item raises an error that is fatal to the run.
A failed run keeps the previous watermark, so the next tick resumes from the
same point; records stored before the failure stay stored and are skipped by
slug on the next pass.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Any

from ..config.settings import NewsMirrorSettings, get_settings
from ..database.connection import get_db_manager
from ..database.models import ContentRecord, NewsSource
from ..database.schema import DatabaseSchema
from ..ingestion.article_scraper import ArticleScraper
from ..ingestion.content_cleaner import ContentCleaner
from ..ingestion.feed_poller import FeedPoller
from ..ingestion.http_client import HttpFetcher
from ..processing.asset_mirror import AssetMirror
from ..processing.content_assembler import ContentAssembler
from ..processing.dedup_gate import DedupGate, GateDecision, GateResult, PassTracker, SeenGuidCache
from ..storage.news_repository import NewsRepository
from ..storage.object_storage import ObjectStorage
from ..storage.state_repository import CrawlerStateRepository
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.exceptions import DatabaseError, ErrorCode, is_fatal_to_run


class IngestionState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    PROCESSING = "processing"
    ADVANCING = "advancing"
    FAILED = "failed"


class IngestionRunStatus(str, Enum):
    """How a run ended."""
    COMPLETED = "completed"
    EMPTY = "empty"
    DISABLED = "disabled"
    SOURCE_INACTIVE = "source_inactive"
    SKIPPED_BUSY = "skipped_busy"
    FAILED = "failed"


@dataclass
class IngestionRunResult:
    """Summary of one ``run_once`` call."""

    status: IngestionRunStatus
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_seconds: float = 0.0
    items_polled: int = 0
    items_accepted: int = 0
    items_stored: int = 0
    items_failed: int = 0
    skipped: Dict[str, int] = field(default_factory=dict)
    watermark_before: Optional[datetime] = None
    watermark_after: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is not IngestionRunStatus.FAILED

    def count_skip(self, decision: GateDecision) -> None:
        self.skipped[decision.value] = self.skipped.get(decision.value, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "items_polled": self.items_polled,
            "items_accepted": self.items_accepted,
            "items_stored": self.items_stored,
            "items_failed": self.items_failed,
            "skipped": dict(self.skipped),
            "watermark_before": self.watermark_before.isoformat() if self.watermark_before else None,
            "watermark_after": self.watermark_after.isoformat() if self.watermark_after else None,
            "error": self.error,
        }


class IngestionOrchestrator:
    """
    Sequences one incremental crawl of the configured feed.

    Owns the watermark and the seen cache; two orchestrators never share
    them. Overlapping ``run_once`` calls on the same instance are refused
    with a ``SKIPPED_BUSY`` result instead of racing on that state.
    """

    def __init__(
        self,
        settings: NewsMirrorSettings,
        repository: NewsRepository,
        poller: FeedPoller,
        scraper: ArticleScraper,
        mirror: AssetMirror,
        assembler: Optional[ContentAssembler] = None,
        state_repository: Optional[CrawlerStateRepository] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            settings: Application settings
            repository: Content store
            poller: Feed poller
            scraper: Article scraper
            mirror: Asset mirror
            assembler: Content assembler
            state_repository: Durable watermark store; the watermark lives
                in memory only when omitted or when persistence is disabled
            sleep: Pause function used between stored items
            clock: Monotonic clock of the seen cache
        """
        self.settings = settings
        self.repository = repository
        self.poller = poller
        self.scraper = scraper
        self.mirror = mirror
        self.assembler = assembler or ContentAssembler()
        self.state_repository = state_repository if settings.crawler.persist_watermark else None
        self._sleep = sleep

        self.cleaner = ContentCleaner()
        self.seen_cache = SeenGuidCache(
            max_entries=settings.limits.seen_cache_size,
            ttl_seconds=settings.limits.seen_cache_ttl_seconds,
            clock=clock,
        )
        self.gate = DedupGate(
            repository,
            slug_prefix=settings.crawler.slug_prefix,
            article_id_pattern=settings.crawler.article_id_pattern,
            seen_cache=self.seen_cache,
        )

        self.logger = get_logger_for_component("ingestion", source=settings.crawler.source_slug)

        self._watermark: Optional[datetime] = None
        self._watermark_loaded = False
        self._run_lock = threading.Lock()
        self.state = IngestionState.IDLE
        self.last_result: Optional[IngestionRunResult] = None

    @property
    def watermark(self) -> Optional[datetime]:
        """Publication time of the newest item seen by the last successful run."""
        return self._watermark

    def run_once(self) -> IngestionRunResult:
        """Run one crawl pass.

        Never raises for crawl errors: a failed pass is reported through the
        returned result and the log.
        """
        if not self._run_lock.acquire(blocking=False):
            self.logger.warning("Ingestion run already in progress; skipping this tick")
            return IngestionRunResult(
                status=IngestionRunStatus.SKIPPED_BUSY,
                watermark_before=self._watermark,
                watermark_after=self._watermark,
            )

        try:
            result = self._run()
            self.last_result = result
            return result
        finally:
            self.state = IngestionState.IDLE
            self._run_lock.release()

    def _run(self) -> IngestionRunResult:
        result = IngestionRunResult(
            status=IngestionRunStatus.COMPLETED, watermark_before=self._watermark
        )

        if not self.settings.scheduler.enabled:
            self.logger.warning("Skipping crawl because the scheduler is disabled")
            result.status = IngestionRunStatus.DISABLED
            result.watermark_after = self._watermark
            return result

        self.logger.info("Ingestion run started")

        with PerformanceLogger(self.logger, "ingestion run") as perf:
            try:
                self._execute(result)
            except Exception as e:
                self.state = IngestionState.FAILED
                result.status = IngestionRunStatus.FAILED
                result.error = str(e)
                self.logger.error(
                    f"Ingestion run failed; watermark stays at {_format(self._watermark)}: {e}",
                    extra={"stage": "run", "error_type": type(e).__name__},
                    exc_info=True,
                )

        result.duration_seconds = perf.duration or 0.0
        result.watermark_after = self._watermark

        if result.status is IngestionRunStatus.COMPLETED:
            self.logger.info(
                f"Ingestion run finished: polled={result.items_polled} "
                f"stored={result.items_stored} skipped={sum(result.skipped.values())}",
                extra=result.to_dict(),
            )
        return result

    def _execute(self, result: IngestionRunResult) -> None:
        self._load_watermark()
        result.watermark_before = self._watermark

        source = self.repository.ensure_source(
            self.settings.crawler.source_slug, self.settings.crawler.source_name
        )
        if not source.is_active:
            self.logger.warning(f"Source {source.slug} is disabled; skipping crawl")
            result.status = IngestionRunStatus.SOURCE_INACTIVE
            return

        self.state = IngestionState.POLLING
        items = self.poller.poll(self.settings.crawler.feed_url)
        result.items_polled = len(items)
        if not items:
            self.logger.info("Feed returned no items")
            result.status = IngestionRunStatus.EMPTY
            return

        category_id = self.repository.ensure_category(
            self.settings.crawler.category_slug, self.settings.crawler.category_name
        )

        self.state = IngestionState.PROCESSING
        tracker = PassTracker(self._watermark)

        for item in items:
            decision = self.gate.evaluate(item, self._watermark, tracker)
            if not decision.accepted:
                result.count_skip(decision.decision)
                continue

            result.items_accepted += 1
            try:
                stored = self._process_item(decision, category_id, source)
            except Exception as e:
                if is_fatal_to_run(e):
                    raise
                result.items_failed += 1
                self.logger.warning(
                    f"Item {decision.slug} failed and was skipped: {e}",
                    extra={"stage": "item", "article_id": decision.article_id},
                )
                continue

            self.gate.mark_seen(item)
            if not stored:
                result.count_skip(GateDecision.ALREADY_STORED)
                continue

            result.items_stored += 1
            if self.settings.scheduler.item_delay_seconds > 0:
                self._sleep(self.settings.scheduler.item_delay_seconds)

        self.state = IngestionState.ADVANCING
        self._advance(tracker.candidate)

    def _process_item(self, decision: GateResult, category_id: str, source: NewsSource) -> bool:
        """Scrape, mirror, assemble and store one accepted item.

        Returns:
            False if another writer stored the slug first
        """
        item = decision.item
        log = self.logger.bind(article_id=decision.article_id, slug=decision.slug)

        log.debug(f"Scraping {item.link}", extra={"stage": "scrape"})
        article = self.scraper.scrape(item.link)

        key_prefix = f"{self.settings.crawler.image_key_prefix}/{decision.article_id}"
        main_image_source = (
            item.enclosure_url
            or article.lead_image_url
            or (article.images[0] if article.images else None)
        )
        main_image_url = self.mirror.mirror(main_image_source, key_prefix)

        inline = self.mirror.mirror_inline(article.images, key_prefix)
        replacements = dict(inline)
        for absolute, stored_url in inline.items():
            raw = article.image_sources.get(absolute)
            if raw:
                replacements.setdefault(raw, stored_url)

        description = self.cleaner.clean_text(item.description)
        content = self.assembler.assemble(
            article.html,
            replacements,
            item.link,
            fallback_text=description or article.text,
        )

        short_text = description or article.summary or self.cleaner.truncate(article.text)
        record = ContentRecord(
            title=item.title or article.title or decision.slug,
            slug=decision.slug,
            short_text=short_text,
            content=content,
            main_image_url=main_image_url,
            category_id=category_id,
            source_id=source.id,
            created_at=item.published,
        )

        try:
            self.repository.create(record)
        except DatabaseError as e:
            if e.error_code is ErrorCode.DATABASE_CONSTRAINT:
                log.info(f"{decision.slug} was stored concurrently; skipping")
                return False
            raise

        log.info(
            f"Stored news {decision.slug}",
            extra={"stage": "store", "inline_images": len(inline), "main_image": bool(main_image_url)},
        )
        return True

    def _load_watermark(self) -> None:
        if self._watermark_loaded:
            return
        if self.state_repository is not None:
            self._watermark = self.state_repository.load_watermark(self.settings.crawler.source_slug)
            self.logger.info(f"Loaded watermark {_format(self._watermark)}")
        self._watermark_loaded = True

    def _advance(self, candidate: Optional[datetime]) -> None:
        """Commit the pass's candidate watermark; it never moves backwards."""
        if candidate is None:
            return
        if self._watermark is not None and candidate <= self._watermark:
            return

        if self.state_repository is not None:
            self.state_repository.save_watermark(self.settings.crawler.source_slug, candidate)

        self.logger.debug(f"Watermark advanced {_format(self._watermark)} -> {_format(candidate)}")
        self._watermark = candidate


def _format(value: Optional[datetime]) -> str:
    return value.isoformat() if value else "none"


class IngestionScheduler:
    """Runs an orchestrator on a fixed interval until stopped."""

    def __init__(self, orchestrator: IngestionOrchestrator, interval_minutes: Optional[int] = None):
        self.orchestrator = orchestrator
        self.interval_seconds = (
            interval_minutes or orchestrator.settings.scheduler.interval_minutes
        ) * 60
        self.logger = get_logger_for_component("scheduler")
        self._stop_event = threading.Event()
        self.runs = 0

    def tick(self) -> IngestionRunResult:
        """Run one pass and log its outcome."""
        result = self.orchestrator.run_once()
        self.runs += 1

        if result.status is IngestionRunStatus.FAILED:
            self.logger.error(f"Scheduled crawl failed: {result.error}")
        else:
            self.logger.debug(f"Scheduled crawl ended with status {result.status.value}")
        return result

    def run_forever(self, max_runs: Optional[int] = None) -> None:
        """Tick immediately, then every interval, until ``stop`` is called."""
        self.logger.info(f"Scheduler started, interval {self.interval_seconds // 60} minutes")

        while not self._stop_event.is_set():
            self.tick()
            if max_runs is not None and self.runs >= max_runs:
                break
            self._stop_event.wait(self.interval_seconds)

        self.logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop_event.set()


def build_orchestrator(settings: Optional[NewsMirrorSettings] = None) -> IngestionOrchestrator:
    """Wire an orchestrator against the configured database, storage and feed."""
    settings = settings or get_settings()

    DatabaseSchema(settings.database.path).create_tables()
    db = get_db_manager(settings.database.path, pool_size=settings.database.pool_size)

    fetcher = HttpFetcher(
        user_agent=settings.crawler.user_agent,
        timeout=settings.limits.request_timeout,
    )
    repository = NewsRepository(db)

    return IngestionOrchestrator(
        settings=settings,
        repository=repository,
        poller=FeedPoller(fetcher, base_url=settings.crawler.base_url),
        scraper=ArticleScraper(
            fetcher,
            body_selector=settings.crawler.body_selector,
            base_url=settings.crawler.base_url,
            strip_selectors=settings.crawler.strip_selectors,
        ),
        mirror=AssetMirror(
            fetcher,
            ObjectStorage(settings.storage),
            max_bytes=settings.limits.max_image_bytes,
        ),
        assembler=ContentAssembler(),
        state_repository=CrawlerStateRepository(db),
    )
