#!/usr/bin/env python3
"""
NewsMirror Ingestion Scheduler Runner
=====================================

Main entry point for running the crawler on its fixed interval.
Handles initialization, startup, and graceful shutdown.
"""

import sys
import signal
import argparse
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from newsmirror.config.settings import get_settings
from newsmirror.scheduler.ingestion_scheduler import (
    IngestionScheduler,
    IngestionRunStatus,
    build_orchestrator,
)
from newsmirror.utils.exceptions import handle_exception
from newsmirror.utils.logging import configure_logging_from_settings, get_logger_for_component
from newsmirror.utils.process_lock import ensure_single_instance


def main():
    """Main entry point for the scheduler service."""
    parser = argparse.ArgumentParser(description='NewsMirror Ingestion Scheduler')
    parser.add_argument('--once', action='store_true',
                        help='Run a single crawl pass and exit (default)')
    parser.add_argument('--service', action='store_true',
                        help='Run continuously on the configured interval (for Docker/systemd)')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    settings = get_settings()
    configure_logging_from_settings(settings, debug=args.debug)
    logger = get_logger_for_component("scheduler_runner", source=settings.crawler.source_slug)

    logger.info("Starting NewsMirror ingestion scheduler...")

    try:
        orchestrator = build_orchestrator(settings)

        if args.service:
            lock = ensure_single_instance(
                f"crawler-{settings.crawler.source_slug}", lock_dir=settings.scheduler.lock_dir
            )
            scheduler = IngestionScheduler(orchestrator)

            def _handle_signal(signum, frame):
                logger.info(f"Received signal {signum}, stopping scheduler")
                scheduler.stop()

            signal.signal(signal.SIGTERM, _handle_signal)
            signal.signal(signal.SIGINT, _handle_signal)

            print("🕐 NewsMirror ingestion service starting...")
            print(f"📅 Crawling {settings.crawler.feed_url} every {settings.scheduler.interval_minutes} minutes")
            if not settings.scheduler.enabled:
                print("⚠️  Scheduler is disabled; ticks will not crawl (set NEWSMIRROR_SCHEDULER__ENABLED=true)")
            print("Press Ctrl+C to stop.")

            try:
                scheduler.run_forever()
            finally:
                lock.release()

        else:
            print("🔄 Running one crawl pass...")
            result = orchestrator.run_once()

            summary = result.to_dict()
            for key in ("status", "items_polled", "items_stored", "skipped",
                        "watermark_before", "watermark_after", "error"):
                print(f"  {key}: {summary[key]}")

            sys.exit(0 if result.status is not IngestionRunStatus.FAILED else 1)

    except KeyboardInterrupt:
        print("\n👋 Scheduler stopped by user")
        logger.info("Scheduler stopped by user")
    except Exception as e:
        error = handle_exception(e, logger, "scheduler startup")
        print(f"❌ Failed to start scheduler: {error.user_message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
