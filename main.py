#!/usr/bin/env python3
"""
NewsMirror - Incremental News Feed Crawler
==========================================

Main application entry point with CLI interface for management and testing.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py crawl-once                # Run one crawl pass now
    python main.py status                    # Show watermark and stored news
"""

import sys
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from newsmirror.config.settings import get_settings
from newsmirror.database.schema import DatabaseSchema
from newsmirror.database.connection import get_db_manager
from newsmirror.scheduler.ingestion_scheduler import IngestionRunStatus, build_orchestrator
from newsmirror.storage.news_repository import NewsRepository
from newsmirror.storage.object_storage import ObjectStorage
from newsmirror.storage.state_repository import CrawlerStateRepository
from newsmirror.utils.logging import configure_logging_from_settings
from newsmirror.utils.exceptions import NewsMirrorError

console = Console()
logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """NewsMirror - incremental news feed crawler."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _configure_logging(ctx, settings) -> None:
    configure_logging_from_settings(settings, debug=ctx.obj.get('debug', False))


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration from environment variables and .env."""
    console.print("[bold blue]🔧 Checking NewsMirror Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Database", _check_database_config, settings),
            ("Logging", _check_logging_config, settings),
            ("Scheduler", _check_scheduler_config, settings),
            ("Crawler", _check_crawler_config, settings),
            ("Storage", _check_storage_config, settings),
        ]

        all_ok = True
        for name, check, value in checks:
            ok, details = check(value)
            all_ok = all_ok and ok
            table.add_row(name, "✅" if ok else "❌", details)

        console.print(table)

        if not all_ok:
            sys.exit(1)

    except NewsMirrorError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def init_db(ctx):
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing NewsMirror Database[/bold blue]")

    try:
        settings = get_settings()
        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path).get_database_info()

        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")

        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        for table_name, count in info['table_counts'].items():
            info_table.add_row(f"Rows in {table_name}", str(count))

        console.print(info_table)

    except NewsMirrorError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option('--force', is_flag=True, help='Crawl even if the scheduler is disabled')
@click.pass_context
def crawl_once(ctx, force):
    """Run a single crawl pass now."""
    settings = get_settings()
    _configure_logging(ctx, settings)

    if force and not settings.scheduler.enabled:
        settings = settings.model_copy(
            update={"scheduler": settings.scheduler.model_copy(update={"enabled": True})}
        )

    console.print(f"[bold blue]🔄 Crawling {settings.crawler.feed_url}[/bold blue]")

    result = build_orchestrator(settings).run_once()

    table = Table(title="Crawl Result")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in result.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)

    if result.status is IngestionRunStatus.FAILED:
        console.print(f"[bold red]❌ Crawl failed: {result.error}[/bold red]")
        sys.exit(1)
    console.print(f"[bold green]✅ Stored {result.items_stored} new articles[/bold green]")


@cli.command()
def status():
    """Show the stored watermark and news count for the configured source."""
    settings = get_settings()
    db = get_db_manager(settings.database.path, pool_size=settings.database.pool_size)

    if not DatabaseSchema(settings.database.path).verify_schema():
        console.print("[yellow]Database not initialized; run init-db first[/yellow]")
        sys.exit(1)

    source_slug = settings.crawler.source_slug
    watermark = CrawlerStateRepository(db).load_watermark(source_slug)

    repository = NewsRepository(db)
    source = repository.ensure_source(source_slug, settings.crawler.source_name)

    table = Table(title=f"Source {source_slug}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Active", "yes" if source.is_active else "no")
    table.add_row("Scheduler enabled", "yes" if settings.scheduler.enabled else "no")
    table.add_row("Watermark", watermark.isoformat() if watermark else "none")
    table.add_row("Stored news", str(repository.count_by_source(source.id)))
    console.print(table)


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple[bool, str]:
    """Check database configuration."""
    try:
        db_path = Path(settings.database.path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            log_path = Path(settings.logging.file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_scheduler_config(settings) -> tuple[bool, str]:
    scheduler = settings.scheduler
    state = "enabled" if scheduler.enabled else "disabled"
    return True, f"{state}, every {scheduler.interval_minutes} min, delay {scheduler.item_delay_seconds}s"


def _check_crawler_config(settings) -> tuple[bool, str]:
    crawler = settings.crawler
    return True, f"Feed: {crawler.feed_url}, slug prefix: {crawler.slug_prefix}"


def _check_storage_config(settings) -> tuple[bool, str]:
    storage = settings.storage
    if not storage.access_key or not storage.secret_key:
        return False, "Access key or secret key not set"

    details = f"Endpoint: {storage.endpoint_url}, bucket: {storage.bucket}"
    if not ObjectStorage(storage).health_check():
        return False, f"{details} (unreachable)"
    return True, details


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 NewsMirror interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
