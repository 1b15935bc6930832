"""CLI interface for the archiver.

Uses Click for command parsing and Rich for output formatting.
"""

import asyncio
import logging
import sys
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from src.config.settings import ConfigurationError, get_settings
from src.scrapers.crawler import Crawler
from src.scrapers.fetcher import FetchError, PageFetcher
from src.scrapers.registry import get_extractor, get_site
from src.storage.database import Database
from src.storage.migrations import migrate as run_migrations
from src.storage.progress import ProgressTracker
from src.validation.dates import parse_yyyymmdd
from src.validation.schemas import CrawlResult

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.option("--db", "db_path", default=None, help="Database path or URL (default: ARCHIVER_DATABASE_URL).")
@click.pass_context
def cli(ctx, verbose, db_path):
    """Anond Archiver: preserve anond.hatelabo.jp permalinks."""
    setup_logging(verbose)
    settings = get_settings()
    ctx.ensure_object(dict)
    try:
        url = db_path or settings.require_database_url()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)
    db = Database(url, site=get_site(settings.site))
    db.create_tables()
    ctx.obj["db"] = db
    ctx.obj["settings"] = settings


def _crawler(ctx, fetcher: PageFetcher, light: bool = False) -> Crawler:
    settings = ctx.obj["settings"]
    db: Database = ctx.obj["db"]
    profile = settings.light_extractor if light else settings.extractor
    return Crawler(
        db,
        fetcher,
        get_extractor(profile, db.site),
        timeout=settings.crawl_timeout_seconds,
        page_delay=settings.page_delay_seconds,
        batch_delay=settings.batch_delay_seconds,
        stop_on_known=settings.stop_on_known,
    )


def _run(ctx, operation, light: bool = False):
    """Run ``operation(crawler)`` to completion, exiting non-zero on failure."""
    async def runner():
        async with PageFetcher() as fetcher:
            return await operation(_crawler(ctx, fetcher, light=light))

    try:
        return asyncio.run(runner())
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)
    except FetchError as e:
        console.print(f"[red]Scrape failed:[/red] {e}")
        sys.exit(1)


def _print_result(result: CrawlResult) -> None:
    console.print(f"  New URLs:      [green]{result.inserted_count}[/green]")
    console.print(f"  Existing URLs: [yellow]{result.existing_urls_count}[/yellow]")
    console.print(f"  Pages scraped: {result.pages_scraped}")
    if result.next_cursor:
        console.print(f"  Resume at:     [cyan]{result.next_cursor}[/cyan]")
    if result.timed_out:
        console.print("  [yellow]Stopped at the crawl deadline.[/yellow]")
    if result.error:
        console.print(f"  [red]Stopped early:[/red] {result.error}")


# ── Crawling ──────────────────────────────────────────────────────────────


@cli.command()
@click.option("--max-pages", type=int, default=None, help="Maximum number of listing pages to scrape.")
@click.option("--light", is_flag=True, help="Scrape a single page with the lightweight extractor.")
@click.pass_context
def scrape(ctx, max_pages, light):
    """Scrape the newest listing pages."""
    console.print("[bold blue]Scraping latest entries[/bold blue]")
    if light:
        result = _run(ctx, lambda c: c.light_crawl(), light=True)
    else:
        result = _run(ctx, lambda c: c.scrape_latest(page_budget=max_pages))
    _print_result(result)


@cli.command("scrape-historical")
@click.option("--date", "-d", "date_str", required=True, help="Date to scrape (YYYYMMDD).")
@click.pass_context
def scrape_historical(ctx, date_str):
    """Scrape every listing page of one past date."""
    console.print(f"[bold blue]Scraping {date_str}[/bold blue]")
    _print_result(_run(ctx, lambda c: c.scrape_date(date_str)))


@cli.command("scrape-historical-batch")
@click.option("--start-date", "-s", required=True, help="First date (YYYYMMDD).")
@click.option("--end-date", "-e", required=True, help="Last date (YYYYMMDD).")
@click.option("--max-days", type=int, default=None, help="Maximum number of dates to process.")
@click.pass_context
def scrape_historical_batch(ctx, start_date, end_date, max_days):
    """Scrape a range of past dates one after another."""
    limit = max_days or ctx.obj["settings"].default_max_days
    batch = _run(ctx, lambda c: c.scrape_date_batch(start_date, end_date, limit))

    table = Table(title=f"Batch scrape {start_date}..{end_date}")
    table.add_column("Date", style="cyan")
    table.add_column("New", style="green", justify="right")
    table.add_column("Existing", justify="right")
    table.add_column("Pages", justify="right")
    for r in batch.results:
        table.add_row(r.date, str(r.inserted_count), str(r.existing_urls_count), str(r.pages_scraped))
    for d, reason in batch.failed_dates.items():
        table.add_row(d, "[red]failed[/red]", "", reason[:40])
    console.print(table)
    console.print(f"Total new URLs: [green]{batch.total_new_urls}[/green]")


@cli.command("scrape-date")
@click.argument("month_day")
@click.pass_context
def scrape_date(ctx, month_day):
    """Scrape one month/day (MMDD) in every year of the site's history."""
    summary = _run(ctx, lambda c: c.scrape_month_day(month_day))
    console.print(
        f"{month_day}: [green]{summary.total_new_urls}[/green] new URLs over "
        f"{len(summary.years_processed)} years, {len(summary.failed_years)} failed."
    )


@cli.command("scrape-historical-range")
@click.option("--start-date", "-s", required=True, help="First month/day (MMDD).")
@click.option("--end-date", "-e", required=True, help="Last month/day (MMDD).")
@click.pass_context
def scrape_historical_range(ctx, start_date, end_date):
    """Scrape a range of month/days across every year (wraps at year end)."""
    summaries = _run(ctx, lambda c: c.scrape_month_day_range(start_date, end_date))
    total = sum(s.total_new_urls for s in summaries)
    console.print(f"Processed {len(summaries)} month/days, [green]{total}[/green] new URLs.")


# ── Progress table ────────────────────────────────────────────────────────


@cli.command("init-progress")
@click.option("--start-year", type=int, default=None, help="First year (default: the site's first year).")
@click.option("--end-year", type=int, default=None, help="Last year (default: last year).")
@click.option("--analyze", is_flag=True, help="Only seed dates with no archived URLs yet.")
@click.pass_context
def init_progress(ctx, start_year, end_year, analyze):
    """Seed the progress table with one pending row per date."""
    db: Database = ctx.obj["db"]
    tracker = ProgressTracker(db)
    start_year = start_year or db.site.first_year
    end_year = end_year or db.site.today().year - 1

    console.print(f"Seeding progress table for {start_year}..{end_year}...")
    if analyze:
        added = tracker.seed_missing(start_year, end_year)
    else:
        added = tracker.seed_range(start_year, end_year)
    console.print(f"Added [green]{added}[/green] dates.")


@cli.command("show-progress")
@click.pass_context
def show_progress(ctx):
    """Show crawl progress by status."""
    tracker = ProgressTracker(ctx.obj["db"])

    table = Table(title="Scrape Progress")
    table.add_column("Status", style="cyan")
    table.add_column("Dates", style="green", justify="right")
    for status, count in tracker.status_counts().items():
        table.add_row(status, str(count))
    console.print(table)

    in_progress = tracker.list_in_progress()
    if in_progress:
        table = Table(title="In progress")
        table.add_column("Date", style="cyan")
        table.add_column("Pages", justify="right")
        table.add_column("URLs", justify="right")
        for cp in in_progress:
            table.add_row(cp.date, str(cp.pages_scraped), str(cp.urls_found))
        console.print(table)


@cli.command("reset-progress")
@click.option("--date", "-d", "date_str", required=True, help="Date to reset (YYYYMMDD).")
@click.pass_context
def reset_progress(ctx, date_str):
    """Put one date back to pending with zeroed counters."""
    try:
        parse_yyyymmdd(date_str)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)
    if ProgressTracker(ctx.obj["db"]).reset(date_str):
        console.print(f"Reset [cyan]{date_str}[/cyan] to pending.")
    else:
        console.print(f"[yellow]No progress row for {date_str}.[/yellow]")


# ── Scheduled work ────────────────────────────────────────────────────────


def _print_tick(summary: dict) -> None:
    latest = summary["latest"]
    if latest is not None:
        console.print(f"Latest page: [green]{latest.inserted_count}[/green] new URLs.")
    advance = summary["progress"]
    if advance is None:
        console.print("[dim]No progress step taken.[/dim]")
    else:
        cp = advance.checkpoint
        console.print(
            f"Progress {cp.date}: {cp.status.value}, "
            f"{cp.pages_scraped} pages, {cp.urls_found} URLs total."
        )


@cli.command()
@click.pass_context
def tick(ctx):
    """One scheduled invocation: poll the newest page and advance one date."""
    settings = ctx.obj["settings"]
    tracker = ProgressTracker(ctx.obj["db"])
    summary = _run(
        ctx,
        lambda c: c.tick(tracker, page_budget=settings.progress_pages_per_tick),
        light=True,
    )
    _print_tick(summary)


@cli.command()
@click.option("--interval", type=int, default=None, help="Seconds between ticks (default: ARCHIVER_SCHEDULE_INTERVAL_SECONDS).")
@click.option("--count", type=int, default=None, help="Stop after this many ticks.")
@click.pass_context
def watch(ctx, interval, count):
    """Run ticks on a fixed schedule until interrupted."""
    settings = ctx.obj["settings"]
    interval = interval or settings.schedule_interval_seconds
    tracker = ProgressTracker(ctx.obj["db"])

    async def loop():
        done = 0
        async with PageFetcher() as fetcher:
            crawler = _crawler(ctx, fetcher, light=True)
            while count is None or done < count:
                console.print(f"[dim]{datetime.now():%H:%M:%S}[/dim] tick")
                _print_tick(await crawler.tick(tracker, page_budget=settings.progress_pages_per_tick))
                done += 1
                if count is None or done < count:
                    await asyncio.sleep(interval)

    try:
        asyncio.run(loop())
    except KeyboardInterrupt:
        console.print("Stopped.")


# ── Maintenance ───────────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def stats(ctx):
    """Show database statistics."""
    db: Database = ctx.obj["db"]
    s = db.stats()

    table = Table(title="Anond Archiver Database Stats")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Archived URLs", str(s["total_articles"]))
    table.add_row("Years with data", str(s["years_with_data"]))
    table.add_row("Progress checkpoints", str(s["total_checkpoints"]))

    console.print(table)


@cli.command()
@click.pass_context
def migrate(ctx):
    """Add missing tables/columns and backfill year/monthday columns."""
    run_migrations(ctx.obj["db"])
    console.print("[green]Migration complete.[/green]")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind.")
@click.option("--port", default=8000, help="Port for the API server.")
@click.pass_context
def serve(ctx, host, port):
    """Launch the HTTP API with uvicorn."""
    import uvicorn

    from src.api.routes import configure_db

    configure_db(ctx.obj["db"])

    console.print(f"Serving API at [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run("src.api.server:app", host=host, port=port)


if __name__ == "__main__":
    cli()
