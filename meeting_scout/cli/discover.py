"""Discovery CLI: find new meeting recordings on the video platform.

    meeting-scout discover next                 # Oldest unprocessed video ID
    meeting-scout discover next -d cra          # For a specific department
    meeting-scout discover watch --interval 900 # Rediscover on a schedule
    meeting-scout discover scan --start 81000   # Manual batch scan
    meeting-scout discover state                # Show scan checkpoint
    meeting-scout discover departments          # List departments

``discover next`` output contract (consumed by the ingestion agent):

    exit 0   stdout holds exactly the discovered video ID
    exit 3   nothing new; ``NO_NEW_MEETINGS`` on stderr (not an error)
    exit 1   discovery failed; diagnostics on stderr, nothing on stdout
    exit 2   command-line usage error (reported by click)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Collection
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from meeting_scout import MeetingScoutError, settings
from meeting_scout.cli.logging import configure_cli_logging
from meeting_scout.config.departments import get_department, list_departments
from meeting_scout.discovery import (
    BatchScanner,
    DiscoveryOrchestrator,
    DiscoveryReport,
    OwnershipProber,
    ScanOutcome,
    ScanProgress,
    ScanState,
    ScanStateStore,
)
from meeting_scout.discovery.jobs import DiscoveryQueue, JobStatus, run_periodic
from meeting_scout.discovery.listing import PageListingReader
from meeting_scout.registry import load_processed_ids

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_NO_NEW_MEETINGS = 3


# =============================================================================
# Component wiring
# =============================================================================


def build_store(scan: settings.ScanSettings) -> ScanStateStore:
    return ScanStateStore(
        state_url=settings.get_state_url(),
        state_dir=settings.get_state_dir(),
        key=settings.get_state_key(),
        timeout=scan.state_timeout,
    )


def build_prober(scan: settings.ScanSettings) -> OwnershipProber:
    return OwnershipProber(
        base_url=settings.get_base_url(),
        tenant=settings.get_tenant(),
        timeout=scan.probe_timeout,
        retries=scan.probe_retries,
        backoff=scan.retry_backoff,
        max_connections=scan.batch_size,
    )


def build_scanner(
    prober: OwnershipProber, store: ScanStateStore, scan: settings.ScanSettings
) -> BatchScanner:
    return BatchScanner(
        prober,
        store,
        batch_size=scan.batch_size,
        batch_delay=scan.batch_delay,
        timeout_threshold=scan.timeout_threshold,
    )


def build_orchestrator(
    prober: OwnershipProber,
    store: ScanStateStore,
    listing_url: str | None,
    scan: settings.ScanSettings,
) -> DiscoveryOrchestrator:
    return DiscoveryOrchestrator(
        prober,
        build_scanner(prober, store, scan),
        store,
        listing_reader=PageListingReader(headless=settings.get_headless())
        if listing_url
        else None,
        listing_url=listing_url,
        settings=scan,
    )


async def run_discovery(
    listing_url: str | None,
    processed: Collection[int],
    scan: settings.ScanSettings,
) -> DiscoveryReport:
    """Wire up the components and run one discovery."""
    store = build_store(scan)
    async with build_prober(scan) as prober:
        orchestrator = build_orchestrator(prober, store, listing_url, scan)
        return await orchestrator.discover(processed)


async def run_watch(
    listing_url: str | None,
    load_processed: Callable[[], Collection[int]],
    interval: float,
    count: int | None,
    scan: settings.ScanSettings,
) -> None:
    """Run discovery every ``interval`` seconds through a DiscoveryQueue.

    Each discovered ID is printed to stdout on its own line.
    """
    store = build_store(scan)
    async with build_prober(scan) as prober:
        orchestrator = build_orchestrator(prober, store, listing_url, scan)
        queue = DiscoveryQueue(orchestrator.discover_next)
        await queue.start()
        try:
            async for job in run_periodic(queue, load_processed, interval, count):
                if job.status is JobStatus.found:
                    click.echo(job.video_id)
                elif job.status is JobStatus.failed:
                    err_console.print(f"[red]Discovery failed:[/red] {job.error}")
                else:
                    err_console.print("[dim]NO_NEW_MEETINGS[/dim]")
        finally:
            await queue.stop()


async def run_scan(
    start: int,
    max_range: int,
    processed: Collection[int],
    scan: settings.ScanSettings,
) -> ScanOutcome:
    """Run the batch scanner directly, continuing the persisted checkpoint."""
    store = build_store(scan)
    state = await store.load()
    async with build_prober(scan) as prober:
        scanner = build_scanner(prober, store, scan)
        return await scanner.scan(
            start,
            max_range,
            processed=processed,
            progress=ScanProgress.from_state(state),
        )


def _resolve_listing_url(department_id: str | None, listing_url: str | None) -> str:
    if listing_url:
        return listing_url
    department = get_department(department_id)
    return department.listing_url(settings.get_base_url())


def _load_processed(processed_file: Path | None, extra: tuple[int, ...]) -> frozenset[int]:
    return load_processed_ids(
        meetings_file=processed_file or settings.get_meetings_file(),
        meetings_url=settings.get_meetings_url(),
        extra=extra,
    )


# =============================================================================
# Commands
# =============================================================================


@click.group()
def discover():
    """Discover new meeting recordings.

    \b
    Commands:
      next               Print the oldest unprocessed owned video ID
      watch              Repeat discovery on a fixed interval
      scan               Batch-scan an ID range (manual backfill)
      state              Show the persisted scan checkpoint
      departments        List configured departments
    """
    pass


@discover.command("next")
@click.option("--department", "-d", default=None, help="Department ID (default from config)")
@click.option("--listing-url", default=None, help="Listing page URL (overrides --department)")
@click.option(
    "--no-listing",
    is_flag=True,
    default=False,
    help="Skip the listing fast path and go straight to the batch scan",
)
@click.option(
    "--processed-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="meetings.json holding already-processed meetings",
)
@click.option(
    "--processed",
    "processed_ids",
    type=int,
    multiple=True,
    help="Additional video ID to treat as processed (repeatable)",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log progress to stderr")
def discover_next(
    department: str | None,
    listing_url: str | None,
    no_listing: bool,
    processed_file: Path | None,
    processed_ids: tuple[int, ...],
    verbose: bool,
) -> None:
    """Find the oldest unprocessed meeting video and print its ID.

    Exits 3 with NO_NEW_MEETINGS on stderr when there is nothing new.

    \b
    Examples:
      meeting-scout discover next
      meeting-scout discover next -d planning-zoning
      meeting-scout discover next --no-listing --processed 81234
    """
    configure_cli_logging("discover", department=department, verbose=verbose)

    try:
        scan = settings.get_scan_settings()
        url = None if no_listing else _resolve_listing_url(department, listing_url)
        processed = _load_processed(processed_file, processed_ids)
        report = asyncio.run(run_discovery(url, processed, scan))
    except (MeetingScoutError, ValueError) as e:
        logger.error("Discovery failed: %s", e)
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(EXIT_FAILURE) from e

    if report.selected is None:
        err_console.print("NO_NEW_MEETINGS: no unprocessed videos found for this tenant")
        raise SystemExit(EXIT_NO_NEW_MEETINGS)

    if verbose:
        phases = " → ".join(p.value for p in report.phases)
        err_console.print(
            f"[dim]{phases}; {len(report.candidates)} candidate(s)[/dim]"
        )
    click.echo(report.selected)


@discover.command("watch")
@click.option("--department", "-d", default=None, help="Department ID (default from config)")
@click.option("--listing-url", default=None, help="Listing page URL (overrides --department)")
@click.option(
    "--no-listing",
    is_flag=True,
    default=False,
    help="Skip the listing fast path and go straight to the batch scan",
)
@click.option(
    "--processed-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="meetings.json holding already-processed meetings",
)
@click.option(
    "--interval",
    type=float,
    default=900.0,
    show_default=True,
    help="Seconds between discovery runs",
)
@click.option("--count", type=int, default=None, help="Stop after this many runs")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log progress to stderr")
def discover_watch(
    department: str | None,
    listing_url: str | None,
    no_listing: bool,
    processed_file: Path | None,
    interval: float,
    count: int | None,
    verbose: bool,
) -> None:
    """Run discovery repeatedly, printing each new video ID.

    The processed-ID registry is reloaded before every run.

    \b
    Examples:
      meeting-scout discover watch
      meeting-scout discover watch -d cra --interval 300
      meeting-scout discover watch --no-listing --count 4
    """
    configure_cli_logging("watch", department=department, verbose=verbose)

    try:
        scan = settings.get_scan_settings()
        url = None if no_listing else _resolve_listing_url(department, listing_url)
        asyncio.run(
            run_watch(
                url,
                lambda: _load_processed(processed_file, ()),
                interval,
                count,
                scan,
            )
        )
    except (MeetingScoutError, ValueError) as e:
        logger.error("Watch failed: %s", e)
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(EXIT_FAILURE) from e


@discover.command("scan")
@click.option("--start", "start_id", type=int, required=True, help="First video ID to probe")
@click.option(
    "--range",
    "max_range",
    type=int,
    default=None,
    help="IDs to cover beyond --start (default from config)",
)
@click.option(
    "--processed-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="meetings.json holding already-processed meetings",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log progress to stderr")
def discover_scan(
    start_id: int,
    max_range: int | None,
    processed_file: Path | None,
    as_json: bool,
    verbose: bool,
) -> None:
    """Batch-scan an ID range for owned videos and update the checkpoint.

    \b
    Examples:
      meeting-scout discover scan --start 81000
      meeting-scout discover scan --start 81000 --range 2000 --json
    """
    configure_cli_logging("scan", verbose=verbose)

    try:
        scan = settings.get_scan_settings()
        processed = _load_processed(processed_file, ())
        if max_range is None:
            max_range = scan.max_range
        outcome = asyncio.run(run_scan(start_id, max_range, processed, scan))
    except (MeetingScoutError, ValueError) as e:
        logger.error("Scan failed: %s", e)
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(EXIT_FAILURE) from e

    progress = outcome.progress
    if as_json:
        click.echo(
            json.dumps(
                {
                    "candidates": outcome.candidates,
                    "stopReason": outcome.stop_reason.value if outcome.stop_reason else None,
                    "probes": progress.probes_issued,
                    "timeouts": progress.timeouts,
                    "persisted": outcome.persisted,
                    "state": outcome.state.to_wire(),
                },
                indent=2,
            )
        )
        return

    table = Table(title=f"Scan from {start_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Stop reason", outcome.stop_reason.value if outcome.stop_reason else "-")
    table.add_row("Probes issued", f"{progress.probes_issued:,}")
    table.add_row("Timeouts", f"{progress.timeouts:,}")
    table.add_row("Highest valid ID", str(outcome.state.highest_valid_id))
    table.add_row("Highest scanned ID", str(outcome.state.highest_scanned_id))
    table.add_row("Checkpoint durable", "yes" if outcome.persisted else "local only")
    table.add_row(
        "Unprocessed owned",
        ", ".join(str(v) for v in outcome.candidates) or "none",
    )
    console.print(table)


def _print_state(state: ScanState | None) -> None:
    if state is None:
        console.print("[yellow]No scan state recorded[/yellow]")
        return
    table = Table(title="Scan checkpoint")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Highest valid ID", str(state.highest_valid_id))
    table.add_row("Highest scanned ID", str(state.highest_scanned_id))
    table.add_row(
        "Scanned at",
        state.scanned_at.isoformat() if state.scanned_at else "-",
    )
    console.print(table)


@discover.command("state")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def discover_state(as_json: bool) -> None:
    """Show the persisted scan checkpoint."""
    try:
        store = build_store(settings.get_scan_settings())
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(EXIT_FAILURE) from e
    state = asyncio.run(store.load())
    if as_json:
        click.echo(json.dumps(state.to_wire() if state else None, indent=2))
        return
    _print_state(state)


@discover.command("departments")
def discover_departments() -> None:
    """List configured departments and their listing views."""
    table = Table(title="Departments")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("View")
    for department in list_departments():
        table.add_row(department.id, department.name, department.view_id)
    console.print(table)
