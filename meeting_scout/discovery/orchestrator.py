"""
Discovery orchestrator: find the oldest unprocessed meeting video.

    FAST_PATH ──hits──────────────────────────────┐
        │ no hits                                 ▼
        ▼                                   merge, sort ──▶ FOUND (smallest ID)
    FALLBACK_SCAN (resume from checkpoint) ──────┘      └──▶ NONE_FOUND

The fast path renders the department's listing page and probes the
recent IDs it links to.  Listings can be stale, so when it yields nothing
the batch scanner walks the ID sequence from the persisted checkpoint.
Results are returned oldest-first because downstream ingestion assumes
meetings arrive in chronological order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from meeting_scout.discovery.models import (
    DiscoveryError,
    DiscoveryPhase,
    ProbeError,
    ProbeResult,
    ScanError,
    ScanOutcome,
    ScanProgress,
    ScanState,
)
from meeting_scout.settings import ScanSettings

if TYPE_CHECKING:
    from meeting_scout.discovery.listing import ListingResult, PageListingReader
    from meeting_scout.discovery.prober import OwnershipProber
    from meeting_scout.discovery.scanner import BatchScanner
    from meeting_scout.discovery.state import ScanStateStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class DiscoveryReport:
    """Everything one discovery run looked at and decided."""

    lower_bound: int
    phases: list[DiscoveryPhase] = field(default_factory=list)
    listing: ListingResult | None = None
    fast_path_hits: list[int] = field(default_factory=list)
    scan: ScanOutcome | None = None
    resume_id: int | None = None
    candidates: list[int] = field(default_factory=list)

    @property
    def selected(self) -> int | None:
        """Oldest unprocessed owned ID, None when nothing new was found."""
        return self.candidates[0] if self.candidates else None

    @property
    def outcome(self) -> DiscoveryPhase:
        return DiscoveryPhase.found if self.candidates else DiscoveryPhase.none_found


class DiscoveryOrchestrator:
    """Combine the listing fast path with the batch-scan fallback.

    Args:
        prober: Ownership prober shared with the scanner
        scanner: Batch scanner used by the fallback phase
        store: Scan-state store the fallback resumes from
        listing_reader: Page-listing reader, or None to skip the fast path
        listing_url: Department listing page for the fast path
        settings: Tuning for lower bound, resume point and caps
        clock: Injectable wall clock used to judge checkpoint freshness
    """

    def __init__(
        self,
        prober: OwnershipProber,
        scanner: BatchScanner,
        store: ScanStateStore,
        listing_reader: PageListingReader | None = None,
        listing_url: str | None = None,
        settings: ScanSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.prober = prober
        self.scanner = scanner
        self.store = store
        self.listing_reader = listing_reader
        self.listing_url = listing_url
        self.settings = settings or ScanSettings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def lower_bound(self, processed: Collection[int]) -> int:
        """Oldest ID the fast path will consider."""
        floor = self.settings.id_floor
        if not processed:
            return floor
        return max(max(processed) - self.settings.month_id_buffer, floor)

    def resume_point(self, state: ScanState | None, processed: Collection[int]) -> int:
        """Where the fallback scan starts.

        Continues just behind the checkpoint frontier when the checkpoint
        is recent; otherwise restarts after the newest processed video.
        Never starts beyond the newest processed video: an owned ID an
        earlier scan found but nobody has processed yet lies below the
        frontier and must be reached again.
        """
        floor = self.settings.id_floor
        after_processed = max(processed) + 1 if processed else None
        if state is not None:
            age = state.age_days(self._clock())
            if age is not None and age <= self.settings.state_max_age_days:
                start = state.highest_scanned_id - self.settings.overlap_margin
                if after_processed is not None:
                    start = min(start, after_processed)
                return max(start, floor)
            logger.info("Scan state is stale (%.1f days); ignoring frontier", age or 0)
        if after_processed is not None:
            return max(after_processed, floor)
        return floor

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _probe_listed(self, video_id: int) -> ProbeResult | None:
        try:
            return await self.prober.probe(video_id)
        except ProbeError as e:
            logger.warning("Skipping listed video %d: %s", video_id, e)
            return None

    async def _fast_path(
        self, report: DiscoveryReport, processed: frozenset[int]
    ) -> list[int]:
        if self.listing_reader is None or not self.listing_url:
            return []
        report.phases.append(DiscoveryPhase.fast_path)
        listing = await self.listing_reader.list_candidates(self.listing_url)
        report.listing = listing

        eligible = [
            v
            for v in listing.video_ids
            if v >= report.lower_bound and v not in processed
        ][: self.settings.listing_probe_cap]
        if not eligible:
            logger.info("Listing offered no unprocessed IDs >= %d", report.lower_bound)
            return []

        logger.info("Probing %d listed videos for ownership", len(eligible))
        results = await asyncio.gather(*(self._probe_listed(v) for v in eligible))
        hits = [r.id for r in results if r is not None and r.owned]
        timed_out = sum(1 for r in results if r is not None and r.timed_out)
        if timed_out:
            logger.info("%d listed videos timed out during probing", timed_out)
        return hits

    async def _fallback_scan(
        self,
        report: DiscoveryReport,
        processed: frozenset[int],
    ) -> list[int]:
        report.phases.append(DiscoveryPhase.fallback_scan)
        state = await self.store.load()
        start = self.resume_point(state, processed)
        report.resume_id = start
        logger.info(
            "Falling back to batch scan from %d (checkpoint: %s)",
            start,
            state.highest_scanned_id if state else "none",
        )
        try:
            outcome = await self.scanner.scan(
                start,
                self.settings.max_range,
                processed=processed,
                progress=ScanProgress.from_state(state),
            )
        except ScanError as e:
            listing = report.listing
            if listing is not None and not listing.reachable:
                detail = f"listing unreachable ({listing.error}); scan failed: {e}"
            else:
                detail = f"scan failed: {e}"
            raise DiscoveryError(detail) from e
        report.scan = outcome
        return outcome.candidates

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def discover(self, processed: Collection[int] = frozenset()) -> DiscoveryReport:
        """Run discovery and return the full report.

        Raises:
            DiscoveryError: If neither phase could make progress.
        """
        processed = frozenset(processed)
        report = DiscoveryReport(lower_bound=self.lower_bound(processed))

        hits = await self._fast_path(report, processed)
        report.fast_path_hits = sorted(hits)

        scan_hits: list[int] = []
        if not hits:
            scan_hits = await self._fallback_scan(report, processed)

        report.candidates = sorted((set(hits) | set(scan_hits)) - processed)
        report.phases.append(report.outcome)
        if report.candidates:
            logger.info(
                "Discovered %d unprocessed videos; oldest is %d",
                len(report.candidates),
                report.selected,
            )
        else:
            logger.info("No new videos found")
        return report

    async def discover_next(self, processed: Collection[int] = frozenset()) -> int | None:
        """Oldest unprocessed owned video ID, or None when there is nothing new."""
        report = await self.discover(processed)
        return report.selected
