"""
Batch scanner over the shared video ID sequence.

Walks ``[start_id, start_id + max_range]`` in fixed-size batches.  Each
batch is an independent fan-out/fan-in unit: every probe in it runs
concurrently and the batch resolves completely before the scanner looks
at the results or starts the next one.  Batches run strictly in
increasing ID order with a short delay between them.

Termination:
    range_exhausted       every ID in the range was examined
    found_then_timeouts   a candidate was found and ``timeout_threshold``
                          consecutive timeouts followed it (rule A)
    past_end              ``2 * timeout_threshold`` consecutive timeouts,
                          regardless of candidates (rule B)

Not-yet-allocated IDs at the frontier answer with timeouts rather than
fast 404s, so a long run of timeouts is the signal that the scan has
walked off the end of the sequence.

The working counters live in a ScanProgress passed into the control loop
and returned; the final checkpoint is handed to the ScanStateStore exactly
once per run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Collection, Iterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from meeting_scout.discovery.models import (
    ProbeError,
    ProbeResult,
    ScanError,
    ScanOutcome,
    ScanProgress,
    StopReason,
)

if TYPE_CHECKING:
    from meeting_scout.discovery.prober import OwnershipProber
    from meeting_scout.discovery.state import ScanStateStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_BATCH_DELAY = 0.01
DEFAULT_TIMEOUT_THRESHOLD = 200


def _utcnow() -> datetime:
    return datetime.now(UTC)


def iter_batches(start_id: int, end_id: int, batch_size: int) -> Iterator[list[int]]:
    """Yield consecutive ID batches covering [start_id, end_id] inclusive."""
    for batch_start in range(start_id, end_id + 1, batch_size):
        yield list(range(batch_start, min(batch_start + batch_size, end_id + 1)))


class BatchScanner:
    """Concurrent, batch-synchronized scan for tenant-owned video IDs.

    Args:
        prober: OwnershipProber (anything with ``async probe(id)``)
        store: ScanStateStore receiving the final checkpoint, or None
        batch_size: Probes issued concurrently per batch
        batch_delay: Seconds to wait between batches
        timeout_threshold: Consecutive timeouts that end a successful scan
            (rule A); twice this ends any scan (rule B)
        sleep: Injectable async sleep
        clock: Injectable wall clock for the checkpoint timestamp
    """

    def __init__(
        self,
        prober: OwnershipProber,
        store: ScanStateStore | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        timeout_threshold: int = DEFAULT_TIMEOUT_THRESHOLD,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.prober = prober
        self.store = store
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.timeout_threshold = timeout_threshold
        self.terminal_timeout_threshold = 2 * timeout_threshold
        self._sleep = sleep
        self._clock = clock

    async def _probe_safely(self, video_id: int) -> tuple[ProbeResult, bool]:
        """Probe one ID; failures become timed-out results.

        Returns the result and whether the probe errored.
        """
        try:
            return await self.prober.probe(video_id), False
        except ProbeError as e:
            logger.warning("Probe %d failed: %s", video_id, e)
        except Exception as e:
            logger.exception("Unexpected error probing %d: %s", video_id, e)
        return ProbeResult.timeout(video_id), True

    async def _run_batch(
        self,
        batch: list[int],
        known_owned: Collection[int],
    ) -> tuple[list[ProbeResult], int]:
        to_probe = [v for v in batch if v not in known_owned]
        probed = await asyncio.gather(*(self._probe_safely(v) for v in to_probe))
        results = [r for r, _ in probed]
        errors = sum(1 for _, errored in probed if errored)
        results.extend(
            ProbeResult.owned_by_tenant(v, status_code=302)
            for v in batch
            if v in known_owned
        )
        results.sort(key=lambda r: r.id)
        return results, errors

    def _stop_reason(self, progress: ScanProgress) -> StopReason | None:
        if progress.consecutive_timeouts >= self.terminal_timeout_threshold:
            return StopReason.past_end
        if (
            progress.candidates
            and progress.consecutive_timeouts >= self.timeout_threshold
        ):
            return StopReason.found_then_timeouts
        return None

    async def scan(
        self,
        start_id: int,
        max_range: int,
        known_owned: Collection[int] = frozenset(),
        processed: Collection[int] = frozenset(),
        progress: ScanProgress | None = None,
    ) -> ScanOutcome:
        """Scan ``[start_id, start_id + max_range]`` for unprocessed owned IDs.

        Args:
            start_id: First ID to examine
            max_range: Width of the range beyond start_id
            known_owned: IDs already confirmed owned; not re-probed
            processed: IDs already handled downstream; never returned
            progress: Working state to continue from (e.g. seeded from the
                persisted checkpoint); a fresh one is created if None

        Returns:
            ScanOutcome with ascending candidates and the checkpoint written.

        Raises:
            ScanError: If the range is empty or every probe in the first
                batch failed outright.
        """
        if max_range < 0:
            raise ScanError(f"Invalid scan range: max_range={max_range}")
        if start_id < 0:
            raise ScanError(f"Invalid scan start: start_id={start_id}")

        progress = progress if progress is not None else ScanProgress()
        processed = frozenset(processed)
        known_owned = frozenset(known_owned)
        end_id = start_id + max_range
        seen_candidates = set(progress.candidates)
        started = time.monotonic()

        logger.info(
            "Scanning IDs %d-%d in batches of %d", start_id, end_id, self.batch_size
        )

        batches = iter_batches(start_id, end_id, self.batch_size)
        for index, batch in enumerate(batches):
            if index:
                await self._sleep(self.batch_delay)

            results, errors = await self._run_batch(batch, known_owned)
            if index == 0 and errors and errors == len(batch):
                raise ScanError(
                    f"All {errors} probes in the first batch ({batch[0]}-{batch[-1]}) "
                    "failed; upstream probing is unavailable"
                )

            progress.batches += 1
            progress.probes_issued += len(batch) - sum(
                1 for v in batch if v in known_owned
            )
            progress.errors += errors
            for result in results:
                progress.record(result)
                if (
                    result.owned
                    and result.id not in processed
                    and result.id not in seen_candidates
                ):
                    seen_candidates.add(result.id)
                    progress.candidates.append(result.id)
                    logger.info("Found owned video %d", result.id)

            logger.debug(
                "Batch %d-%d: valid<=%d consecutive_timeouts=%d candidates=%d",
                batch[0],
                batch[-1],
                progress.highest_valid_id,
                progress.consecutive_timeouts,
                len(progress.candidates),
            )

            reason = self._stop_reason(progress)
            if reason is not None:
                progress.stop_reason = reason
                logger.info(
                    "Stopping scan at %d: %s (%d consecutive timeouts)",
                    batch[-1],
                    reason.value,
                    progress.consecutive_timeouts,
                )
                break
        else:
            progress.stop_reason = StopReason.range_exhausted

        progress.candidates.sort()
        state = progress.to_state(self._clock())
        persisted = False
        if self.store is not None:
            persisted = await self.store.save(state)

        logger.info(
            "Scan finished in %.1fs: %d probes, %d timeouts, %d candidates, "
            "highest_valid=%d highest_scanned=%d",
            time.monotonic() - started,
            progress.probes_issued,
            progress.timeouts,
            len(progress.candidates),
            progress.highest_valid_id,
            progress.highest_scanned_id,
        )
        return ScanOutcome(
            candidates=list(progress.candidates),
            state=state,
            progress=progress,
            persisted=persisted,
        )
