"""Queue for repeated or externally triggered discovery runs.

A scheduler (``meeting-scout discover watch``) or an HTTP handler that
wants a discovery run submits a DiscoveryJob and gets the job back
immediately; the job's ``wait()`` is its completion signal.  A single
worker drains the queue, so two triggers arriving together run one after
the other instead of racing on the scan checkpoint.

Usage:
    queue = DiscoveryQueue(run=orchestrator.discover_next)
    await queue.start()
    job = queue.submit(processed_ids)
    video_id = await job.wait()
    await queue.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Collection
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 50


class JobStatus(str, Enum):
    """Lifecycle of a discovery job."""

    queued = "queued"
    running = "running"
    found = "found"
    none_found = "none_found"
    failed = "failed"

    @property
    def finished(self) -> bool:
        return self in (JobStatus.found, JobStatus.none_found, JobStatus.failed)


@dataclass
class DiscoveryJob:
    """One requested discovery run and its eventual result."""

    processed: frozenset[int]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: JobStatus = JobStatus.queued
    submitted_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    video_id: int | None = None
    error: str | None = None
    _done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    async def settled(self, timeout: float | None = None) -> DiscoveryJob:
        """Block until the job finishes, whatever its outcome."""
        await asyncio.wait_for(self._done.wait(), timeout=timeout)
        return self

    async def wait(self, timeout: float | None = None) -> int | None:
        """Block until the job finishes; return the discovered ID.

        Raises:
            TimeoutError: If the job is still pending after ``timeout``.
            RuntimeError: If the run failed.
        """
        await self.settled(timeout)
        if self.status is JobStatus.failed:
            raise RuntimeError(f"Discovery job {self.id} failed: {self.error}")
        return self.video_id

    def _finish(self, status: JobStatus) -> None:
        self.status = status
        self.finished_at = time.time()
        self._done.set()


class DiscoveryQueue:
    """Serialize discovery runs through a single worker task.

    Args:
        run: Coroutine function taking the processed-ID set and returning
            the discovered ID or None (typically
            ``DiscoveryOrchestrator.discover_next``)
        history: Finished jobs kept in ``jobs``; older ones are dropped
    """

    def __init__(
        self,
        run: Callable[[Collection[int]], Awaitable[int | None]],
        history: int = DEFAULT_HISTORY,
    ) -> None:
        self._run = run
        self.history = max(history, 0)
        self._queue: asyncio.Queue[DiscoveryJob | None] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self.jobs: dict[str, DiscoveryJob] = {}

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._work(), name="discovery-queue")

    async def stop(self) -> None:
        """Finish queued jobs, then stop the worker."""
        if self._worker is None:
            return
        await self._queue.put(None)
        await self._worker
        self._worker = None

    def submit(self, processed: Collection[int] = frozenset()) -> DiscoveryJob:
        job = DiscoveryJob(processed=frozenset(processed))
        self.jobs[job.id] = job
        self._queue.put_nowait(job)
        logger.info("Queued discovery job %s (%d pending)", job.id, self._queue.qsize())
        return job

    def _prune(self) -> None:
        finished = [job_id for job_id, job in self.jobs.items() if job.status.finished]
        for job_id in finished[: max(len(finished) - self.history, 0)]:
            del self.jobs[job_id]

    async def _work(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return
                await self._execute(job)
                self._prune()
            finally:
                self._queue.task_done()

    async def _execute(self, job: DiscoveryJob) -> None:
        job.status = JobStatus.running
        try:
            video_id = await self._run(job.processed)
        except asyncio.CancelledError:
            job.error = "cancelled"
            job._finish(JobStatus.failed)
            raise
        except Exception as e:
            logger.exception("Discovery job %s failed", job.id)
            job.error = str(e)
            job._finish(JobStatus.failed)
            return
        job.video_id = video_id
        job._finish(JobStatus.found if video_id is not None else JobStatus.none_found)
        logger.info("Discovery job %s finished: %s", job.id, job.status.value)


async def run_periodic(
    queue: DiscoveryQueue,
    load_processed: Callable[[], Collection[int]],
    interval: float,
    count: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncIterator[DiscoveryJob]:
    """Submit a job every ``interval`` seconds and yield each once it settles.

    The processed-ID registry is reloaded before every run so videos
    handled downstream in the meantime are not rediscovered.  Runs
    forever when ``count`` is None.
    """
    runs = 0
    while count is None or runs < count:
        if runs:
            await sleep(interval)
        processed = await asyncio.to_thread(load_processed)
        job = await queue.submit(processed).settled()
        runs += 1
        yield job
