"""Tests for the discovery job queue."""

from __future__ import annotations

import asyncio

import pytest

from meeting_scout.discovery.jobs import DiscoveryQueue, JobStatus, run_periodic


class TestDiscoveryQueue:
    @pytest.mark.asyncio
    async def test_job_reports_discovered_id(self):
        async def run(processed):
            return max(processed) + 1

        queue = DiscoveryQueue(run)
        await queue.start()
        job = queue.submit({10, 11})

        assert await job.wait(timeout=1) == 12
        assert job.status is JobStatus.found
        assert job.finished_at is not None
        await queue.stop()

    @pytest.mark.asyncio
    async def test_none_found(self):
        async def run(processed):
            return None

        queue = DiscoveryQueue(run)
        await queue.start()
        job = queue.submit()

        assert await job.wait(timeout=1) is None
        assert job.status is JobStatus.none_found
        await queue.stop()

    @pytest.mark.asyncio
    async def test_runs_are_serialized(self):
        active = 0
        overlaps = 0

        async def run(processed):
            nonlocal active, overlaps
            active += 1
            if active > 1:
                overlaps += 1
            await asyncio.sleep(0.01)
            active -= 1
            return len(processed)

        queue = DiscoveryQueue(run)
        await queue.start()
        jobs = [queue.submit(range(n)) for n in range(3)]
        results = [await job.wait(timeout=1) for job in jobs]

        assert results == [0, 1, 2]
        assert overlaps == 0
        await queue.stop()

    @pytest.mark.asyncio
    async def test_failure_is_reported_and_worker_survives(self):
        calls = 0

        async def run(processed):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("upstream down")
            return 5

        queue = DiscoveryQueue(run)
        await queue.start()
        failed = queue.submit()
        ok = queue.submit()

        with pytest.raises(RuntimeError, match="upstream down"):
            await failed.wait(timeout=1)
        assert failed.status is JobStatus.failed
        assert await ok.wait(timeout=1) == 5
        assert queue.running
        await queue.stop()
        assert not queue.running

    @pytest.mark.asyncio
    async def test_stop_drains_pending_jobs(self):
        async def run(processed):
            return 1

        queue = DiscoveryQueue(run)
        await queue.start()
        job = queue.submit()
        await queue.stop()

        assert job.status.finished
        assert queue.jobs[job.id] is job

    @pytest.mark.asyncio
    async def test_wait_times_out_when_not_started(self):
        async def run(processed):
            return 1

        queue = DiscoveryQueue(run)
        job = queue.submit()

        with pytest.raises(TimeoutError):
            await job.wait(timeout=0.01)
        assert job.status is JobStatus.queued

    @pytest.mark.asyncio
    async def test_finished_jobs_are_capped(self):
        async def run(processed):
            return 1

        queue = DiscoveryQueue(run, history=2)
        await queue.start()
        jobs = [queue.submit() for _ in range(5)]
        for job in jobs:
            await job.wait(timeout=1)
        await queue.stop()

        assert list(queue.jobs) == [jobs[3].id, jobs[4].id]


class TestRunPeriodic:
    @pytest.mark.asyncio
    async def test_reloads_processed_ids_before_each_run(self):
        processed: set[int] = set()
        sleeps: list[float] = []

        async def run(already):
            candidates = sorted({1002, 1050} - set(already))
            return candidates[0] if candidates else None

        async def record_sleep(seconds):
            sleeps.append(seconds)

        queue = DiscoveryQueue(run)
        await queue.start()
        outcomes = []
        async for job in run_periodic(
            queue, lambda: set(processed), interval=60, count=3, sleep=record_sleep
        ):
            outcomes.append(job.video_id)
            if job.video_id is not None:
                processed.add(job.video_id)
        await queue.stop()

        assert outcomes == [1002, 1050, None]
        assert sleeps == [60, 60]

    @pytest.mark.asyncio
    async def test_failed_runs_are_yielded_not_raised(self):
        async def run(already):
            raise RuntimeError("upstream down")

        async def no_sleep(seconds):
            return None

        queue = DiscoveryQueue(run)
        await queue.start()
        jobs = [
            job
            async for job in run_periodic(
                queue, frozenset, interval=1, count=2, sleep=no_sleep
            )
        ]
        await queue.stop()

        assert [job.status for job in jobs] == [JobStatus.failed, JobStatus.failed]
        assert jobs[0].error == "upstream down"
