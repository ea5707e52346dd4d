"""Test fixtures for meeting discovery tests.

Provides offline stand-ins for every network collaborator so discovery
tests run without HTTP or a browser:

- FakeUpstream: scripted ownership prober over a simulated ID sequence
- FakeListing: listing reader returning a fixed page of IDs
- RecordingStore: in-memory scan-state store that keeps every save
- FIXED_NOW: deterministic wall-clock value for checkpoint timestamps
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

import pytest

from meeting_scout.discovery.listing import ListingResult
from meeting_scout.discovery.models import ProbeResult, ScanState

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class FakeUpstream:
    """Simulated platform answering probes from fixed ID sets.

    IDs in ``owned`` redirect to tenant storage, IDs in ``foreign`` to
    another tenant, IDs matching ``times_out`` never answer, anything
    else is a 404.
    """

    def __init__(
        self,
        owned: Iterable[int] = (),
        foreign: Iterable[int] = (),
        times_out: Callable[[int], bool] = lambda video_id: False,
    ) -> None:
        self.owned = set(owned)
        self.foreign = set(foreign)
        self.times_out = times_out
        self.calls: list[int] = []

    async def probe(self, video_id: int) -> ProbeResult:
        self.calls.append(video_id)
        if self.times_out(video_id):
            return ProbeResult.timeout(video_id)
        if video_id in self.owned:
            return ProbeResult.owned_by_tenant(video_id, 302)
        if video_id in self.foreign:
            return ProbeResult.foreign(video_id, 302)
        return ProbeResult.not_found(video_id)


class FakeListing:
    """Listing reader serving a fixed page."""

    def __init__(self, video_ids: Iterable[int] = (), reachable: bool = True) -> None:
        self.video_ids = list(video_ids)
        self.reachable = reachable
        self.requests: list[str] = []

    async def list_candidates(self, listing_url: str) -> ListingResult:
        self.requests.append(listing_url)
        if not self.reachable:
            return ListingResult(url=listing_url, reachable=False, error="net::ERR")
        return ListingResult(url=listing_url, video_ids=list(self.video_ids))


class RecordingStore:
    """In-memory scan-state store that records every save."""

    def __init__(self, initial: ScanState | None = None) -> None:
        self.current = initial
        self.saved: list[ScanState] = []
        self.loads = 0

    async def load(self) -> ScanState | None:
        self.loads += 1
        return self.current

    async def save(self, state: ScanState) -> bool:
        self.saved.append(state)
        self.current = state
        return True


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def scenario_upstream() -> FakeUpstream:
    """Owned {1002, 1050}, foreign 1000-1049 otherwise, timeouts from 1051."""
    return FakeUpstream(
        owned={1002, 1050},
        foreign=set(range(1000, 1050)) - {1002},
        times_out=lambda video_id: video_id >= 1051,
    )
