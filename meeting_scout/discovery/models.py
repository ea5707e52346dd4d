"""
Data models for meeting video discovery.

ProbeResult is the ephemeral per-ID verdict produced by the ownership
prober.  ScanState is the durable checkpoint exchanged with the scan-state
API; it is a Pydantic model so remote payloads are validated on the way in
and serialized with the camelCase field names the API expects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from meeting_scout import MeetingScoutError

__all__ = [
    "DiscoveryError",
    "DiscoveryPhase",
    "ProbeError",
    "ProbeResult",
    "ScanError",
    "ScanOutcome",
    "ScanProgress",
    "ScanState",
    "StopReason",
]


# ============================================================================
# Errors
# ============================================================================


class ProbeError(MeetingScoutError):
    """A probe could not be issued at all (misconfigured URL or protocol)."""


class ScanError(MeetingScoutError):
    """The batch scanner could not make any progress."""


class DiscoveryError(MeetingScoutError):
    """Discovery failed without producing a usable answer."""


# ============================================================================
# Probe results
# ============================================================================


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing a single video ID.

    A timed-out result carries no evidence either way: it is neither
    confirmed absent nor confirmed owned.
    """

    id: int
    exists: bool = False
    owned: bool = False
    timed_out: bool = False
    status_code: int | None = None

    @classmethod
    def not_found(cls, video_id: int, status_code: int = 404) -> ProbeResult:
        return cls(id=video_id, status_code=status_code)

    @classmethod
    def foreign(cls, video_id: int, status_code: int) -> ProbeResult:
        return cls(id=video_id, exists=True, status_code=status_code)

    @classmethod
    def owned_by_tenant(cls, video_id: int, status_code: int) -> ProbeResult:
        return cls(id=video_id, exists=True, owned=True, status_code=status_code)

    @classmethod
    def timeout(cls, video_id: int) -> ProbeResult:
        return cls(id=video_id, timed_out=True)

    @property
    def confirmed_absent(self) -> bool:
        """True only when the upstream definitively reported the ID missing."""
        return not self.exists and not self.timed_out


# ============================================================================
# Scan state checkpoint
# ============================================================================


class ScanState(BaseModel):
    """Durable checkpoint of how far the scanner has progressed."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    highest_valid_id: int = Field(default=0, ge=0, alias="highestValidId")
    highest_scanned_id: int = Field(default=0, ge=0, alias="highestScannedId")
    scanned_at: datetime | None = Field(default=None, alias="scannedAt")

    @model_validator(mode="after")
    def _valid_not_beyond_scanned(self) -> ScanState:
        if self.highest_valid_id > self.highest_scanned_id:
            raise ValueError(
                f"highestValidId ({self.highest_valid_id}) exceeds "
                f"highestScannedId ({self.highest_scanned_id})"
            )
        return self

    @property
    def is_empty(self) -> bool:
        """True for the API's "no state yet" sentinel payload."""
        return self.highest_scanned_id == 0 and self.scanned_at is None

    def age_days(self, now: datetime) -> float | None:
        """Days since the checkpoint was written, None if undated."""
        if self.scanned_at is None:
            return None
        scanned_at = self.scanned_at
        if scanned_at.tzinfo is None:
            scanned_at = scanned_at.replace(tzinfo=UTC)
        return (now - scanned_at).total_seconds() / 86400

    def to_wire(self) -> dict:
        """JSON-ready dict using the API's camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Scanner working state
# ============================================================================


class StopReason(str, Enum):
    """Why a batch scan ended."""

    range_exhausted = "range_exhausted"
    found_then_timeouts = "found_then_timeouts"  # rule A
    past_end = "past_end"  # rule B


class DiscoveryPhase(str, Enum):
    """States visited by the discovery orchestrator."""

    fast_path = "fast_path"
    fallback_scan = "fallback_scan"
    found = "found"
    none_found = "none_found"


@dataclass
class ScanProgress:
    """Working copy of a scan, owned by the scanner's control loop.

    Passed into BatchScanner.scan() and returned from it; never shared
    between concurrent scans.
    """

    highest_valid_id: int = 0
    highest_scanned_id: int = 0
    consecutive_timeouts: int = 0
    candidates: list[int] = field(default_factory=list)
    probes_issued: int = 0
    batches: int = 0
    timeouts: int = 0
    errors: int = 0
    stop_reason: StopReason | None = None

    @classmethod
    def from_state(cls, state: ScanState | None) -> ScanProgress:
        if state is None:
            return cls()
        return cls(
            highest_valid_id=state.highest_valid_id,
            highest_scanned_id=state.highest_scanned_id,
        )

    def record(self, result: ProbeResult) -> None:
        """Fold one probe result into the running counters."""
        self.highest_scanned_id = max(self.highest_scanned_id, result.id)
        if result.timed_out:
            self.timeouts += 1
            self.consecutive_timeouts += 1
        elif result.exists:
            self.highest_valid_id = max(self.highest_valid_id, result.id)
            self.consecutive_timeouts = 0

    def to_state(self, scanned_at: datetime) -> ScanState:
        return ScanState(
            highest_valid_id=self.highest_valid_id,
            highest_scanned_id=self.highest_scanned_id,
            scanned_at=scanned_at,
        )


@dataclass
class ScanOutcome:
    """Result of one batch scan run."""

    candidates: list[int]
    state: ScanState
    progress: ScanProgress
    persisted: bool = False

    @property
    def stop_reason(self) -> StopReason | None:
        return self.progress.stop_reason
