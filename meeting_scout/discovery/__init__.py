"""Meeting video discovery on a shared, sequential-ID video platform.

Components, leaves first:
    prober        HEAD-probe one ID and classify ownership
    listing       Render a department listing and collect recent IDs
    state         Scan checkpoint with remote primary / local fallback
    scanner       Batch-synchronized concurrent scan with early termination
    orchestrator  Fast path + fallback scan, oldest unprocessed ID first
    jobs          Queue for externally triggered discovery runs
"""

from meeting_scout.discovery.models import (
    DiscoveryError,
    DiscoveryPhase,
    ProbeError,
    ProbeResult,
    ScanError,
    ScanOutcome,
    ScanProgress,
    ScanState,
    StopReason,
)
from meeting_scout.discovery.orchestrator import DiscoveryOrchestrator, DiscoveryReport
from meeting_scout.discovery.prober import OwnershipProber
from meeting_scout.discovery.scanner import BatchScanner
from meeting_scout.discovery.state import ScanStateStore

__all__ = [
    "BatchScanner",
    "DiscoveryError",
    "DiscoveryOrchestrator",
    "DiscoveryPhase",
    "DiscoveryReport",
    "OwnershipProber",
    "ProbeError",
    "ProbeResult",
    "ScanError",
    "ScanOutcome",
    "ScanProgress",
    "ScanState",
    "ScanStateStore",
    "StopReason",
]
