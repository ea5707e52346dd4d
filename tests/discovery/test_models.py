"""Tests for discovery data models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from meeting_scout.discovery.models import ProbeResult, ScanProgress, ScanState


class TestProbeResult:
    def test_owned_implies_exists(self):
        result = ProbeResult.owned_by_tenant(1, 302)
        assert result.exists and result.owned

    def test_timeout_is_not_confirmed_absent(self):
        result = ProbeResult.timeout(1)
        assert result.timed_out
        assert not result.exists
        assert not result.confirmed_absent

    def test_not_found_is_confirmed_absent(self):
        assert ProbeResult.not_found(1).confirmed_absent


class TestScanState:
    def test_accepts_wire_names(self):
        state = ScanState.model_validate(
            {"highestValidId": 10, "highestScannedId": 20, "scannedAt": None}
        )
        assert state.highest_valid_id == 10
        assert state.highest_scanned_id == 20

    def test_valid_cannot_exceed_scanned(self):
        with pytest.raises(ValidationError):
            ScanState(highest_valid_id=21, highest_scanned_id=20)

    def test_negative_ids_rejected(self):
        with pytest.raises(ValidationError):
            ScanState(highest_valid_id=-1, highest_scanned_id=0)

    def test_empty_sentinel(self):
        assert ScanState().is_empty
        assert not ScanState(highest_scanned_id=5).is_empty

    def test_to_wire_uses_camel_case(self):
        stamp = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)
        state = ScanState(highest_valid_id=1, highest_scanned_id=2, scanned_at=stamp)
        wire = state.to_wire()
        assert wire["highestValidId"] == 1
        assert wire["highestScannedId"] == 2
        assert wire["scannedAt"].startswith("2026-03-01T09:30:00")

    def test_age_days(self):
        now = datetime(2026, 3, 8, tzinfo=UTC)
        state = ScanState(highest_scanned_id=1, scanned_at=now - timedelta(days=3))
        assert state.age_days(now) == pytest.approx(3.0)

    def test_naive_timestamp_treated_as_utc(self):
        now = datetime(2026, 3, 8, tzinfo=UTC)
        state = ScanState(highest_scanned_id=1, scanned_at=datetime(2026, 3, 7))
        assert state.age_days(now) == pytest.approx(1.0)

    def test_undated_state_has_no_age(self):
        assert ScanState(highest_scanned_id=1).age_days(datetime.now(UTC)) is None


class TestScanProgress:
    def test_round_trips_through_state(self):
        stamp = datetime(2026, 3, 1, tzinfo=UTC)
        state = ScanState(highest_valid_id=40, highest_scanned_id=90, scanned_at=stamp)
        progress = ScanProgress.from_state(state)
        progress.record(ProbeResult.not_found(95))
        assert progress.to_state(stamp) == ScanState(
            highest_valid_id=40, highest_scanned_id=95, scanned_at=stamp
        )

    def test_highest_scanned_never_decreases(self):
        progress = ScanProgress(highest_scanned_id=500)
        progress.record(ProbeResult.foreign(100, 302))
        assert progress.highest_scanned_id == 500
        assert progress.highest_valid_id == 100
