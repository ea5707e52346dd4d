"""Tests for the meeting-scout CLI.

The discovery pipeline itself is patched out; these tests pin down the
command wiring and the ``discover next`` exit-code contract.
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from meeting_scout.cli import main
from meeting_scout.cli.discover import run_watch
from meeting_scout.discovery import (
    DiscoveryError,
    DiscoveryReport,
    ScanOutcome,
    ScanProgress,
    ScanState,
    StopReason,
)
from meeting_scout.settings import ScanSettings

DISCOVER = "meeting_scout.cli.discover"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MEETING_SCOUT_BASE_URL", "https://video.example.com")
    monkeypatch.setenv("MEETING_SCOUT_TENANT", "jupiterfl")
    monkeypatch.setenv("MEETING_SCOUT_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.delenv("MEETING_SCOUT_STATE_URL", raising=False)
    monkeypatch.delenv("MEETING_SCOUT_MEETINGS_URL", raising=False)
    with patch(f"{DISCOVER}.configure_cli_logging") as configure:
        yield configure


@pytest.fixture
def processed_ids():
    with patch(f"{DISCOVER}.load_processed_ids", return_value=frozenset({1001})) as m:
        yield m


def run_discovery_returning(*candidates, **kwargs):
    report = DiscoveryReport(lower_bound=0, candidates=list(candidates))
    return patch(f"{DISCOVER}.run_discovery", AsyncMock(return_value=report, **kwargs))


class TestCLIImports:
    """Test that the command groups are registered."""

    def test_discover_registered(self):
        assert "discover" in main.commands

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.strip()


class TestDiscoverNext:
    """Exit-code and output contract of ``discover next``."""

    def test_found_prints_only_the_id(self, runner, processed_ids):
        with run_discovery_returning(1002, 1050):
            result = runner.invoke(main, ["discover", "next"])

        assert result.exit_code == 0
        assert result.stdout == "1002\n"

    def test_nothing_new_exits_3(self, runner, processed_ids):
        with run_discovery_returning():
            result = runner.invoke(main, ["discover", "next"])

        assert result.exit_code == 3
        assert result.stdout == ""
        assert "NO_NEW_MEETINGS" in result.stderr

    def test_usage_error_is_not_nothing_new(self, runner, processed_ids):
        with run_discovery_returning(1002) as run:
            result = runner.invoke(main, ["discover", "next", "--bogus"])

        assert result.exit_code == 2
        assert "NO_NEW_MEETINGS" not in result.stderr
        run.assert_not_awaited()

    def test_failure_exits_1(self, runner, processed_ids):
        failing = AsyncMock(side_effect=DiscoveryError("scan failed: upstream down"))
        with patch(f"{DISCOVER}.run_discovery", failing):
            result = runner.invoke(main, ["discover", "next"])

        assert result.exit_code == 1
        assert result.stdout == ""
        assert "upstream down" in result.stderr

    def test_default_department_listing(self, runner, processed_ids):
        with run_discovery_returning(1002) as run:
            runner.invoke(main, ["discover", "next"])

        listing_url, processed, _ = run.await_args.args
        assert listing_url == "https://video.example.com/views/229/"
        assert processed == frozenset({1001})

    def test_department_option(self, runner, processed_ids):
        with run_discovery_returning(1002) as run:
            runner.invoke(main, ["discover", "next", "-d", "cra"])

        assert run.await_args.args[0] == "https://video.example.com/views/418/cra-meetings/"

    def test_no_listing_skips_fast_path(self, runner, processed_ids):
        with run_discovery_returning(1002) as run:
            runner.invoke(main, ["discover", "next", "--no-listing"])

        assert run.await_args.args[0] is None

    def test_unknown_department_exits_1(self, runner, processed_ids):
        with run_discovery_returning(1002) as run:
            result = runner.invoke(main, ["discover", "next", "-d", "library"])

        assert result.exit_code == 1
        run.assert_not_awaited()

    def test_extra_processed_ids_forwarded(self, runner, processed_ids):
        with run_discovery_returning(1002):
            runner.invoke(
                main, ["discover", "next", "--processed", "5", "--processed", "6"]
            )

        assert processed_ids.call_args.kwargs["extra"] == (5, 6)

    def test_logging_configured_per_department(self, runner, processed_ids, cli_env):
        with run_discovery_returning(1002):
            runner.invoke(main, ["discover", "next", "-d", "cra", "-v"])

        cli_env.assert_called_once_with("discover", department="cra", verbose=True)


class TestDiscoverWatch:
    def test_options_forwarded(self, runner):
        with patch(f"{DISCOVER}.run_watch", AsyncMock()) as run:
            result = runner.invoke(
                main,
                ["discover", "watch", "--no-listing", "--interval", "5", "--count", "2"],
            )

        assert result.exit_code == 0
        listing_url, load_processed, interval, count, _ = run.await_args.args
        assert listing_url is None
        assert callable(load_processed)
        assert (interval, count) == (5.0, 2)

    def test_registry_loaded_on_every_call(self, runner, processed_ids):
        with patch(f"{DISCOVER}.run_watch", AsyncMock()) as run:
            runner.invoke(main, ["discover", "watch", "--count", "1"])

        load_processed = run.await_args.args[1]
        assert load_processed() == frozenset({1001})
        assert load_processed() == frozenset({1001})
        assert processed_ids.call_count == 2

    def test_unknown_department_exits_1(self, runner):
        with patch(f"{DISCOVER}.run_watch", AsyncMock()) as run:
            result = runner.invoke(main, ["discover", "watch", "-d", "library"])

        assert result.exit_code == 1
        run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_watch_prints_each_discovery(self, capsys):
        orchestrator = MagicMock()
        orchestrator.discover_next = AsyncMock(side_effect=[1002, None, 1050])
        with (
            patch(f"{DISCOVER}.build_store"),
            patch(f"{DISCOVER}.build_prober"),
            patch(f"{DISCOVER}.build_orchestrator", return_value=orchestrator),
        ):
            await run_watch(None, lambda: {1001}, 0, 3, ScanSettings())

        assert capsys.readouterr().out == "1002\n1050\n"
        assert orchestrator.discover_next.await_count == 3
        assert orchestrator.discover_next.await_args.args[0] == frozenset({1001})


class TestDiscoverScan:
    def test_json_output(self, runner, processed_ids):
        progress = ScanProgress(
            highest_valid_id=1050,
            highest_scanned_id=1299,
            probes_issued=300,
            timeouts=249,
            stop_reason=StopReason.found_then_timeouts,
        )
        outcome = ScanOutcome(
            candidates=[1002, 1050],
            state=progress.to_state(datetime(2026, 3, 2, tzinfo=UTC)),
            progress=progress,
        )
        with patch(f"{DISCOVER}.run_scan", AsyncMock(return_value=outcome)) as run:
            result = runner.invoke(
                main, ["discover", "scan", "--start", "1000", "--range", "500", "--json"]
            )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["candidates"] == [1002, 1050]
        assert data["stopReason"] == "found_then_timeouts"
        assert data["state"]["highestScannedId"] == 1299
        assert run.await_args.args[:2] == (1000, 500)


class TestDiscoverState:
    def test_json_output(self, runner):
        store = MagicMock()
        store.load = AsyncMock(
            return_value=ScanState(highest_valid_id=10, highest_scanned_id=20)
        )
        with patch(f"{DISCOVER}.build_store", return_value=store):
            result = runner.invoke(main, ["discover", "state", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["highestValidId"] == 10

    def test_reads_local_file_without_remote(self, runner, tmp_path):
        result = runner.invoke(main, ["discover", "state", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) is None


class TestDiscoverDepartments:
    def test_lists_departments(self, runner):
        result = runner.invoke(main, ["discover", "departments"])

        assert result.exit_code == 0
        assert "town-council" in result.stdout
