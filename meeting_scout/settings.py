"""Project settings loaded from pyproject.toml [tool.meeting-scout] section.

Configuration is organized into subsections:
  [tool.meeting-scout]       : upstream base URL, tenant, state/meetings endpoints
  [tool.meeting-scout.scan]  : prober, batch scanner and orchestrator tuning

All settings support environment variable overrides (MEETING_SCOUT_* prefix).
"""

import importlib.resources
import os
import tomllib
from dataclasses import dataclass
from functools import cache
from pathlib import Path


@cache
def _load_pyproject_settings() -> dict:
    """Load settings from pyproject.toml [tool.meeting-scout] section.

    Returns:
        Dictionary of settings from pyproject.toml, empty dict if not found.
    """
    try:
        files = importlib.resources.files("meeting_scout")
        pyproject_path = files.joinpath("..", "pyproject.toml")

        if not pyproject_path.is_file():  # type: ignore[union-attr]
            # Walk up to find pyproject.toml (for development)
            current = Path(__file__).resolve().parent
            while current != current.parent:
                candidate = current / "pyproject.toml"
                if candidate.exists():
                    pyproject_path = candidate
                    break
                current = current.parent
            else:
                return {}

        data = tomllib.loads(pyproject_path.read_text())  # type: ignore[union-attr]
        return data.get("tool", {}).get("meeting-scout", {})
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def _get_section(section: str) -> dict:
    """Get a subsection from [tool.meeting-scout.{section}]."""
    return _load_pyproject_settings().get(section, {})


def _parse_bool(value: str | bool) -> bool:
    """Parse a boolean value from string or bool."""
    if isinstance(value, bool):
        return value
    return value.lower() in ("true", "1", "yes")


def _get_setting(key: str, env_var: str, default: str | None = None) -> str | None:
    """Resolve a top-level setting: env var → pyproject → default."""
    if env := os.getenv(env_var):
        return env
    return _load_pyproject_settings().get(key, default)


# ─── Upstream platform ─────────────────────────────────────────────────────


def get_base_url() -> str:
    """Base URL of the video hosting platform (no trailing slash)."""
    url = _get_setting("base-url", "MEETING_SCOUT_BASE_URL", "")
    if not url:
        raise ValueError(
            "No upstream base URL configured. Set MEETING_SCOUT_BASE_URL "
            "or [tool.meeting-scout].base-url"
        )
    return url.rstrip("/")


def get_tenant() -> str:
    """Tenant identifier that appears as a path segment in owned redirects."""
    tenant = _get_setting("tenant", "MEETING_SCOUT_TENANT", "")
    if not tenant:
        raise ValueError(
            "No tenant configured. Set MEETING_SCOUT_TENANT "
            "or [tool.meeting-scout].tenant"
        )
    return tenant.strip("/")


# ─── Persistence endpoints ─────────────────────────────────────────────────


def get_state_url() -> str | None:
    """Remote scan-state endpoint, or None to rely on the local file only."""
    return _get_setting("state-url", "MEETING_SCOUT_STATE_URL")


def get_state_key() -> str:
    """Key under which the scanner checkpoint is stored."""
    return _get_setting("state-key", "MEETING_SCOUT_STATE_KEY", "video_scanner")


def get_state_dir() -> Path:
    """Directory for the local scan-state fallback file."""
    configured = _get_setting("state-dir", "MEETING_SCOUT_STATE_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".local" / "share" / "meeting-scout" / "state"


def get_meetings_url() -> str | None:
    """Dashboard meetings API listing already-processed meetings."""
    return _get_setting("meetings-url", "MEETING_SCOUT_MEETINGS_URL")


def get_meetings_file() -> Path | None:
    """Local meetings.json registry written by the ingestion pipeline."""
    configured = _get_setting("meetings-file", "MEETING_SCOUT_MEETINGS_FILE")
    return Path(configured).expanduser() if configured else None


def get_chromium_path() -> str | None:
    """Explicit Chromium executable for the listing reader."""
    return os.getenv("MEETING_SCOUT_CHROMIUM_PATH") or None


def get_headless() -> bool:
    """Whether the listing browser runs headless (default: True)."""
    if env := os.getenv("MEETING_SCOUT_HEADLESS"):
        return _parse_bool(env)
    return _parse_bool(_load_pyproject_settings().get("headless", True))


# ─── Scan tuning ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScanSettings:
    """Tuning knobs for the prober, batch scanner and orchestrator."""

    batch_size: int = 100
    batch_delay: float = 0.01
    probe_timeout: float = 3.0
    probe_retries: int = 1
    retry_backoff: float = 0.5
    timeout_threshold: int = 200
    max_range: int = 5000
    listing_probe_cap: int = 30
    month_id_buffer: int = 2000
    id_floor: int = 0
    overlap_margin: int = 50
    state_max_age_days: int = 7
    state_timeout: float = 5.0

    @property
    def terminal_timeout_threshold(self) -> int:
        """Consecutive timeouts after which the scan is past the end of IDs."""
        return 2 * self.timeout_threshold


# Field name → (pyproject key, env var, type)
_SCAN_FIELDS: dict[str, tuple[str, str, type]] = {
    "batch_size": ("batch-size", "MEETING_SCOUT_BATCH_SIZE", int),
    "batch_delay": ("batch-delay", "MEETING_SCOUT_BATCH_DELAY", float),
    "probe_timeout": ("probe-timeout", "MEETING_SCOUT_PROBE_TIMEOUT", float),
    "probe_retries": ("probe-retries", "MEETING_SCOUT_PROBE_RETRIES", int),
    "retry_backoff": ("retry-backoff", "MEETING_SCOUT_RETRY_BACKOFF", float),
    "timeout_threshold": (
        "timeout-threshold",
        "MEETING_SCOUT_TIMEOUT_THRESHOLD",
        int,
    ),
    "max_range": ("max-range", "MEETING_SCOUT_MAX_RANGE", int),
    "listing_probe_cap": (
        "listing-probe-cap",
        "MEETING_SCOUT_LISTING_PROBE_CAP",
        int,
    ),
    "month_id_buffer": ("month-id-buffer", "MEETING_SCOUT_MONTH_ID_BUFFER", int),
    "id_floor": ("id-floor", "MEETING_SCOUT_ID_FLOOR", int),
    "overlap_margin": ("overlap-margin", "MEETING_SCOUT_OVERLAP_MARGIN", int),
    "state_max_age_days": (
        "state-max-age-days",
        "MEETING_SCOUT_STATE_MAX_AGE_DAYS",
        int,
    ),
    "state_timeout": ("state-timeout", "MEETING_SCOUT_STATE_TIMEOUT", float),
}


def get_scan_settings() -> ScanSettings:
    """Build ScanSettings.

    Priority per field: env var → [tool.meeting-scout.scan] → dataclass default.

    Raises:
        ValueError: If a configured value cannot be converted.
    """
    section = _get_section("scan")
    values = {}
    for name, (key, env_var, cast) in _SCAN_FIELDS.items():
        raw = os.getenv(env_var)
        if raw is None:
            raw = section.get(key)
        if raw is None:
            continue
        try:
            values[name] = cast(raw)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for {key}: {raw!r}") from e
    return ScanSettings(**values)
