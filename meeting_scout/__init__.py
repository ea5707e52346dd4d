"""Incremental discovery of municipal meeting recordings."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("meeting-scout")
except PackageNotFoundError:
    __version__ = "0.0.0"


class MeetingScoutError(Exception):
    """Base class for meeting-scout errors."""
