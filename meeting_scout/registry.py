"""Read-only view of meetings already processed downstream.

The ingestion pipeline records processed meetings in two places: a local
``meetings.json`` and the dashboard's meetings API (which survives
redeploys).  Discovery only needs the union of their video IDs, to avoid
handing the same recording to the pipeline twice.  Nothing here writes
to either source.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _parse_video_id(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def ids_from_meetings(
    meetings: Iterable[dict[str, Any]],
    statuses: frozenset[str] | None = None,
) -> set[int]:
    """Collect numeric ``videoId`` values from meeting records.

    Args:
        meetings: Meeting dicts as stored by the pipeline
        statuses: If given, only meetings whose ``status`` is in this set
            count; otherwise every meeting except ``upcoming`` does.
    """
    ids: set[int] = set()
    for meeting in meetings:
        if not isinstance(meeting, dict):
            continue
        status = meeting.get("status")
        if statuses is not None and status not in statuses:
            continue
        if statuses is None and status == "upcoming":
            continue
        video_id = _parse_video_id(meeting.get("videoId"))
        if video_id is not None:
            ids.add(video_id)
    return ids


def load_local_processed_ids(meetings_file: Path) -> set[int]:
    """Video IDs recorded in a local meetings.json (empty if unreadable)."""
    if not meetings_file.exists():
        return set()
    try:
        meetings = json.loads(meetings_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s: %s", meetings_file, e)
        return set()
    if not isinstance(meetings, list):
        logger.warning("Unexpected meetings file layout in %s", meetings_file)
        return set()
    return ids_from_meetings(meetings)


def fetch_remote_processed_ids(
    meetings_url: str,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> set[int]:
    """Video IDs of processed meetings reported by the dashboard API."""
    try:
        if client is not None:
            response = client.get(meetings_url, timeout=timeout)
        else:
            with httpx.Client(timeout=timeout) as own_client:
                response = own_client.get(meetings_url)
        response.raise_for_status()
        meetings = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Could not fetch processed meetings from %s: %s", meetings_url, e)
        return set()
    if isinstance(meetings, dict):
        meetings = meetings.get("meetings", [])
    if not isinstance(meetings, list):
        return set()
    return ids_from_meetings(meetings, statuses=frozenset({"processed"}))


def load_processed_ids(
    meetings_file: Path | None = None,
    meetings_url: str | None = None,
    extra: Iterable[int] = (),
    client: httpx.Client | None = None,
) -> frozenset[int]:
    """Union of processed video IDs from every configured source."""
    ids = set(extra)
    if meetings_file is not None:
        ids |= load_local_processed_ids(meetings_file)
    if meetings_url:
        ids |= fetch_remote_processed_ids(meetings_url, client=client)
    logger.debug("Processed registry holds %d video IDs", len(ids))
    return frozenset(ids)
