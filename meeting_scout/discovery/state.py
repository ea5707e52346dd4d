"""Scan-state persistence with a remote primary and a local-file fallback.

The scanner runs in containers whose local disk does not survive a
redeploy, so the checkpoint lives behind a small HTTP endpoint served by
the dashboard.  The local JSON file is only a cache:

- load(): the remote answer is authoritative, including "no state yet".
  The local file is read only when the remote could not be reached at all
  (connection error or timeout, or no remote configured).  A non-200 or
  malformed response is treated as "no state" without consulting the file.
- save(): the local file is written first, then the remote PUT.  After a
  successful PUT the local file is deleted so a later run never prefers a
  stale local copy over the remote source of truth.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import httpx
from pydantic import ValidationError

from meeting_scout.discovery.models import ScanState

logger = logging.getLogger(__name__)

DEFAULT_STATE_TIMEOUT = 5.0


class RemoteUnavailable(Exception):
    """The remote scan-state endpoint did not respond."""


class ScanStateStore:
    """Load and save the scanner checkpoint.

    Args:
        state_url: Remote GET/PUT endpoint, or None for local-only operation
        state_dir: Directory holding the local fallback file
        key: Checkpoint key; names the local file
        timeout: Remote request timeout in seconds
        client: Optional pre-built httpx.AsyncClient (not closed by the store)
    """

    def __init__(
        self,
        state_url: str | None,
        state_dir: Path,
        key: str = "video_scanner",
        timeout: float = DEFAULT_STATE_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.state_url = state_url
        self.local_path = Path(state_dir) / f"{key}.json"
        self.key = key
        self.timeout = timeout
        self._client = client

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    async def _request(self, method: str, **kwargs) -> httpx.Response:
        if not self.state_url:
            raise RemoteUnavailable("no remote scan-state URL configured")
        try:
            if self._client is not None:
                return await self._client.request(
                    method, self.state_url, timeout=self.timeout, **kwargs
                )
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, self.state_url, **kwargs)
        except httpx.TransportError as e:
            raise RemoteUnavailable(f"{type(e).__name__}: {e}") from e

    async def _load_remote(self) -> ScanState | None:
        response = await self._request("GET")
        if response.status_code != 200:
            logger.warning(
                "Scan-state GET returned HTTP %d; treating as no state",
                response.status_code,
            )
            return None
        try:
            state = ScanState.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Malformed scan-state payload; treating as no state: %s", e)
            return None
        return None if state.is_empty else state

    async def _save_remote(self, state: ScanState) -> bool:
        body = {
            "highestValidId": state.highest_valid_id,
            "highestScannedId": state.highest_scanned_id,
        }
        try:
            response = await self._request("PUT", json=body)
        except RemoteUnavailable as e:
            logger.warning("Scan state not saved remotely: %s", e)
            return False
        if response.status_code != 200:
            logger.warning(
                "Scan-state PUT returned HTTP %d; state not durable across redeploys",
                response.status_code,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Local fallback
    # ------------------------------------------------------------------

    def _load_local(self) -> ScanState | None:
        if not self.local_path.exists():
            return None
        try:
            data = json.loads(self.local_path.read_text(encoding="utf-8"))
            state = ScanState.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable local scan state %s: %s", self.local_path, e)
            return None
        return None if state.is_empty else state

    def _save_local(self, state: ScanState) -> bool:
        try:
            self.local_path.parent.mkdir(parents=True, exist_ok=True)
            self.local_path.write_text(
                json.dumps(state.to_wire(), indent=2), encoding="utf-8"
            )
        except OSError as e:
            logger.error("Failed to write local scan state %s: %s", self.local_path, e)
            return False
        return True

    def _delete_local(self) -> None:
        try:
            self.local_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove stale local scan state: %s", e)
        else:
            logger.debug("Removed local scan state (remote is source of truth)")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self) -> ScanState | None:
        """Return the persisted checkpoint, or None when there is none."""
        try:
            state = await self._load_remote()
        except RemoteUnavailable as e:
            logger.info("Scan-state API unreachable (%s); using local fallback", e)
            state = self._load_local()
            source = "local"
        else:
            source = "remote"
        if state is not None:
            logger.info(
                "Loaded %s scan state: highest_scanned=%d highest_valid=%d",
                source,
                state.highest_scanned_id,
                state.highest_valid_id,
            )
        return state

    async def save(self, state: ScanState) -> bool:
        """Persist a checkpoint.  Returns True once it is durable remotely."""
        self._save_local(state)
        if await self._save_remote(state):
            self._delete_local()
            logger.info("Scan state saved: highest_scanned=%d", state.highest_scanned_id)
            return True
        return False
