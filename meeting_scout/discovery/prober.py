"""Ownership prober for video IDs on a shared hosting platform.

Every municipality on the platform draws IDs from the same sequence, so
the only way to tell whether an ID belongs to our tenant is to ask for
its download URL and look at where the platform redirects:

    HEAD {base_url}/videos/{id}/download
      301/302 Location: https://storage.../{tenant}/...  → owned
      301/302 Location: https://storage.../other/...     → exists, foreign
      404                                                → not found
      timeout / network error (after retries)            → timed out

Example:
    async with OwnershipProber(base_url, tenant="jupiterfl") as prober:
        result = await prober.probe(81234)
        if result.owned:
            ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from meeting_scout.discovery.models import ProbeError, ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0
DEFAULT_RETRIES = 1
DEFAULT_BACKOFF = 0.5

Sleep = Callable[[float], Awaitable[None]]


class OwnershipProber:
    """Classify video IDs as not-found, foreign, owned or timed-out.

    Attributes:
        base_url: Platform base URL (e.g., "https://town.new.swagit.com")
        tenant: Path segment identifying the tenant in storage redirects
        timeout: Per-request timeout in seconds
        retries: Extra attempts after a timeout or network error
        backoff: Fixed delay before each retry in seconds
    """

    def __init__(
        self,
        base_url: str,
        tenant: str,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        max_connections: int = 100,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.tenant_segment = f"/{tenant.strip('/')}/"
        self.timeout = timeout
        self.retries = max(retries, 0)
        self.backoff = backoff
        self._sleep = sleep
        self._client = client
        self._owns_client = client is None
        self._max_connections = max_connections

    async def __aenter__(self) -> OwnershipProber:
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
                headers={"User-Agent": "meeting-scout/1.0 (meeting discovery)"},
                limits=httpx.Limits(
                    max_connections=self._max_connections,
                    max_keepalive_connections=20,
                    keepalive_expiry=30.0,
                ),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this prober created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def probe_url(self, video_id: int) -> str:
        return f"{self.base_url}/videos/{video_id}/download"

    def classify(self, video_id: int, response: httpx.Response) -> ProbeResult:
        """Turn an HTTP response into a ProbeResult."""
        status = response.status_code
        if response.is_redirect or 300 <= status < 400:
            location = response.headers.get("location", "")
            if self.tenant_segment in location:
                return ProbeResult.owned_by_tenant(video_id, status)
            return ProbeResult.foreign(video_id, status)
        if status == 404:
            return ProbeResult.not_found(video_id)
        # Ambiguous status: the ID exists in some form, ownership unproven
        return ProbeResult.foreign(video_id, status)

    async def probe(self, video_id: int) -> ProbeResult:
        """Probe a single ID with bounded retries.

        Raises:
            ProbeError: If the request cannot be built (bad URL/protocol).
        """
        client = self._get_client()
        url = self.probe_url(video_id)
        attempts = self.retries + 1
        # Hard ceiling on a single attempt
        backstop = self.timeout * 2

        for attempt in range(1, attempts + 1):
            try:
                response = await asyncio.wait_for(
                    client.head(url, timeout=self.timeout), timeout=backstop
                )
                return self.classify(video_id, response)
            except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
                raise ProbeError(f"Cannot probe {url}: {e}") from e
            except (httpx.TransportError, TimeoutError) as e:
                logger.debug(
                    "Probe %d attempt %d/%d failed: %s",
                    video_id,
                    attempt,
                    attempts,
                    type(e).__name__,
                )
            if attempt < attempts:
                await self._sleep(self.backoff)

        return ProbeResult.timeout(video_id)

    async def probe_many(self, video_ids: list[int]) -> list[ProbeResult]:
        """Probe several IDs concurrently, preserving input order."""
        return list(await asyncio.gather(*(self.probe(v) for v in video_ids)))
