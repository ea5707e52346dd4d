"""Page-listing reader: the fast path for recent videos.

The platform's department views populate their video links with
client-side script, so the page is rendered in headless Chromium via
Playwright before links are collected.  Any failure here is non-fatal:
an empty result simply tells the orchestrator to fall back to scanning.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from meeting_scout.settings import get_chromium_path

logger = logging.getLogger(__name__)

VIDEO_LINK_SELECTOR = 'a[href*="/videos/"]'
VIDEO_ID_PATTERN = re.compile(r"/videos/(\d+)")

NAVIGATION_TIMEOUT_MS = 15_000
SELECTOR_TIMEOUT_MS = 10_000

# Resource types that never carry video links
BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})

CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

_SYSTEM_CHROMIUM_PATHS = (
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
)


@dataclass
class ListingResult:
    """Video IDs found on a listing page, in page order.

    ``reachable`` is False when the page could not be loaded at all, as
    opposed to loading without any video links.
    """

    url: str
    video_ids: list[int] = field(default_factory=list)
    reachable: bool = True
    error: str | None = None

    def __bool__(self) -> bool:
        return bool(self.video_ids)


def extract_video_ids(hrefs: Iterable[str | None]) -> list[int]:
    """Extract unique video IDs from link targets, keeping first-seen order."""
    seen: set[int] = set()
    ids: list[int] = []
    for href in hrefs:
        if not href:
            continue
        match = VIDEO_ID_PATTERN.search(href)
        if match is None:
            continue
        video_id = int(match.group(1))
        if video_id not in seen:
            seen.add(video_id)
            ids.append(video_id)
    return ids


def find_chromium_path(nix_store: Path = Path("/nix/store")) -> str | None:
    """Locate a Chromium executable, or None to use Playwright's bundled one.

    Checks, in order: MEETING_SCOUT_CHROMIUM_PATH, a Nix store install
    (Nixpacks images), then common system locations.
    """
    if explicit := get_chromium_path():
        return explicit

    if nix_store.is_dir():
        try:
            entries = sorted(os.listdir(nix_store))
        except OSError:
            entries = []
        for entry in entries:
            if "chromium-" not in entry or any(
                skip in entry for skip in ("sandbox", "unwrapped", "chromaprint")
            ):
                continue
            candidate = nix_store / entry / "bin" / "chromium"
            if candidate.exists():
                return str(candidate)

    for path in _SYSTEM_CHROMIUM_PATHS:
        if Path(path).exists():
            return path
    return None


class PageListingReader:
    """Render a department listing page and collect its video IDs."""

    def __init__(
        self,
        headless: bool = True,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        selector_timeout_ms: int = SELECTOR_TIMEOUT_MS,
        executable_path: str | None = None,
    ) -> None:
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms
        self.executable_path = executable_path

    @staticmethod
    async def _block_heavy_resources(route) -> None:
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def list_candidates(self, listing_url: str) -> ListingResult:
        """Fetch ``listing_url`` and return the video IDs linked from it."""
        executable = self.executable_path or find_chromium_path()
        if executable:
            logger.debug("Using Chromium at %s", executable)

        try:
            async with async_playwright() as pw:
                browser = await pw.chromium.launch(
                    headless=self.headless,
                    executable_path=executable,
                    args=CHROMIUM_LAUNCH_ARGS,
                )
                try:
                    page = await browser.new_page()
                    await page.route("**/*", self._block_heavy_resources)
                    try:
                        await page.goto(
                            listing_url,
                            wait_until="domcontentloaded",
                            timeout=self.navigation_timeout_ms,
                        )
                    except PlaywrightError as e:
                        logger.warning("Could not load listing %s: %s", listing_url, e)
                        return ListingResult(
                            url=listing_url, reachable=False, error=str(e)
                        )

                    try:
                        await page.wait_for_selector(
                            VIDEO_LINK_SELECTOR, timeout=self.selector_timeout_ms
                        )
                    except PlaywrightTimeoutError:
                        logger.info("No video links appeared on %s", listing_url)
                        return ListingResult(url=listing_url, error="no video links")

                    hrefs = await page.eval_on_selector_all(
                        VIDEO_LINK_SELECTOR,
                        "links => links.map(a => a.getAttribute('href'))",
                    )
                finally:
                    await browser.close()
        except PlaywrightError as e:
            logger.warning("Headless browser failed for %s: %s", listing_url, e)
            return ListingResult(url=listing_url, reachable=False, error=str(e))

        video_ids = extract_video_ids(hrefs)
        logger.info("Listing %s linked %d videos", listing_url, len(video_ids))
        return ListingResult(url=listing_url, video_ids=video_ids)
