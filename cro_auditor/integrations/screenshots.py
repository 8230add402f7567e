"""
Screenshot capture via Playwright.

Captures full-page desktop and mobile screenshots of a URL. A failed
capture never blocks analysis: the caller gets a placeholder record with a
note instead of an image path.
"""

import hashlib
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from cro_auditor.config import settings

logger = logging.getLogger(__name__)


@dataclass
class Viewport:
    device_type: str
    width: int
    height: int
    above_fold_height: int
    is_mobile: bool = False


VIEWPORTS: dict[str, Viewport] = {
    "desktop": Viewport("desktop", 1920, 1080, above_fold_height=900),
    "mobile": Viewport("mobile", 375, 812, above_fold_height=700, is_mobile=True),
}


@dataclass
class ScreenshotRecord:
    device_type: str
    screenshot_url: str
    viewport_width: int
    viewport_height: int
    metadata: dict[str, Any] = field(default_factory=dict)
    placeholder: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def placeholder_record(viewport: Viewport, reason: str) -> ScreenshotRecord:
    return ScreenshotRecord(
        device_type=viewport.device_type,
        screenshot_url=f"/screenshots/placeholder_{viewport.device_type}.png",
        viewport_width=viewport.width,
        viewport_height=viewport.height,
        metadata={
            "captured_at": datetime.now(timezone.utc).isoformat(),
            "note": f"Screenshot capture failed - placeholder used ({reason})",
        },
        placeholder=True,
    )


class ScreenshotService:
    """Headless Chromium screenshots for one or more devices."""

    def __init__(
        self,
        output_dir: str | None = None,
        timeout_ms: int | None = None,
        enabled: bool | None = None,
    ):
        self.output_dir = output_dir or settings.SCREENSHOT_DIR
        self.timeout_ms = timeout_ms or settings.SCREENSHOT_TIMEOUT_MS
        self.enabled = settings.SCREENSHOTS_ENABLED if enabled is None else enabled

    async def capture_both(self, url: str, page_key: str = "") -> dict[str, dict]:
        """Capture desktop and mobile; returns records keyed by device type."""
        records = {}
        for device_type in ("desktop", "mobile"):
            record = await self.capture(url, device_type, page_key)
            records[device_type] = record.to_dict()
        return records

    async def capture(self, url: str, device_type: str, page_key: str = "") -> ScreenshotRecord:
        viewport = VIEWPORTS[device_type]
        if not self.enabled:
            return placeholder_record(viewport, "screenshots disabled")

        logger.info(f"Capturing {device_type} screenshot for {url}")
        try:
            path = await self._capture_to_file(url, viewport, page_key)
        except (PlaywrightError, OSError) as e:
            logger.warning(f"{device_type.capitalize()} screenshot failed for {url}: {e}")
            return placeholder_record(viewport, str(e)[:200])

        return ScreenshotRecord(
            device_type=device_type,
            screenshot_url=path,
            viewport_width=viewport.width,
            viewport_height=viewport.height,
            metadata={
                "captured_at": datetime.now(timezone.utc).isoformat(),
                "above_fold_height": viewport.above_fold_height,
            },
        )

    async def _capture_to_file(self, url: str, viewport: Viewport, page_key: str) -> str:
        os.makedirs(self.output_dir, exist_ok=True)
        key = page_key or hashlib.md5(url.encode()).hexdigest()[:12]
        filename = f"{key}_{viewport.device_type}_{int(time.time())}.png"
        filepath = os.path.join(self.output_dir, filename)

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
            )
            try:
                context = await browser.new_context(
                    viewport={"width": viewport.width, "height": viewport.height},
                    is_mobile=viewport.is_mobile,
                    ignore_https_errors=True,
                )
                page = await context.new_page()
                await page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
                await page.screenshot(path=filepath, full_page=True)
            finally:
                await browser.close()

        logger.info(f"{viewport.device_type.capitalize()} screenshot saved: {filepath}")
        return filepath
