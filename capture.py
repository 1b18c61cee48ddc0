# capture.py
#
# Drives headless Chromium (Playwright) to screenshot the preview page.
# A browser is launched fresh for every capture and always torn down.

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import Depends
from playwright.async_api import Browser, Error, async_playwright

from config import BrowserLaunchConfig, Settings, get_settings
from pages import PREVIEW_IMAGE_ID

logger = logging.getLogger(__name__)

IMAGE_SELECTOR = f"#{PREVIEW_IMAGE_ID}"

# Resolves once the <img> has decoded with real dimensions.
IMAGE_LOADED_JS = """
(selector) => {
    const img = document.querySelector(selector);
    return !!img && img.complete && img.naturalWidth > 0 && img.naturalHeight > 0;
}
"""


class CaptureError(Exception):
    """A screenshot could not be produced."""


class BrowserLaunchError(CaptureError):
    """No browser executable could be started."""


@asynccontextmanager
async def launched_browser(config: BrowserLaunchConfig) -> AsyncIterator[Browser]:
    """Launch Chromium for the duration of the block.

    Candidates from ``config.candidates()`` are tried in order. The browser
    and the Playwright driver are shut down on every exit, including
    cancellation of the surrounding task.
    """
    async with async_playwright() as p:
        browser = None
        failures = []
        for executable_path in config.candidates():
            label = executable_path or "bundled chromium"
            try:
                browser = await p.chromium.launch(
                    executable_path=executable_path,
                    headless=config.headless,
                    args=config.args,
                )
                logger.info("Launched browser (%s)", label)
                break
            except Error as e:
                logger.warning("Browser launch failed (%s): %s", label, e)
                failures.append(f"{label}: {e}")
        if browser is None:
            raise BrowserLaunchError("Could not launch browser; " + "; ".join(failures))
        try:
            yield browser
        finally:
            await browser.close()
            logger.info("Browser closed")


class ScreenshotCapturer:
    def __init__(self, settings: Settings):
        self.settings = settings

    async def capture(self, preview_url: str, save_path: Path) -> Path:
        """Open ``preview_url``, wait for the image to load and save a full-page PNG.

        Any browser failure (launch, navigation, timeouts) is raised as CaptureError.
        """
        s = self.settings
        logger.info("Capturing %s -> %s", preview_url, save_path)
        try:
            async with launched_browser(s.browser) as browser:
                context = await browser.new_context(
                    viewport={"width": s.viewport_width, "height": s.viewport_height},
                )
                page = await context.new_page()
                await page.goto(preview_url, wait_until="networkidle", timeout=s.navigation_timeout_ms)
                await page.wait_for_selector(IMAGE_SELECTOR, state="visible", timeout=s.image_timeout_ms)
                await page.wait_for_function(IMAGE_LOADED_JS, arg=IMAGE_SELECTOR, timeout=s.image_timeout_ms)
                await page.screenshot(path=str(save_path), full_page=True, type="png")
        except Error as e:
            raise CaptureError(f"Failed to process the page: {e}") from e
        logger.info("Screenshot saved to %s", save_path)
        return save_path


def get_capturer(settings: Settings = Depends(get_settings)) -> ScreenshotCapturer:
    """Dependency to provide the capturer to the route."""
    return ScreenshotCapturer(settings)
