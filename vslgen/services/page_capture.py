"""Full-page website screenshots with headless Chromium (Playwright).

One browser is launched per ``PageCapture`` session and reused for every
capture in it; each capture opens and always closes its own tab.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image
from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from vslgen.config import Settings, get_settings

logger = logging.getLogger(__name__)

_PAGE_HEIGHT_JS = """
() => Math.max(
    document.body ? document.body.scrollHeight : 0,
    document.documentElement ? document.documentElement.scrollHeight : 0
)
"""


@dataclass
class CaptureResult:
    """Outcome of one page capture."""

    success: bool
    full_height: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "full_height": self.full_height,
            "error": self.error,
        }


def _crop_to_height(image_path: str, max_height: int) -> int:
    """Crop a screenshot from the top to at most ``max_height`` pixels."""
    with Image.open(image_path) as image:
        width, height = image.size
        if height <= max_height:
            return height
        cropped = image.crop((0, 0, width, max_height))
        cropped.load()
    cropped.save(image_path, format="PNG")
    return max_height


class PageCapture:
    """Headless browser session producing full-page PNG screenshots."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the browser. No-op when already running."""
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=self.settings.browser_args,
            )
        except PlaywrightError:
            await self._playwright.stop()
            self._playwright = None
            raise
        logger.info("[CAPTURE] Browser started")

    async def close(self) -> None:
        """Shut the browser down."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning(f"[CAPTURE] Browser close failed: {e}")
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
            logger.info("[CAPTURE] Browser stopped")

    async def __aenter__(self) -> "PageCapture":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def capture(self, url: str, output_path: str) -> CaptureResult:
        """Load ``url`` and write a full-page PNG to ``output_path``.

        Navigation waits for the network to go idle (bounded by the capture
        timeout), then a fixed settle delay lets lazy content render. The
        page height is clamped to ``capture_max_height`` and the image is
        cropped to match. Errors are returned, not raised.
        """
        if self._browser is None:
            await self.start()

        settings = self.settings
        page = None
        try:
            page = await self._browser.new_page(
                viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            )
            await page.goto(url, wait_until="networkidle", timeout=settings.capture_timeout_ms)
            await page.wait_for_timeout(settings.capture_settle_ms)

            page_height = int(await page.evaluate(_PAGE_HEIGHT_JS))
            full_height = min(page_height, settings.capture_max_height)

            await page.screenshot(path=output_path, full_page=True, type="png")
            image_height = await asyncio.to_thread(_crop_to_height, output_path, settings.capture_max_height)

            logger.info(f"[CAPTURE] {url}: page={page_height}px, image={image_height}px")
            return CaptureResult(success=True, full_height=full_height)
        except (PlaywrightError, OSError) as e:
            logger.warning(f"[CAPTURE] Failed to capture {url}: {e}")
            return CaptureResult(success=False, error=str(e))
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.warning(f"[CAPTURE] Tab close failed for {url}: {e}")
