"""Tests for headless page capture with a mocked browser."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from PIL import Image
from playwright.async_api import Error as PlaywrightError

from vslgen.services.page_capture import CaptureResult, PageCapture, _crop_to_height


def _page(page_height: int = 8000, image_height: int = 8000) -> MagicMock:
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.evaluate = AsyncMock(return_value=page_height)

    async def screenshot(path, **kwargs):
        Image.new("RGB", (1280, image_height), (255, 255, 255)).save(path)

    page.screenshot = AsyncMock(side_effect=screenshot)
    page.close = AsyncMock()
    return page


def _capture_with(page: MagicMock, settings) -> PageCapture:
    capture = PageCapture(settings)
    browser = MagicMock()
    browser.new_page = AsyncMock(return_value=page)
    capture._browser = browser
    return capture


class TestCapture:
    @pytest.mark.asyncio
    async def test_tall_page_cropped(self, settings, tmp_path):
        page = _page(page_height=8000, image_height=8000)
        capture = _capture_with(page, settings)
        output = tmp_path / "shot.png"

        result = await capture.capture("https://example.com", str(output))

        assert result == CaptureResult(success=True, full_height=5000)
        with Image.open(output) as image:
            assert image.size == (1280, 5000)
        page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_navigation_options(self, settings, tmp_path):
        page = _page(page_height=1800, image_height=1800)
        capture = _capture_with(page, settings)

        result = await capture.capture("https://example.com", str(tmp_path / "shot.png"))

        assert result.full_height == 1800
        capture._browser.new_page.assert_awaited_once_with(viewport={"width": 1280, "height": 720})
        page.goto.assert_awaited_once_with("https://example.com", wait_until="networkidle", timeout=30000)
        page.wait_for_timeout.assert_awaited_once_with(2000)
        assert page.screenshot.call_args.kwargs["full_page"] is True

    @pytest.mark.asyncio
    async def test_navigation_failure_returned(self, settings, tmp_path):
        page = _page()
        page.goto = AsyncMock(side_effect=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        capture = _capture_with(page, settings)

        result = await capture.capture("https://nope.invalid", str(tmp_path / "shot.png"))

        assert result.success is False
        assert "ERR_NAME_NOT_RESOLVED" in result.error
        page.screenshot.assert_not_awaited()
        page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_closes(self, settings):
        browser = MagicMock()
        browser.close = AsyncMock()
        playwright = MagicMock()
        playwright.chromium.launch = AsyncMock(return_value=browser)
        playwright.stop = AsyncMock()
        starter = MagicMock()
        starter.start = AsyncMock(return_value=playwright)

        with patch("vslgen.services.page_capture.async_playwright", return_value=starter):
            async with PageCapture(settings) as capture:
                assert capture.is_open

        launch_kwargs = playwright.chromium.launch.call_args.kwargs
        assert launch_kwargs["headless"] is True
        assert "--no-sandbox" in launch_kwargs["args"]
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert capture.is_open is False


class TestCrop:
    def test_short_image_untouched(self, tmp_path):
        path = tmp_path / "shot.png"
        Image.new("RGB", (1280, 900)).save(path)
        assert _crop_to_height(str(path), 5000) == 900

    def test_crops_from_top(self, tmp_path):
        path = tmp_path / "shot.png"
        image = Image.new("RGB", (100, 200), (0, 0, 0))
        image.paste((255, 0, 0), (0, 0, 100, 50))
        image.save(path)

        assert _crop_to_height(str(path), 50) == 50
        with Image.open(path) as cropped:
            assert cropped.size == (100, 50)
            assert cropped.getpixel((10, 10)) == (255, 0, 0)
