"""
Browser capability used outside the generated tests: capturing screenshots
for asset generation and for the visual fallback.
"""

import base64
import logging
from dataclasses import dataclass

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

logger = logging.getLogger(__name__)


@dataclass
class BrowserConfig:
    browser: str = "chromium"  # chromium, firefox, webkit
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    navigation_timeout_ms: int = 30000
    full_page: bool = True

    @property
    def viewport(self) -> str:
        return f"{self.viewport_width}x{self.viewport_height}"


class PlaywrightBrowser:
    """
    Opens a page, waits for it to settle and returns a base64 PNG.

    Every call launches and closes its own browser, so it is safe to use
    between test executions.

    Usage:
        browser = PlaywrightBrowser(BrowserConfig(headless=True))
        screenshot_b64 = browser.screenshot("https://example.com/login")
    """

    def __init__(self, config: BrowserConfig = None):
        self.config = config or BrowserConfig()

    def screenshot(self, url: str) -> str:
        config = self.config
        with sync_playwright() as p:
            launcher = getattr(p, config.browser)
            browser = launcher.launch(headless=config.headless)
            try:
                page = browser.new_page(
                    viewport={"width": config.viewport_width, "height": config.viewport_height}
                )
                self._goto(page, url)
                png = page.screenshot(full_page=config.full_page, timeout=config.navigation_timeout_ms)
            finally:
                browser.close()
        logger.info("Captured screenshot of %s (%d bytes)", url, len(png))
        return base64.b64encode(png).decode("utf-8")

    def _goto(self, page, url: str) -> None:
        timeout = self.config.navigation_timeout_ms
        try:
            page.goto(url, wait_until="networkidle", timeout=timeout)
        except PlaywrightError as e:
            # Pages with long-polling never go idle
            logger.warning("Network did not settle on %s (%s), retrying with plain load", url, str(e)[:100])
            page.goto(url, timeout=timeout)
