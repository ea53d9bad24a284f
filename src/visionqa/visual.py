"""
Visual fallback: find an element on a fresh screenshot when no known selector works.
"""

import logging
from typing import Dict, Tuple

from .backends.base import VisionBackend, VisualMatch

logger = logging.getLogger(__name__)


class VisualFallback:
    """
    Asks a vision backend where an element is and which selectors would match it.

    Found matches are cached per (page url, description) for the lifetime of
    the instance, so repeated lookups in one run cost one AI call.

    Usage:
        fallback = VisualFallback(GeminiBackend(api_key), PlaywrightBrowser())
        match = fallback.locate("https://example.com/login", "login Button")
        if match.found:
            print(match.suggested_selectors)
    """

    def __init__(self, backend: VisionBackend, browser):
        self.backend = backend
        self.browser = browser
        self._cache: Dict[Tuple[str, str], VisualMatch] = {}

    def locate(self, page_url: str, description: str) -> VisualMatch:
        key = (page_url, description)
        if key in self._cache:
            return self._cache[key]

        logger.info("Looking for %r visually on %s", description, page_url)
        screenshot_b64 = self.browser.screenshot(page_url)
        match = self.backend.locate_element(description, screenshot_b64)
        if match.found:
            self._cache[key] = match
            logger.info(
                "Visual match for %r (confidence %.2f): %s",
                description, match.confidence, [s.key for s in match.suggested_selectors],
            )
        else:
            logger.info("No visual match for %r: %s", description, match.reason or "not found")
        return match

    def clear_cache(self) -> None:
        self._cache.clear()
