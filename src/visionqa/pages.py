"""
Runtime base class for generated Page Objects.

Generated pages only declare their elements and thin action methods; all
browser work goes through BasePage so that every element lookup uses the
multi-candidate resolver:

    class LoginPage(BasePage):
        LOCATORS = {
            "loginButton": [
                {"type": "getByRole", "value": "button", "options": {"name": "Login"}},
                {"type": "locator", "value": "#submit"},
            ],
        }

        def clickLoginButton(self):
            self.click("loginButton", wait_before="enabled")
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import expect

from .assets import write_json_atomic
from .resolver import ElementNotFoundError, ElementResolverSync, ResolverConfig
from .selectors import SelectorDescriptor

logger = logging.getLogger(__name__)

ACTION_TIMEOUT_MS = 5000
NAVIGATION_TIMEOUT_MS = 30000


class BasePage:
    """Shared behaviour of every generated page."""

    LOCATORS: Dict[str, List[Dict[str, Any]]] = {}

    def __init__(
        self,
        page,
        base_url: Optional[str] = None,
        resolver_config: Optional[ResolverConfig] = None,
        debug_dir="test-results/debug",
    ):
        self.page = page
        self.base_url = base_url
        self.resolver = ElementResolverSync(page, resolver_config)
        self.debug_dir = Path(debug_dir)

    # ------------------------------------------------------------------
    # Navigation

    def navigate(self, path: str = "") -> None:
        url = urljoin(self.base_url, path) if self.base_url else path
        logger.info("Navigating to %s", url)
        self.page.goto(url, timeout=NAVIGATION_TIMEOUT_MS)

    # ------------------------------------------------------------------
    # Element lookup

    def selectors_for(self, name: str) -> List[SelectorDescriptor]:
        try:
            raw = self.LOCATORS[name]
        except KeyError:
            raise KeyError(f"{type(self).__name__} has no element named {name!r}")
        return [SelectorDescriptor.from_dict(s) for s in raw]

    def find_smartly(self, name: str, selectors: Optional[Sequence[SelectorDescriptor]] = None):
        """
        Resolve an element by trying its candidate selectors in order.

        On failure the attempt log is written to
        ``{debug_dir}/{name}_{timestamp}_attempts.json`` and the
        ElementNotFoundError is re-raised.
        """
        candidates = list(selectors) if selectors is not None else self.selectors_for(name)
        try:
            return self.resolver.resolve(candidates, name).locator
        except ElementNotFoundError as e:
            self._write_attempt_log(name, e)
            raise

    def _write_attempt_log(self, name: str, error: ElementNotFoundError) -> None:
        payload = error.to_dict()
        payload["url"] = self.page.url
        payload["timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%S")
        path = self.debug_dir / f"{name}_{int(time.time() * 1000)}_attempts.json"
        try:
            write_json_atomic(path, payload)
            logger.info("Selector attempt log written to %s", path)
        except OSError as e:
            logger.warning("Could not write attempt log for %s: %s", name, e)

    def _ready(self, element, wait_before: Optional[str]) -> None:
        if wait_before == "enabled":
            element.wait_for(state="visible", timeout=ACTION_TIMEOUT_MS)
            expect(element).to_be_enabled(timeout=ACTION_TIMEOUT_MS)
        elif wait_before in ("visible", "attached"):
            element.wait_for(state=wait_before, timeout=ACTION_TIMEOUT_MS)

    # ------------------------------------------------------------------
    # Actions

    def wait_for_visible(self, name: str, timeout: int = 10000) -> None:
        element = self.find_smartly(name)
        element.wait_for(state="visible", timeout=timeout)
        logger.info("%s is visible", name)

    def fill(self, name: str, text: str, wait_before: Optional[str] = None, validate_after: bool = False) -> None:
        element = self.find_smartly(name)
        self._ready(element, wait_before)
        element.clear(timeout=ACTION_TIMEOUT_MS)
        element.fill(text, timeout=ACTION_TIMEOUT_MS)
        if validate_after:
            actual = element.input_value(timeout=ACTION_TIMEOUT_MS)
            if actual != text:
                raise AssertionError(f"Filling {name}: expected {text!r} but the field holds {actual!r}")
        logger.info("Filled %s", name)

    def click(self, name: str, wait_before: Optional[str] = None, validate_after: bool = False) -> None:
        element = self.find_smartly(name)
        self._ready(element, wait_before)
        try:
            element.click(timeout=ACTION_TIMEOUT_MS)
        except PlaywrightError:
            logger.info("First click on %s failed, retrying with force", name)
            element.click(force=True, timeout=ACTION_TIMEOUT_MS)
        if validate_after:
            self.page.wait_for_load_state(timeout=NAVIGATION_TIMEOUT_MS)
        logger.info("Clicked %s", name)

    def clear(self, name: str) -> None:
        self.find_smartly(name).clear(timeout=ACTION_TIMEOUT_MS)

    def get_value(self, name: str) -> str:
        return self.find_smartly(name).input_value(timeout=ACTION_TIMEOUT_MS)

    def check(self, name: str) -> None:
        self.find_smartly(name).check(timeout=ACTION_TIMEOUT_MS)

    def uncheck(self, name: str) -> None:
        self.find_smartly(name).uncheck(timeout=ACTION_TIMEOUT_MS)

    def select(self, name: str, value) -> None:
        self.find_smartly(name).select_option(value, timeout=ACTION_TIMEOUT_MS)

    def get_text(self, name: str) -> str:
        return self.find_smartly(name).text_content(timeout=ACTION_TIMEOUT_MS) or ""

    def assert_text(self, name: str, expected: str) -> None:
        expect(self.find_smartly(name)).to_contain_text(expected, timeout=ACTION_TIMEOUT_MS)

    def assert_one_of(self, name: str, expected_options: Sequence[str]) -> None:
        actual = self.get_text(name)
        if not any(option in actual for option in expected_options):
            raise AssertionError(f"Text of {name} matches none of {list(expected_options)}: {actual!r}")

    def is_visible(self, name: str) -> bool:
        try:
            return self.find_smartly(name).is_visible()
        except (ElementNotFoundError, PlaywrightError):
            return False

    # ------------------------------------------------------------------
    # Page-level checks

    def assert_url_contains(self, expected: str) -> None:
        self.page.wait_for_url(f"**{expected}**", timeout=NAVIGATION_TIMEOUT_MS)

    def capture_failure(self, artifacts_dir, test_name: str) -> List[Path]:
        """Save a screenshot and the page HTML for a failed test."""
        artifacts_dir = Path(artifacts_dir)
        artifacts_dir.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)
        screenshot = artifacts_dir / f"{test_name}_{stamp}.png"
        html = artifacts_dir / f"{test_name}_{stamp}.html"
        saved = []
        try:
            self.page.screenshot(path=str(screenshot), full_page=True, timeout=ACTION_TIMEOUT_MS)
            saved.append(screenshot)
            html.write_text(self.page.content(), encoding="utf-8")
            saved.append(html)
        except (PlaywrightError, OSError) as e:
            logger.warning("Could not capture failure artifacts for %s: %s", test_name, e)
        return saved
