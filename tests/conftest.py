"""
Pytest configuration and shared fixtures for visionQA tests.

Provides a sample asset document, a knowledge store in a temp directory,
fake Playwright pages for exercising the resolver without a browser and a
mock vision backend for running the loop without real AI.
"""

import copy
import os

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from visionqa.assets import TestAssets
from visionqa.backends import BackendError, VisionBackend, VisualMatch
from visionqa.knowledge import SelectorCandidateStore

pytest_plugins = ["pytester"]

LOGIN_URL = "https://shop.example.com/login"

SAMPLE_DOCUMENT = {
    "pageObject": {
        "className": "LoginPage",
        "locators": [
            {
                "name": "emailInput",
                "elementType": "input",
                "actions": ["fill", "clear", "getValue"],
                "selectors": [
                    {"type": "getByLabel", "value": "E-Mail Address"},
                    {"type": "locator", "value": "#input-email"},
                ],
                "waitBefore": "visible",
                "validateAfter": True,
            },
            {
                "name": "loginButton",
                "elementType": "button",
                "actions": ["click"],
                "selectors": [
                    {"type": "locator", "value": "input[value='Login']"},
                    {"type": "getByRole", "value": "button", "options": {"name": "Login"}},
                ],
                "waitBefore": "enabled",
            },
            {
                "name": "errorMessage",
                "elementType": "alert",
                "actions": [],
                "selectors": [{"type": "locator", "value": ".alert-danger"}],
                "waitBefore": "visible",
            },
        ],
    },
    "testSteps": [
        {"action": "navigate", "params": ["index.php?route=account/login"], "page": "LoginPage"},
        {"action": "fillEmailInput", "params": ["invalid@example.com"], "page": "LoginPage"},
        {"action": "clickLoginButton", "params": [], "page": "LoginPage"},
        {
            "action": "waitForErrorMessageVisible",
            "params": [],
            "page": "LoginPage",
            "waitFor": {"element": "errorMessage", "state": "visible"},
        },
        {
            "action": "assertErrorMessageText",
            "params": ["No match for E-Mail Address"],
            "page": "LoginPage",
            "assert": {"type": "text", "expected": "No match for E-Mail Address"},
        },
    ],
}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (real browser, etc.)")
    config.addinivalue_line("markers", "ai_e2e: marks tests as requiring AI API keys")


@pytest.fixture
def sample_document():
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def sample_assets(sample_document) -> TestAssets:
    return TestAssets.from_dict(sample_document)


@pytest.fixture
def store(tmp_path) -> SelectorCandidateStore:
    """Empty knowledge store in a temp directory."""
    s = SelectorCandidateStore(tmp_path / "knowledge-base")
    s.load()
    return s


# Fake Playwright objects --------------------------------------------------


class FakeLocator:
    """
    Stand-in for a Playwright Locator.

    ``count`` elements match once ``appears_after_ms`` of waiting is allowed;
    ``error`` is raised from wait_for (e.g. an invalid selector).
    """

    def __init__(self, count=0, error=None, appears_after_ms=0):
        self._count = count
        self.error = error
        self.appears_after_ms = appears_after_ms
        self.wait_timeouts = []

    @property
    def first(self):
        return self

    def _wait(self, state, timeout):
        self.wait_timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        if self._count == 0 or timeout < self.appears_after_ms:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    def wait_for(self, state="visible", timeout=None):
        self._wait(state, timeout)

    def count(self):
        return self._count


class AsyncFakeLocator(FakeLocator):
    async def wait_for(self, state="visible", timeout=None):
        self._wait(state, timeout)

    async def count(self):
        return self._count


class FakePage:
    """Maps selector keys (``locator:#id``, ``getByRole:button``) to fake locators."""

    def __init__(self, locators=None, url=LOGIN_URL):
        self.locators = locators or {}
        self.url = url
        self.requested = []

    def _lookup(self, key):
        self.requested.append(key)
        return self.locators.setdefault(key, FakeLocator(count=0))

    def locator(self, selector):
        return self._lookup(f"locator:{selector}")

    def get_by_role(self, role, **kwargs):
        return self._lookup(f"getByRole:{role}")

    def get_by_label(self, text, **kwargs):
        return self._lookup(f"getByLabel:{text}")

    def get_by_placeholder(self, text, **kwargs):
        return self._lookup(f"getByPlaceholder:{text}")

    def get_by_text(self, text, **kwargs):
        return self._lookup(f"getByText:{text}")


class MockVisionBackend(VisionBackend):
    """Mock backend for testing without real AI."""

    def __init__(self, document=None):
        self.document = document
        self.locate_responses = []
        self._asset_calls = []
        self._locate_calls = []

    def set_locate_response(self, match: VisualMatch):
        """Set the next locate_element response."""
        self.locate_responses.append(match)

    def generate_test_assets(self, user_story, screenshot_b64):
        self._asset_calls.append({"user_story": user_story, "screenshot": screenshot_b64})
        if self.document is None:
            raise BackendError("no document configured")
        return copy.deepcopy(self.document)

    def locate_element(self, description, screenshot_b64):
        self._locate_calls.append({"description": description, "screenshot": screenshot_b64})
        if self.locate_responses:
            return self.locate_responses.pop(0)
        return VisualMatch(found=False, reason="no response configured")


class StubBrowser:
    """Screenshot source that never opens a browser."""

    def __init__(self):
        self.urls = []

    def screenshot(self, url):
        self.urls.append(url)
        return "iVBORw0KGgo="


def invalid_selector_error():
    return PlaywrightError("Unexpected token \"]\" while parsing selector")


# Utility functions for tests
def has_api_key() -> bool:
    """Check if any AI API key is available."""
    return bool(
        os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY") or os.environ.get("OPENAI_API_KEY")
    )
