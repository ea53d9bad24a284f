"""Tests for the runtime base class of generated pages."""

import json

import pytest

from visionqa.pages import BasePage
from visionqa.resolver import ElementNotFoundError, ResolverConfig

from conftest import LOGIN_URL, FakeLocator, FakePage

CONFIG = ResolverConfig(candidate_timeout_ms=100, extended_timeout_ms=200)


class LoginPage(BasePage):
    LOCATORS = {
        "loginButton": [
            {"type": "locator", "value": "#login"},
            {"type": "getByRole", "value": "button", "options": {"name": "Login"}},
        ],
    }


@pytest.fixture
def make_page(tmp_path):
    def factory(locators=None):
        return LoginPage(FakePage(locators), resolver_config=CONFIG, debug_dir=tmp_path / "debug")
    return factory


class TestFindSmartly:
    """Test element lookup through the resolver."""

    def test_returns_winning_locator(self, make_page):
        button = FakeLocator(1)
        page = make_page({"getByRole:button": button})
        assert page.find_smartly("loginButton") is button

    def test_explicit_selectors_override_locators(self, make_page):
        from visionqa.selectors import SelectorDescriptor

        other = FakeLocator(1)
        page = make_page({"locator:#other": other})
        assert page.find_smartly("loginButton", [SelectorDescriptor.from_key("locator:#other")]) is other

    def test_failure_writes_attempt_log(self, make_page, tmp_path):
        """Every failed lookup leaves a debug file behind."""
        page = make_page()
        with pytest.raises(ElementNotFoundError, match="Element not found: loginButton"):
            page.find_smartly("loginButton")

        logs = list((tmp_path / "debug").glob("loginButton_*_attempts.json"))
        assert len(logs) == 1
        payload = json.loads(logs[0].read_text(encoding="utf-8"))
        assert payload["url"] == LOGIN_URL
        assert payload["candidatesTried"] == 2
        assert [a["selector"] for a in payload["attempts"]][:2] == [
            "locator:#login", 'getByRole:button{"name":"Login"}',
        ]

    def test_unknown_element(self, make_page):
        with pytest.raises(KeyError, match="LoginPage has no element named 'submit'"):
            make_page().find_smartly("submit")


def test_is_visible_is_false_when_not_found(make_page):
    assert make_page().is_visible("loginButton") is False
