"""Tests for multi-candidate element resolution."""

import asyncio
import inspect
import logging

import pytest
from playwright.sync_api import Page as PlaywrightPage

from visionqa.resolver import (
    ElementNotFoundError,
    ElementResolver,
    ElementResolverSync,
    ResolverConfig,
)
from visionqa.selectors import SelectorDescriptor

from conftest import AsyncFakeLocator, FakeLocator, FakePage, invalid_selector_error

CSS = SelectorDescriptor.from_key("locator:#login")
ROLE = SelectorDescriptor.from_key('getByRole:button{"name":"Login"}')
TEXT = SelectorDescriptor.from_key("getByText:Login")

CONFIG = ResolverConfig(candidate_timeout_ms=100, extended_timeout_ms=1000)


class TestFirstMatch:
    """Test candidate ordering."""

    def test_first_candidate_wins(self):
        page = FakePage({"locator:#login": FakeLocator(1), "getByRole:button": FakeLocator(1)})
        resolved = ElementResolverSync(page, CONFIG).resolve([CSS, ROLE], "loginButton")
        assert resolved.selector == CSS
        assert page.requested == ["locator:#login"]

    def test_first_match_not_best_match(self):
        """A later unique match never beats an earlier ambiguous one."""
        page = FakePage({"locator:#login": FakeLocator(0), "getByRole:button": FakeLocator(3),
                         "getByText:Login": FakeLocator(1)})
        resolved = ElementResolverSync(page, CONFIG).resolve([CSS, ROLE, TEXT], "loginButton")
        assert resolved.selector == ROLE
        assert resolved.match_count == 3
        assert resolved.ambiguous

    def test_attempt_log_records_misses(self):
        page = FakePage({"getByRole:button": FakeLocator(1)})
        resolved = ElementResolverSync(page, CONFIG).resolve([CSS, ROLE], "loginButton")
        miss, hit = resolved.attempts
        assert miss.selector == CSS.key
        assert miss.count == 0
        assert not miss.errored
        assert hit.count == 1

    def test_invalid_selector_is_skipped(self):
        """A selector the engine rejects is an attempt, not a crash."""
        page = FakePage({"locator:#login": FakeLocator(error=invalid_selector_error()),
                         "getByRole:button": FakeLocator(1)})
        resolved = ElementResolverSync(page, CONFIG).resolve([CSS, ROLE], "loginButton")
        assert resolved.selector == ROLE
        assert resolved.attempts[0].errored
        assert "parsing selector" in resolved.attempts[0].error


class TestAmbiguity:
    """Test the ambiguity marker."""

    def test_marker_is_logged(self, caplog):
        page = FakePage({"locator:#login": FakeLocator(2)})
        with caplog.at_level(logging.WARNING, logger="visionqa.resolver"):
            ElementResolverSync(page, CONFIG).resolve([CSS], "loginButton")
        assert "Selector matched 2 elements for loginButton" in caplog.text

    def test_single_match_logs_no_marker(self, caplog):
        page = FakePage({"locator:#login": FakeLocator(1)})
        with caplog.at_level(logging.WARNING, logger="visionqa.resolver"):
            ElementResolverSync(page, CONFIG).resolve([CSS], "loginButton")
        assert "Selector matched" not in caplog.text


class TestExtendedWait:
    """Test the last-chance wait on the first candidate."""

    def test_slow_first_candidate_is_found(self):
        slow = FakeLocator(1, appears_after_ms=500)
        page = FakePage({"locator:#login": slow})
        resolved = ElementResolverSync(page, CONFIG).resolve([CSS, ROLE], "loginButton")
        assert resolved.selector == CSS
        assert resolved.attempts[-1].extended
        assert slow.wait_timeouts == [100, 1000]

    def test_not_found_after_extended_wait(self):
        page = FakePage()
        with pytest.raises(ElementNotFoundError) as exc_info:
            ElementResolverSync(page, CONFIG).resolve([CSS, ROLE, TEXT], "loginButton")
        err = exc_info.value
        assert str(err) == "Element not found: loginButton (tried 3 selector candidates)"
        assert len(err.attempts) == 4
        assert err.to_dict()["candidatesTried"] == 3

    def test_empty_candidates(self):
        with pytest.raises(ElementNotFoundError, match="tried 0 selector candidates"):
            ElementResolverSync(FakePage(), CONFIG).resolve([], "loginButton")


class TestAsyncResolver:
    """The async resolver should behave like the sync one."""

    def test_first_match(self):
        page = FakePage({"locator:#login": AsyncFakeLocator(0), "getByRole:button": AsyncFakeLocator(1)})
        resolved = asyncio.run(ElementResolver(page, CONFIG).resolve([CSS, ROLE], "loginButton"))
        assert resolved.selector == ROLE

    def test_not_found(self):
        page = FakePage({"locator:#login": AsyncFakeLocator(0), "getByRole:button": AsyncFakeLocator(0)})
        with pytest.raises(ElementNotFoundError):
            asyncio.run(ElementResolver(page, CONFIG).resolve([CSS, ROLE], "loginButton"))


class TestConfig:
    def test_rejects_inverted_timeouts(self):
        with pytest.raises(ValueError):
            ResolverConfig(candidate_timeout_ms=5000, extended_timeout_ms=1000)

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            ResolverConfig(candidate_timeout_ms=0)


class SignatureCheckingPage(FakePage):
    """FakePage whose get_by_* methods accept only Playwright's keyword arguments."""

    def _bind(self, name, value, kwargs):
        signature = inspect.signature(getattr(PlaywrightPage, name))
        signature.bind(self, value, **kwargs)

    def get_by_role(self, role, **kwargs):
        self._bind("get_by_role", role, kwargs)
        return super().get_by_role(role, **kwargs)

    def get_by_label(self, text, **kwargs):
        self._bind("get_by_label", text, kwargs)
        return super().get_by_label(text, **kwargs)


class TestUnsupportedOptions:
    """Generated options the locator factory rejects count as errored attempts."""

    HAS_TEXT = SelectorDescriptor.from_key('getByRole:button{"hasText":"Login"}')

    def test_falls_through_to_next_candidate(self):
        page = SignatureCheckingPage({"locator:#login": FakeLocator(1)})
        resolved = ElementResolverSync(page, CONFIG).resolve([self.HAS_TEXT, CSS], "loginButton")
        assert resolved.selector == CSS
        assert resolved.attempts[0].errored
        assert "has_text" in resolved.attempts[0].error

    def test_supported_options_still_pass(self):
        page = SignatureCheckingPage({"getByRole:button": FakeLocator(1)})
        resolved = ElementResolverSync(page, CONFIG).resolve([ROLE], "loginButton")
        assert resolved.selector == ROLE

    def test_only_bad_candidate_raises_not_found(self):
        page = SignatureCheckingPage()
        with pytest.raises(ElementNotFoundError) as exc_info:
            ElementResolverSync(page, CONFIG).resolve([self.HAS_TEXT], "loginButton")
        attempts = exc_info.value.attempts
        assert len(attempts) == 2
        assert all(a.errored for a in attempts)
        assert attempts[-1].extended

    def test_async_falls_through(self):
        page = SignatureCheckingPage({"locator:#login": AsyncFakeLocator(1)})
        resolved = asyncio.run(ElementResolver(page, CONFIG).resolve([self.HAS_TEXT, CSS], "loginButton"))
        assert resolved.selector == CSS
