"""Tests for failure classification."""

import json

import pytest

from visionqa.classifier import (
    FailureAnalysis,
    FailureClassifier,
    FailureType,
    element_name_for,
    element_name_from_step,
)


def playwright_report(message, stack=""):
    """A report shaped like the Playwright JSON reporter's output."""
    return json.dumps({
        "suites": [{
            "title": "login.spec.ts",
            "suites": [{
                "title": "Login",
                "specs": [{
                    "title": "invalid login",
                    "tests": [{"results": [{"status": "failed", "error": {"message": message, "stack": stack}}]}],
                }],
            }],
        }],
    })


@pytest.fixture
def classifier():
    return FailureClassifier()


class TestClassifyNeverRaises:
    """classify() should be total over its input."""

    @pytest.mark.parametrize("raw", ["", None, "not json at all", "{\"suites\": []}", "[1, 2, 3]"])
    def test_unusable_input(self, classifier, raw):
        analysis = classifier.classify(raw, test_name="login")
        assert analysis.failure_type == FailureType.UNKNOWN
        assert analysis.failed_step == "Unknown step"
        assert analysis.error_message == (raw or "")
        assert analysis.element_name is None

    def test_report_without_error_falls_back_to_raw_text(self, classifier):
        raw = json.dumps({"suites": [{"suites": [{"specs": [{"tests": [{"results": [{"status": "passed"}]}]}]}]}]})
        analysis = classifier.classify(raw)
        assert analysis.error_message == raw


class TestStructuredReport:
    """Test reading the first result of a structured report."""

    def test_timing_failure_in_page_method(self, classifier):
        raw = playwright_report(
            "Timeout 30000ms exceeded.\nwaiting for locator('#submit')",
            "Error: Timeout\n    at LoginPage.clickSubmit (/app/pages/generated/LoginPage.ts:45:21)",
        )
        analysis = classifier.classify(raw, test_name="login")
        assert analysis.failure_type == FailureType.TIMING
        assert analysis.failed_step == "clickSubmit"
        assert analysis.error_message.startswith("Timeout 30000ms exceeded.")

    def test_python_traceback_uses_innermost_page_method(self, classifier):
        stack = (
            'Traceback (most recent call last):\n'
            '  File "/tmp/run/test_login.py", line 40, in test_invalid_login\n'
            '    login_page.clickLoginButton()\n'
            '  File "/tmp/run/login_page.py", line 31, in clickLoginButton\n'
            '    self.click("loginButton")\n'
            '  File "/usr/lib/visionqa/pages.py", line 99, in click\n'
            '    element = self.find_smartly(name)\n'
            'visionqa.resolver.ElementNotFoundError: Element not found: loginButton '
            '(tried 2 selector candidates)\n'
        )
        raw = playwright_report("Element not found: loginButton (tried 2 selector candidates)", stack)
        analysis = classifier.classify(raw)
        assert analysis.failure_type == FailureType.SELECTOR
        assert analysis.failed_step == "clickLoginButton"
        assert analysis.element_name == "loginButton"

    def test_url_in_message_is_not_a_page_frame(self, classifier):
        stack = (
            'Traceback (most recent call last):\n'
            '  File "/tmp/run/login_page.py", line 31, in clickLoginButton\n'
            '    self.click("loginButton")\n'
            'AssertionError: expected the form at index.html to submit\n'
        )
        raw = playwright_report("AssertionError: expected the form at index.html to submit", stack)
        assert classifier.classify(raw).failed_step == "clickLoginButton"

    def test_assertion_failure(self, classifier):
        analysis = classifier.classify(playwright_report("AssertionError: expected 'Welcome' but got 'Error'"))
        assert analysis.failure_type == FailureType.VALIDATION

    def test_navigation_failure(self, classifier):
        analysis = classifier.classify(playwright_report("page.goto: net::ERR_NAME_NOT_RESOLVED"))
        assert analysis.failure_type == FailureType.NAVIGATION


class TestAmbiguityMarker:
    """The resolver's ambiguity marker turns any failure into a selector failure."""

    def test_english_marker(self, classifier):
        raw = playwright_report("Timeout 5000ms exceeded", "Selector matched 3 elements for loginButton")
        analysis = classifier.classify(raw)
        assert analysis.failure_type == FailureType.SELECTOR
        assert analysis.element_name == "loginButton"

    def test_legacy_spanish_marker(self, classifier):
        analysis = classifier.classify("Timeout exceeded\nSelector encontró 3 elementos para loginButton")
        assert analysis.failure_type == FailureType.SELECTOR
        assert analysis.element_name == "loginButton"


class TestCategorize:
    @pytest.mark.parametrize("message, expected", [
        ("Element is outside of the viewport", FailureType.TIMING),
        ("waiting for selector to be visible", FailureType.TIMING),
        ("strict mode violation: locator resolved to 2 elements", FailureType.SELECTOR),
        ("expect(received).toBe(expected)", FailureType.VALIDATION),
        ("navigation interrupted", FailureType.NAVIGATION),
        ("something else entirely", FailureType.UNKNOWN),
        ("", FailureType.UNKNOWN),
    ])
    def test_first_rule_wins(self, message, expected):
        assert FailureClassifier.categorize(message) == expected

    def test_coerce(self):
        assert FailureType.coerce("Selector") == FailureType.SELECTOR
        assert FailureType.coerce(FailureType.TIMING) == FailureType.TIMING
        assert FailureType.coerce("nonsense") == FailureType.UNKNOWN


class TestElementNames:
    """Test recovering element names from generated method names."""

    def test_verb_is_stripped(self):
        assert element_name_from_step("clickLoginButton") == "loginButton"
        assert element_name_from_step("fillEmailInput") == "emailInput"

    def test_known_suffix_is_stripped(self):
        known = {"errorMessage"}
        assert element_name_from_step("waitForErrorMessageVisible", known) == "errorMessage"
        assert element_name_from_step("assertErrorMessageText", known) == "errorMessage"

    def test_no_step(self):
        assert element_name_from_step("Unknown step") is None
        assert element_name_from_step("navigate") is None

    def test_explicit_element_wins(self):
        analysis = FailureAnalysis("t", FailureType.SELECTOR, "clickSubmit", "", element_name="loginButton")
        assert element_name_for(analysis, {"loginButton", "submit"}) == "loginButton"

    def test_unknown_explicit_element_falls_back_to_step(self):
        analysis = FailureAnalysis("t", FailureType.SELECTOR, "clickSubmit", "", element_name="ghost")
        assert element_name_for(analysis, {"submit"}) == "submit"


class TestProcessOutput:
    """Output without a structured result is analysed as raw text."""

    COLLECTION_ERROR = (
        "==================================== ERRORS ====================================\n"
        "_______________________ ERROR collecting test_login.py ________________________\n"
        "ImportError while importing test module '/tmp/run/test_login.py'.\n"
        "E   ModuleNotFoundError: No module named 'login_page'\n"
        "1 error in 0.12s\n"
    )

    def test_collection_error_keeps_error_text(self, classifier):
        analysis = classifier.classify(self.COLLECTION_ERROR, test_name="login")
        assert "No module named 'login_page'" in analysis.error_message
        assert analysis.failure_type == FailureType.UNKNOWN
        assert analysis.failed_step == "Unknown step"
