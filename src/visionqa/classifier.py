"""
Failure classification for executed tests.

classify() takes whatever the execution produced - a structured JSON report
or plain stdout/stderr - and always returns a FailureAnalysis. It never
raises: unparseable input degrades to "raw text as message", "Unknown step"
and FailureType.UNKNOWN.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Collection, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

UNKNOWN_STEP = "Unknown step"


class FailureType(Enum):
    SELECTOR = "selector"
    TIMING = "timing"
    VALIDATION = "validation"
    NAVIGATION = "navigation"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value) -> "FailureType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


# First matching rule wins
CATEGORY_RULES: List[Tuple[FailureType, Tuple[str, ...]]] = [
    (FailureType.TIMING, ("outside of the viewport",)),
    (FailureType.TIMING, ("timeout", "waiting for")),
    (FailureType.SELECTOR, ("locator", "selector", "element not found")),
    (FailureType.VALIDATION, ("assertion", "expect")),
    (FailureType.NAVIGATION, ("navigation", "goto", "net::err")),
]

# "Selector matched 3 elements for loginButton" (resolver) and the older
# "Selector encontró 3 elementos para loginButton"
AMBIGUITY_PATTERN = re.compile(
    r"selector\s+(?:matched|encontr[oó])\s+(\d+)\s+(?:elements|elementos)\s+(?:for|para)\s+['\"]?(\w+)",
    re.IGNORECASE,
)
NOT_FOUND_PATTERN = re.compile(r"Element not found:\s+['\"]?(\w+)")

# at LoginPage.clickSubmit (/path/pages/generated/LoginPage.ts:45:21)
JS_PAGE_FRAME = re.compile(r"at \w+\.(\w+) \([^()\s]+:\d+:\d+\)")
# File ".../generated/login_page.py", line 12, in clickLoginButton
PY_PAGE_FRAME = re.compile(
    r'File "[^"]+", line \d+, in ((?:click|fill|waitFor|assert|check|uncheck|select|clear|get|is)[A-Z]\w*)'
)
AWAIT_CALL = re.compile(r"await\s+\w+\.(\w+)\(")

STEP_VERB = re.compile(r"^(?:click|fill|waitFor|assert|check|uncheck|select|clear|getValue|get|is)(\w+)", re.IGNORECASE)
STEP_SUFFIXES = ("Visible", "Text", "Value", "Contains", "OneOf")


def element_name_from_step(step: str, known: Optional[Collection[str]] = None) -> Optional[str]:
    """
    Recover an element name from a generated method name.

        clickLoginButton        -> loginButton
        waitForErrorAlertVisible -> errorAlert   (when "errorAlert" is known)

    This relies on the generator's ``{verb}{Element}`` naming convention and
    is ambiguous for element names that start with a verb; prefer the
    explicit element carried by FailureAnalysis.element_name.
    """
    if not step or step == UNKNOWN_STEP:
        return None
    match = STEP_VERB.match(step)
    if not match:
        return None
    rest = match.group(1)
    name = rest[0].lower() + rest[1:]
    if known is None or name in known:
        return name
    for suffix in STEP_SUFFIXES:
        if name.endswith(suffix) and name[: -len(suffix)] in known:
            return name[: -len(suffix)]
    return name


@dataclass
class FailureAnalysis:
    """Why a test failed and what could fix it."""

    test_name: str
    failure_type: FailureType
    failed_step: str
    error_message: str
    suggested_fixes: List[Any] = field(default_factory=list)  # SuggestedFix, best first
    element_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testName": self.test_name,
            "failureType": self.failure_type.value,
            "failedStep": self.failed_step,
            "errorMessage": self.error_message,
            "elementName": self.element_name,
            "suggestedFixes": [f.to_dict() for f in self.suggested_fixes],
        }

    def summary(self) -> str:
        lines = [
            f"Test: {self.test_name}",
            f"Failure type: {self.failure_type.value}",
            f"Failed step: {self.failed_step}",
        ]
        if self.element_name:
            lines.append(f"Element: {self.element_name}")
        lines.append(f"Error: {self.error_message[:500]}")
        if self.suggested_fixes:
            lines.append("Suggested fixes:")
            for fix in self.suggested_fixes:
                lines.append(f"  [{fix.confidence:.2f}] {fix.kind.value}: {fix.description}")
        return "\n".join(lines)


def element_name_for(analysis: FailureAnalysis, known: Optional[Collection[str]] = None) -> Optional[str]:
    """The failing element: explicit reference first, method-name parsing second."""
    if analysis.element_name and (known is None or analysis.element_name in known):
        return analysis.element_name
    return element_name_from_step(analysis.failed_step, known)


class FailureClassifier:
    """
    Turns raw execution output into a FailureAnalysis (without fixes).

    Usage:
        classifier = FailureClassifier()
        analysis = classifier.classify(report_json_or_stderr, test_name="login")
    """

    def classify(self, raw_result: Optional[str], test_name: str = "") -> FailureAnalysis:
        raw = raw_result if isinstance(raw_result, str) else ("" if raw_result is None else str(raw_result))

        structured = self._parse_report(raw)
        if structured is not None:
            error_message, stack = structured
            failed_step = self.extract_failed_step(stack) if stack else UNKNOWN_STEP
            if failed_step == UNKNOWN_STEP:
                failed_step = self.extract_failed_step(raw)
        else:
            error_message = raw
            failed_step = self.extract_failed_step(raw)

        failure_type = self.categorize(error_message)

        element_name = None
        ambiguity = AMBIGUITY_PATTERN.search(raw)
        if ambiguity:
            if failure_type != FailureType.SELECTOR:
                logger.info(
                    "Re-classifying %s failure as selector: selector matched %s elements for %s",
                    failure_type.value, ambiguity.group(1), ambiguity.group(2),
                )
            failure_type = FailureType.SELECTOR
            element_name = ambiguity.group(2)
        not_found = NOT_FOUND_PATTERN.search(raw)
        if not_found:
            element_name = not_found.group(1)

        return FailureAnalysis(
            test_name=test_name,
            failure_type=failure_type,
            failed_step=failed_step,
            error_message=error_message,
            element_name=element_name,
        )

    def _parse_report(self, raw: str) -> Optional[Tuple[str, str]]:
        """Error message and stack from the first test result, or None."""
        try:
            report = json.loads(raw)
            result = report["suites"][0]["suites"][0]["specs"][0]["tests"][0]["results"][0]
            error = result["error"]
            message = error["message"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.debug("Execution output is not a structured report, analysing as raw text")
            return None
        if not isinstance(message, str) or not message:
            return None
        stack = error.get("stack") if isinstance(error, dict) else None
        return message, stack if isinstance(stack, str) else ""

    @staticmethod
    def extract_failed_step(text: str) -> str:
        if not text:
            return UNKNOWN_STEP
        match = JS_PAGE_FRAME.search(text)
        if match:
            return match.group(1)
        frames = PY_PAGE_FRAME.findall(text)
        if frames:
            return frames[-1]  # innermost
        match = AWAIT_CALL.search(text)
        if match:
            return match.group(1)
        return UNKNOWN_STEP

    @staticmethod
    def categorize(error_message: str) -> FailureType:
        lower = (error_message or "").lower()
        for failure_type, needles in CATEGORY_RULES:
            if any(needle in lower for needle in needles):
                return failure_type
        return FailureType.UNKNOWN
