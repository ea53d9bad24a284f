"""
Abstract base interface for AI vision backends.

A backend provides the two AI capabilities visionQA needs:

- generate_test_assets: screenshot + user story -> asset document (JSON)
- locate_element: screenshot + element description -> VisualMatch

Backends can be swapped out to use different AI providers (Gemini, OpenAI, ...).
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from ..selectors import SelectorDescriptor

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """The AI provider failed or returned something that is not the requested JSON."""


@dataclass
class VisualMatch:
    """Result of looking for an element on a screenshot."""

    found: bool
    confidence: float = 0.0
    suggested_selectors: List[SelectorDescriptor] = field(default_factory=list)
    bounding_box: Optional[Dict[str, float]] = None
    element_type: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    reason: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VisualMatch":
        """Create VisualMatch from dictionary response."""
        selectors = []
        for raw in data.get("suggestedSelectors") or []:
            if isinstance(raw, str) and raw.strip():
                selectors.append(SelectorDescriptor.from_key(raw.strip()))
            elif isinstance(raw, dict):
                try:
                    selectors.append(SelectorDescriptor.from_dict(raw))
                except ValueError:
                    logger.debug("Ignoring malformed suggested selector %r", raw)

        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0

        return cls(
            found=bool(data.get("found", False)),
            confidence=confidence,
            suggested_selectors=selectors,
            bounding_box=data.get("boundingBox"),
            element_type=data.get("elementType"),
            attributes=data.get("attributes") or {},
        )


def extract_json(text: str) -> Any:
    """
    Pull the JSON value out of a model reply.

    Replies may be wrapped in markdown fences or prose; everything from the
    first opening bracket to the matching last closing bracket is parsed.
    """
    if not text:
        raise ValueError("empty response")
    text = text.strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        raise ValueError("no JSON object in response")
    start = min(starts)
    end = text.rfind("}" if text[start] == "{" else "]")
    if end < start:
        raise ValueError("unterminated JSON in response")
    return json.loads(text[start:end + 1])


def user_story_text(user_story: Union[str, Sequence[str]]) -> str:
    if isinstance(user_story, str):
        return user_story
    return "\n".join(user_story)


ASSET_PROMPT = """You are "visionQA", a code generator for automated Playwright tests.
Your only job is to analyse the inputs and return ONE structured JSON object that is
used to generate robust Page Objects and a test.

USER STORY:
{user_story}

TASK:
Analyse the ATTACHED SCREENSHOT and the USER STORY and return a JSON object with:

1. "pageObject": {{
     "className": "<PascalCase page class, e.g. LoginPage>",
     "locators": [
       {{
         "name": "<camelCase element name, e.g. emailInput, loginButton, errorMessage>",
         "elementType": "input" | "button" | "text" | "alert" | "select" | "checkbox" | "link",
         "actions": subset of ["fill", "click", "check", "select", "clear", "getValue"] ([] for read-only),
         "selectors": [{{"type": "getByRole" | "getByLabel" | "getByPlaceholder" | "getByText" | "locator",
                         "value": "<string>", "options": {{...optional...}}}}],
         "waitBefore": "visible" | "enabled" | "stable" (optional),
         "validateAfter": true | false (optional)
       }}
     ]
   }}
   Give every element 2-3 selectors, most robust first (role/label before CSS).

2. "additionalPageObjects": OPTIONAL array with the same shape as "pageObject",
   only when the story navigates to another page. Omit it for single-page flows.

3. "testSteps": array of steps, each {{"action", "params", "page", optional "waitFor", optional "assert"}}.
   Naming rules for "action" (ACTION + ELEMENT):
   - inputs: "fill<Element>"        buttons/links: "click<Element>"
   - checkboxes: "check<Element>"   selects: "select<Element>"
   - read-only: "waitFor<Element>Visible", "get<Element>Text", "assert<Element>Text"
   - the first step is {{"action": "navigate", "params": ["<path or url>"]}}
   - "page" is REQUIRED and must be a defined className
   - "params" is always an array (empty when there are none)
   - add "waitFor": {{"element": "<name>", "state": "visible"}} for elements that appear later
   - add "assert": {{"type": "text" | "url" | "visible", "expected": "<value>"}} for important checks

Include only the elements the story actually needs.
Return ONLY valid JSON (no markdown, no explanation).
"""

LOCATE_PROMPT = """Analyse this screenshot and find the element matching: "{description}"

Return ONLY valid JSON (no markdown, no explanation):
{{
    "found": true | false,
    "boundingBox": {{"x": 0, "y": 0, "width": 0, "height": 0}},
    "suggestedSelectors": [{{"type": "getByRole" | "getByLabel" | "getByPlaceholder" | "getByText" | "locator",
                             "value": "<string>", "options": {{...optional...}}}}],
    "confidence": <0.0 to 1.0>,
    "elementType": "button" | "input" | "link" | "text" | "image",
    "attributes": {{"text": "", "placeholder": "", "ariaLabel": ""}}
}}
"""


class VisionBackend(ABC):
    """
    Abstract interface for AI vision backends.

    Implement this interface to add support for new AI providers.

    Example:
        class MyCustomBackend(VisionBackend):
            def generate_test_assets(self, user_story, screenshot_b64):
                # Your implementation
                pass

            def locate_element(self, description, screenshot_b64):
                pass
    """

    @abstractmethod
    def generate_test_assets(
        self,
        user_story: Union[str, Sequence[str]],
        screenshot_b64: str,
    ) -> Dict[str, Any]:
        """
        Generate the test asset document for a page.

        Args:
            user_story: Story text or Gherkin lines
            screenshot_b64: Base64-encoded PNG screenshot of the start page

        Returns:
            The raw asset document (validated later by TestAssets.from_dict)

        Raises:
            BackendError: when the provider does not return parseable JSON
        """
        pass

    @abstractmethod
    def locate_element(
        self,
        description: str,
        screenshot_b64: str,
    ) -> VisualMatch:
        """
        Find an element on a screenshot from a natural-language description.

        Args:
            description: e.g. "login Button"
            screenshot_b64: Base64-encoded PNG screenshot

        Returns:
            VisualMatch; found=False with confidence 0.0 when the reply is unusable
        """
        pass
