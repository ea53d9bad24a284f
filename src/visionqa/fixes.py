"""
Fix suggestions for failed tests, and applying them to the asset document.

Suggestions escalate in three rungs, each tried only when the previous one
does not apply:

    1. known alternative   - the element has other selectors: rotate the
                             failing one to the back (0.95)
    2. visual discovery    - ask the vision backend to find the element on a
                             fresh screenshot and inject its selector (0.9)
    3. blind retry         - rerun as-is (0.3), preceded by wait advice for
                             timing failures

suggest() never returns an empty list.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .assets import TestAssets, split_camel_case
from .classifier import FailureAnalysis, FailureType, element_name_from_step
from .selectors import SelectorDescriptor

logger = logging.getLogger(__name__)


class FixKind(Enum):
    SELECTOR = "selector"
    WAIT = "wait"
    ASSERTION = "assertion"
    RETRY = "retry"


@dataclass
class FixDirective:
    """Concrete change to an element's candidate list."""

    action: str  # "reorder" | "inject"
    element: str
    selector: SelectorDescriptor  # failing selector (reorder) or new selector (inject)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "element": self.element, "selector": self.selector.to_dict()}


@dataclass
class SuggestedFix:
    kind: FixKind
    description: str
    confidence: float
    directive: Optional[FixDirective] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "description": self.description,
            "code": self.directive.to_dict() if self.directive else None,
            "confidence": self.confidence,
        }


def _as_descriptor(raw) -> Optional[SelectorDescriptor]:
    if isinstance(raw, SelectorDescriptor):
        return raw
    if isinstance(raw, str):
        return SelectorDescriptor.from_key(raw)
    if isinstance(raw, dict):
        try:
            return SelectorDescriptor.from_dict(raw)
        except ValueError:
            return None
    return None


def candidate_list(entry) -> List[SelectorDescriptor]:
    """Normalize a known-element entry (LocatorDefinition, dict or list) to descriptors."""
    if entry is None:
        return []
    if hasattr(entry, "selectors"):
        raw = entry.selectors
    elif isinstance(entry, dict):
        raw = entry.get("selectors", [])
    else:
        raw = entry
    return [d for d in (_as_descriptor(r) for r in raw) if d is not None]


class FixSuggestionEngine:
    """
    Proposes ranked remediations for a classified failure.

    Usage:
        engine = FixSuggestionEngine(visual_fallback=VisualFallback(backend, browser))
        fixes = engine.suggest(FailureType.SELECTOR, message, "clickLoginButton",
                               assets.known_elements(), page_url)
    """

    def __init__(
        self,
        visual_fallback=None,
        reorder_confidence: float = 0.95,
        visual_confidence: float = 0.9,
        visual_threshold: float = 0.8,
        retry_confidence: float = 0.3,
    ):
        self.visual_fallback = visual_fallback
        self.reorder_confidence = reorder_confidence
        self.visual_confidence = visual_confidence
        self.visual_threshold = visual_threshold
        self.retry_confidence = retry_confidence

    def suggest(
        self,
        failure_type,
        error_message: str,
        failed_step: str,
        known_elements: Optional[Mapping[str, Any]],
        page_url: Optional[str],
        element_name: Optional[str] = None,
    ) -> List[SuggestedFix]:
        failure_type = FailureType.coerce(failure_type)
        known = dict(known_elements or {})
        if element_name not in known:
            element_name = element_name_from_step(failed_step, known)

        if failure_type == FailureType.SELECTOR and element_name:
            candidates = candidate_list(known.get(element_name))
            if len(candidates) > 1:
                return [SuggestedFix(
                    kind=FixKind.SELECTOR,
                    description=f"Try the next selector for '{element_name}' (move {candidates[0].key} to the back)",
                    confidence=self.reorder_confidence,
                    directive=FixDirective("reorder", element_name, candidates[0]),
                )]

        visual_fix = self._visual_fix(element_name, page_url)
        if visual_fix:
            return [visual_fix]

        fixes = self._timing_advice(failure_type, error_message)
        fixes.append(SuggestedFix(
            kind=FixKind.RETRY,
            description="Retry the test to rule out an intermittent failure.",
            confidence=self.retry_confidence,
        ))
        return sorted(fixes, key=lambda f: f.confidence, reverse=True)

    def suggest_for(self, analysis: FailureAnalysis, assets: TestAssets, page_url: str) -> FailureAnalysis:
        """Fill ``analysis.suggested_fixes`` in place and return it."""
        analysis.suggested_fixes = self.suggest(
            analysis.failure_type,
            analysis.error_message,
            analysis.failed_step,
            assets.known_elements(),
            page_url,
            element_name=analysis.element_name,
        )
        return analysis

    def _visual_fix(self, element_name: Optional[str], page_url: Optional[str]) -> Optional[SuggestedFix]:
        if self.visual_fallback is None or not element_name or not page_url:
            return None
        description = split_camel_case(element_name)
        try:
            match = self.visual_fallback.locate(page_url, description)
        except Exception as e:
            logger.warning("Visual fallback failed for %s: %s", description, e)
            return None
        if not match or not match.found or match.confidence <= self.visual_threshold:
            return None
        if not match.suggested_selectors:
            return None
        selector = match.suggested_selectors[0]
        return SuggestedFix(
            kind=FixKind.SELECTOR,
            description=f"Use AI-suggested selector for '{element_name}': {selector.key}",
            confidence=self.visual_confidence,
            directive=FixDirective("inject", element_name, selector),
        )

    @staticmethod
    def _timing_advice(failure_type: FailureType, error_message: str) -> List[SuggestedFix]:
        if failure_type != FailureType.TIMING:
            return []
        if "outside of the viewport" in (error_message or "").lower():
            return [SuggestedFix(
                kind=FixKind.WAIT,
                description="The element was not visible. Scroll it into view before acting on it.",
                confidence=0.95,
            )]
        return [SuggestedFix(
            kind=FixKind.WAIT,
            description="Increase the timeout or add an explicit wait (e.g. wait_for_load_state).",
            confidence=0.8,
        )]


def apply_fix(analysis: FailureAnalysis, assets: TestAssets, threshold: float = 0.8) -> bool:
    """
    Apply the best selector fix to ``assets`` in place.

    Returns True when the document changed. Fixes without a directive, or
    below ``threshold``, are never applied.
    """
    fix = next(
        (f for f in analysis.suggested_fixes
         if f.kind == FixKind.SELECTOR and f.directive is not None and f.confidence >= threshold),
        None,
    )
    if fix is None:
        logger.info("No selector fix with confidence >= %.2f to apply", threshold)
        return False

    directive = fix.directive
    locator = assets.find_locator(directive.element)
    if locator is None:
        logger.warning("Cannot apply fix: element %r is not in the assets", directive.element)
        return False

    if directive.action == "reorder":
        if len(locator.selectors) < 2:
            return False
        try:
            index = locator.selectors.index(directive.selector)
        except ValueError:
            index = 0
        locator.selectors.append(locator.selectors.pop(index))
        logger.info("Moved %s to the back of %s's selectors", directive.selector.key, locator.name)
        return True

    if directive.action == "inject":
        if directive.selector in locator.selectors:
            logger.info("Suggested selector %s already known for %s", directive.selector.key, locator.name)
            return False
        locator.selectors.insert(0, directive.selector)
        logger.info("Injected %s as first selector of %s", directive.selector.key, locator.name)
        return True

    logger.warning("Unknown fix directive %r", directive.action)
    return False
