"""
Learning loop on top of the knowledge base.

Before a run, enhance() reorders each element's candidates with what
worked before. After a run, learn_from_success() / learn_from_failure()
record the outcome and write a learning report.
"""

import logging
import time
from collections import Counter
from typing import Any, Dict, List

from .assets import LocatorMetadata, TestAssets
from .classifier import FailureAnalysis, element_name_for
from .knowledge import ExecutionRecord, LearnedElementRecord, SelectorCandidateStore
from .selectors import SelectorDescriptor

logger = logging.getLogger(__name__)

REPORT_FILE = "learning-report.json"

RELIABLE_RATE = 90.0
PROBLEMATIC_RATE = 50.0


class KnowledgeUpdater:
    """
    Applies and updates selector knowledge for generated test assets.

    Usage:
        store = SelectorCandidateStore("./knowledge-base")
        store.load()
        updater = KnowledgeUpdater(store)

        assets = updater.enhance(assets, "https://example.com/login")
        ...
        updater.learn_from_success("login", assets, "https://example.com/login")
    """

    def __init__(
        self,
        store: SelectorCandidateStore,
        max_candidates: int = 5,
        browser_name: str = "chromium",
        viewport: str = "1280x720",
    ):
        if max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")
        self.store = store
        self.max_candidates = max_candidates
        self.browser_name = browser_name
        self.viewport = viewport

    # ------------------------------------------------------------------
    # Enhancement

    def enhance(self, assets: TestAssets, page_url: str) -> TestAssets:
        """Return a copy of ``assets`` with candidate lists reordered by past results."""
        enhanced = assets.copy()
        count = 0
        for locator in enhanced.all_locators():
            record = self.store.get(page_url, locator.name)
            if record is None:
                continue
            locator.selectors = self._ranked_candidates(record, locator.selectors)
            locator.metadata = LocatorMetadata(
                confidence=record.success_rate,
                last_success=record.last_updated.isoformat(),
                enhanced=True,
            )
            count += 1
        if count:
            logger.info("Enhanced %d element(s) from the knowledge base for %s", count, page_url)
        return enhanced

    def _ranked_candidates(
        self, record: LearnedElementRecord, current: List[SelectorDescriptor]
    ) -> List[SelectorDescriptor]:
        failed = set(record.failed_selectors)
        combined = [SelectorDescriptor.from_key(key) for key in record.working_selectors]
        combined += [s for s in current if s.key not in failed]

        ranked: List[SelectorDescriptor] = []
        seen = set()
        for selector in combined:
            if selector.key in seen:
                continue
            seen.add(selector.key)
            ranked.append(selector)
        return ranked[: self.max_candidates]

    # ------------------------------------------------------------------
    # Learning

    def learn_from_success(
        self, test_name: str, assets: TestAssets, page_url: str, duration: float = 0.0
    ) -> bool:
        """Record the first candidate of every element as the one that worked."""
        for locator in assets.all_locators():
            if locator.selectors:
                self.store.record_success(page_url, locator.name, locator.selectors[0].key)
        self.store.append_history(ExecutionRecord(
            test_name=test_name,
            success=True,
            duration=duration,
            environment=self._environment(page_url),
        ))
        return self._persist()

    def learn_from_failure(
        self,
        test_name: str,
        analysis: FailureAnalysis,
        assets: TestAssets,
        page_url: str,
        duration: float = 0.0,
    ) -> bool:
        """Record the failing element's first candidate as failed, and the run itself."""
        known = {loc.name for loc in assets.all_locators()}
        name = element_name_for(analysis, known)
        locator = assets.find_locator(name) if name else None
        if locator is not None and locator.selectors:
            self.store.record_failure(page_url, locator.name, locator.selectors[0].key)
            logger.info("Recorded failed selector %s for %s", locator.selectors[0].key, locator.name)
        else:
            logger.debug("No element identified for failed step %r", analysis.failed_step)

        self.store.append_history(ExecutionRecord(
            test_name=test_name,
            success=False,
            duration=duration,
            failure_analysis=analysis.to_dict(),
            environment=self._environment(page_url),
        ))
        return self._persist()

    def _environment(self, page_url: str) -> Dict[str, Any]:
        return {"browser": self.browser_name, "viewport": self.viewport, "url": page_url}

    def _persist(self) -> bool:
        saved = self.store.save()
        if saved:
            self.store.write_artifact(REPORT_FILE, self.generate_learning_report())
        return saved

    # ------------------------------------------------------------------
    # Reporting

    def generate_learning_report(self) -> Dict[str, Any]:
        history = self.store.history
        return {
            "generatedAt": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "totalTests": len(history),
            "successRate": self._overall_success_rate(),
            "mostReliableSelectors": [r.to_dict() for r in self._most_reliable()],
            "problematicElements": self._problematic_elements(),
            "recommendations": self._recommendations(),
        }

    def suggest_improvements(self, url: str) -> List[str]:
        """Hints for a page based on when and where its runs failed."""
        failures = [
            h for h in self.store.history
            if not h.success and url in str(h.environment.get("url", ""))
        ]
        if not failures:
            return []

        suggestions = []
        by_hour = Counter(h.timestamp.hour for h in failures)
        if _has_time_pattern(by_hour):
            suggestions.append(
                "⏰ Tests fail noticeably more often at certain hours. "
                "Consider raising timeouts or checking server load."
            )
        for element in self._problematic_elements():
            if url in element["url"]:
                suggestions.append(
                    f"🎯 Element \"{element['name']}\" has a low success rate "
                    f"({element['successRate']:.0f}%). Consider more specific selectors or a data-testid."
                )
        return suggestions

    def _overall_success_rate(self) -> float:
        history = self.store.history
        if not history:
            return 0.0
        return sum(1 for h in history if h.success) / len(history) * 100

    def _most_reliable(self, limit: int = 10) -> List[LearnedElementRecord]:
        reliable = [r for r in self.store.records() if r.success_rate > RELIABLE_RATE]
        return sorted(reliable, key=lambda r: r.success_rate, reverse=True)[:limit]

    def _problematic_elements(self) -> List[Dict[str, Any]]:
        return [
            {"name": r.element_name, "successRate": r.success_rate, "url": r.url}
            for r in self.store.records()
            if r.success_rate < PROBLEMATIC_RATE
        ]

    def _recommendations(self) -> List[str]:
        recommendations = []
        if self.store.history and self._overall_success_rate() < 80:
            recommendations.append("Overall success rate is low. Review selector stability.")
        if len(self._problematic_elements()) > 5:
            recommendations.append("Many elements are problematic. Consider adding data-testid to critical elements.")
        return recommendations


def _has_time_pattern(failures_by_hour: Counter) -> bool:
    """True when some hour has more than twice the average failure count."""
    values = list(failures_by_hour.values())
    if not values:
        return False
    average = sum(values) / len(values)
    return any(v > average * 2 for v in values)
