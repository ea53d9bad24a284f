"""
The generate -> execute -> analyze -> repair -> retry loop.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .assets import TestAssets, write_json_atomic
from .backends import BackendError, VisionBackend, create_backend
from .browser import BrowserConfig, PlaywrightBrowser
from .classifier import FailureAnalysis, FailureClassifier
from .codegen import CodeGenerator
from .executor import PytestExecutor
from .fixes import FixSuggestionEngine, apply_fix
from .knowledge import RetentionPolicy, SelectorCandidateStore
from .learning import KnowledgeUpdater
from .resolver import ResolverConfig
from .visual import VisualFallback

logger = logging.getLogger(__name__)

TESTCASE_SUFFIX = ".testcase.json"
ASSETS_SUFFIX = ".ai-assets.json"


@dataclass
class TestCase:
    """A user story to turn into a test: ``login.testcase.json``."""

    __test__ = False

    name: str
    url: str
    user_story: Union[str, List[str]]
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Any, path: Optional[Path] = None) -> "TestCase":
        if not isinstance(data, dict):
            raise ValueError("test case must be a JSON object")
        missing = [k for k in ("name", "url", "userStory") if not data.get(k)]
        if missing:
            raise ValueError(f"test case is missing {', '.join(missing)}")
        story = data["userStory"]
        if not isinstance(story, (str, list)):
            raise ValueError("userStory must be a string or a list of lines")
        return cls(name=str(data["name"]), url=str(data["url"]), user_story=story, path=path)

    @classmethod
    def load(cls, path) -> "TestCase":
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise ValueError(f"{path} is not valid JSON: {e}")
        return cls.from_dict(data, path)

    @property
    def assets_path(self) -> Path:
        if self.path is None:
            return Path(f"{self.name}{ASSETS_SUFFIX}")
        if self.path.name.endswith(TESTCASE_SUFFIX):
            return self.path.with_name(self.path.name[: -len(TESTCASE_SUFFIX)] + ASSETS_SUFFIX)
        return self.path.with_suffix(ASSETS_SUFFIX)


@dataclass
class RunOutcome:
    passed: bool
    attempts: int
    analysis: Optional[FailureAnalysis] = None
    artifacts: List[Path] = field(default_factory=list)

    def summary(self) -> str:
        lines = [f"{'PASSED' if self.passed else 'FAILED'} after {self.attempts} attempt(s)"]
        if self.analysis and not self.passed:
            lines.append("")
            lines.append(self.analysis.summary())
        if self.artifacts:
            lines.append("")
            lines.append("Artifacts:")
            lines.extend(f"  {p}" for p in self.artifacts)
        return "\n".join(lines)


class Orchestrator:
    """
    Drives one test case from user story to a (possibly repaired) passing test.

    Usage:
        orchestrator = Orchestrator.from_settings(Settings.from_env())
        outcome = orchestrator.run(TestCase.load("login.testcase.json"))
    """

    def __init__(
        self,
        updater: KnowledgeUpdater,
        generator: CodeGenerator,
        executor: PytestExecutor,
        backend: Optional[VisionBackend] = None,
        browser=None,
        classifier: Optional[FailureClassifier] = None,
        fix_engine: Optional[FixSuggestionEngine] = None,
        max_retries: int = 1,
        fix_threshold: float = 0.8,
        reuse_assets: bool = True,
    ):
        self.updater = updater
        self.generator = generator
        self.executor = executor
        self.backend = backend
        self.browser = browser
        self.classifier = classifier or FailureClassifier()
        self.fix_engine = fix_engine or FixSuggestionEngine()
        self.max_retries = max_retries
        self.fix_threshold = fix_threshold
        self.reuse_assets = reuse_assets

    @classmethod
    def from_settings(cls, settings, reuse_assets: bool = True) -> "Orchestrator":
        store = SelectorCandidateStore(
            settings.knowledge_dir,
            retention=RetentionPolicy(
                max_age_days=settings.retention_days,
                max_selectors_per_list=settings.max_selectors,
                max_history_entries=settings.max_history,
            ),
        )
        store.load()
        browser_config = BrowserConfig(browser=settings.browser, headless=settings.headless)
        browser = PlaywrightBrowser(browser_config)
        backend = None
        if settings.api_key:
            backend = create_backend(settings.backend, settings.api_key, settings.model)
        visual = VisualFallback(backend, browser) if backend else None
        resolver_config = ResolverConfig(
            candidate_timeout_ms=settings.candidate_timeout_ms,
            extended_timeout_ms=settings.extended_timeout_ms,
        )
        return cls(
            updater=KnowledgeUpdater(
                store,
                max_candidates=settings.max_candidates,
                browser_name=settings.browser,
                viewport=browser_config.viewport,
            ),
            generator=CodeGenerator(
                settings.output_dir,
                resolver_config=resolver_config,
                headless=settings.headless,
                browser=settings.browser,
                viewport=(browser_config.viewport_width, browser_config.viewport_height),
            ),
            executor=PytestExecutor(timeout_s=settings.test_timeout_s),
            backend=backend,
            browser=browser,
            fix_engine=FixSuggestionEngine(visual_fallback=visual),
            max_retries=settings.max_retries,
            fix_threshold=settings.fix_threshold,
            reuse_assets=reuse_assets,
        )

    def prepare_assets(self, test_case: TestCase) -> TestAssets:
        """Cached assets when allowed and present, otherwise freshly generated ones."""
        path = test_case.assets_path
        if self.reuse_assets and path.exists():
            logger.info("Reusing cached assets %s", path)
            return TestAssets.load(path)

        if self.backend is None or self.browser is None:
            raise BackendError(f"No AI backend configured and no cached assets at {path}")
        logger.info("Capturing %s for asset generation", test_case.url)
        screenshot_b64 = self.browser.screenshot(test_case.url)
        document = self.backend.generate_test_assets(test_case.user_story, screenshot_b64)
        return TestAssets.from_dict(document)

    def run(self, test_case: TestCase) -> RunOutcome:
        assets = self.updater.enhance(self.prepare_assets(test_case), test_case.url)
        assets_path = assets.save(test_case.assets_path)
        artifacts: List[Path] = [assets_path]
        analyses: List[Dict[str, Any]] = []

        analysis = None
        attempt = 0
        while attempt <= self.max_retries:
            attempt += 1
            logger.info("Attempt %d/%d for %s", attempt, self.max_retries + 1, test_case.name)
            files = self.generator.generate(assets, test_case.name, test_case.url)
            _extend_unique(artifacts, files.all())

            result = self.executor.run(files.spec_path)
            if result.report_path:
                _extend_unique(artifacts, [result.report_path])

            if result.passed:
                self.updater.learn_from_success(test_case.name, assets, test_case.url, result.duration)
                return RunOutcome(passed=True, attempts=attempt, analysis=None, artifacts=artifacts)

            analysis = self.classifier.classify(result.raw_output, test_case.name)
            self.fix_engine.suggest_for(analysis, assets, test_case.url)
            self.updater.learn_from_failure(test_case.name, analysis, assets, test_case.url, result.duration)
            analyses.append(analysis.to_dict())
            logger.info("Failure analysis:\n%s", analysis.summary())

            if attempt > self.max_retries:
                break
            if apply_fix(analysis, assets, self.fix_threshold):
                assets.save(assets_path)
            else:
                logger.info("No applicable fix, retrying unchanged")

        log_path = self._write_analysis_log(assets_path, analyses)
        if log_path:
            _extend_unique(artifacts, [log_path])
        return RunOutcome(passed=False, attempts=attempt, analysis=analysis, artifacts=artifacts)

    def _write_analysis_log(self, assets_path: Path, analyses: Sequence[Dict[str, Any]]) -> Optional[Path]:
        path = assets_path.with_name(assets_path.name.replace(ASSETS_SUFFIX, "") + ".failure-analysis.json")
        try:
            return write_json_atomic(path, list(analyses))
        except OSError as e:
            logger.error("Could not write failure analysis log %s: %s", path, e)
            return None


def _extend_unique(target: List[Path], paths: Sequence[Path]) -> None:
    for p in paths:
        if p not in target:
            target.append(p)
