"""
visionQA - Self-healing, AI-generated E2E tests

Turns a user story and a screenshot into Page Objects and a pytest test,
then keeps that test working as the page changes:

1. Every element carries an ordered list of candidate selectors, resolved
   first-match at runtime
2. Failures are classified (selector, timing, validation, navigation)
3. Fixes escalate from a known alternative selector, to a selector found
   visually by the AI, to a plain retry
4. A knowledge base remembers which selectors worked and reorders the
   candidates of future runs

Supported AI Backends:
- Google Gemini (default: gemini-2.5-pro)
- OpenAI (gpt-4o)

Quick Start:
    ```bash
    export GEMINI_API_KEY=...
    visionqa run tests/login.testcase.json
    ```

Library use:
    ```python
    from visionqa import (
        FailureClassifier, FixSuggestionEngine, KnowledgeUpdater,
        SelectorCandidateStore, TestAssets, apply_fix,
    )

    store = SelectorCandidateStore("./knowledge-base")
    store.load()
    updater = KnowledgeUpdater(store)

    assets = updater.enhance(TestAssets.load("login.ai-assets.json"), url)
    ...
    analysis = FailureClassifier().classify(report_json, test_name="login")
    FixSuggestionEngine().suggest_for(analysis, assets, url)
    updater.learn_from_failure("login", analysis, assets, url)
    if apply_fix(analysis, assets):
        assets.save("login.ai-assets.json")
    ```
"""

from .selectors import (
    SelectorDescriptor,
    SelectorKind,
)
from .assets import (
    AssetValidationError,
    ElementAction,
    ElementKind,
    LocatorDefinition,
    LocatorMetadata,
    PageObjectDefinition,
    TestAssets,
    TestStep,
)
from .knowledge import (
    ExecutionRecord,
    LearnedElementRecord,
    RetentionPolicy,
    SelectorCandidateStore,
)
from .resolver import (
    ElementNotFoundError,
    ElementResolver,
    ElementResolverSync,
    ResolutionAttempt,
    ResolvedElement,
    ResolverConfig,
)
from .classifier import (
    FailureAnalysis,
    FailureClassifier,
    FailureType,
)
from .fixes import (
    FixDirective,
    FixKind,
    FixSuggestionEngine,
    SuggestedFix,
    apply_fix,
)
from .learning import KnowledgeUpdater
from .backends import (
    BackendError,
    GeminiBackend,
    OpenAIBackend,
    VisionBackend,
    VisualMatch,
)
from .visual import VisualFallback

__version__ = "0.1.0"
__author__ = "visionQA Contributors"
__license__ = "MIT"

__all__ = [
    # Selectors and assets
    "SelectorDescriptor",
    "SelectorKind",
    "AssetValidationError",
    "ElementAction",
    "ElementKind",
    "LocatorDefinition",
    "LocatorMetadata",
    "PageObjectDefinition",
    "TestAssets",
    "TestStep",
    # Knowledge base
    "ExecutionRecord",
    "LearnedElementRecord",
    "RetentionPolicy",
    "SelectorCandidateStore",
    "KnowledgeUpdater",
    # Resolution
    "ElementNotFoundError",
    "ElementResolver",
    "ElementResolverSync",
    "ResolutionAttempt",
    "ResolvedElement",
    "ResolverConfig",
    # Analysis and repair
    "FailureAnalysis",
    "FailureClassifier",
    "FailureType",
    "FixDirective",
    "FixKind",
    "FixSuggestionEngine",
    "SuggestedFix",
    "apply_fix",
    # Backends
    "BackendError",
    "GeminiBackend",
    "OpenAIBackend",
    "VisionBackend",
    "VisualMatch",
    "VisualFallback",
]
