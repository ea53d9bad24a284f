"""
Multi-candidate element resolution.

Given the ordered candidate selectors of one logical element, the resolver
returns the first candidate that currently matches something on the page:

1. Candidates are tried strictly in order, each with a short timeout.
2. The first candidate with one or more matches wins (first-match, not
   best-match). Several matches are accepted with a logged ambiguity marker:
       Selector matched 3 elements for loginButton
   The failure classifier looks for that marker.
3. When nothing resolves, the first candidate gets one extended wait.
4. Otherwise ElementNotFoundError is raised with the full attempt log.

Usage:
    resolver = ElementResolverSync(page)
    resolved = resolver.resolve(candidates, "loginButton")
    resolved.locator.click()
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .selectors import SelectorDescriptor

logger = logging.getLogger(__name__)

AMBIGUITY_MARKER = "Selector matched {count} elements for {description}"

# TypeError/ValueError come from generated options the locator factory rejects
LOCATOR_ERRORS = (PlaywrightError, TypeError, ValueError)


@dataclass
class ResolverConfig:
    """Timeouts in milliseconds. Keep both below the test timeout."""

    candidate_timeout_ms: int = 3000
    extended_timeout_ms: int = 15000
    state: str = "visible"  # "attached", "visible"

    def __post_init__(self):
        if self.candidate_timeout_ms <= 0 or self.extended_timeout_ms <= 0:
            raise ValueError("resolver timeouts must be positive")
        if self.extended_timeout_ms < self.candidate_timeout_ms:
            raise ValueError("extended timeout must not be shorter than the per-candidate timeout")


@dataclass
class ResolutionAttempt:
    """Outcome of probing one candidate."""

    selector: str
    errored: bool = False
    count: Optional[int] = None
    error: Optional[str] = None
    extended: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "errored": self.errored,
            "count": self.count,
            "error": self.error,
            "extended": self.extended,
        }


@dataclass
class ResolvedElement:
    """The winning candidate and its locator."""

    locator: Any
    selector: SelectorDescriptor
    match_count: int
    attempts: List[ResolutionAttempt] = field(default_factory=list)

    @property
    def ambiguous(self) -> bool:
        return self.match_count > 1


class ElementNotFoundError(Exception):
    """No candidate resolved, even after the extended wait on the first one."""

    def __init__(self, description: str, attempts: Sequence[ResolutionAttempt], candidates_tried: int):
        self.description = description
        self.attempts = list(attempts)
        self.candidates_tried = candidates_tried
        super().__init__(
            f"Element not found: {description} (tried {candidates_tried} selector candidates)"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "candidatesTried": self.candidates_tried,
            "attempts": [a.to_dict() for a in self.attempts],
        }


class _ResolverBase:
    def __init__(self, page, config: Optional[ResolverConfig] = None):
        self.page = page
        self.config = config or ResolverConfig()

    def _accept(
        self,
        locator,
        candidate: SelectorDescriptor,
        count: int,
        description: str,
        attempts: List[ResolutionAttempt],
    ) -> ResolvedElement:
        if count > 1:
            logger.warning(
                "%s (%s); using the first match",
                AMBIGUITY_MARKER.format(count=count, description=description),
                candidate.key,
            )
            locator = locator.first
        else:
            logger.debug("Resolved %s with %s", description, candidate.key)
        return ResolvedElement(locator=locator, selector=candidate, match_count=count, attempts=attempts)

    @staticmethod
    def _failed_attempt(candidate: SelectorDescriptor, error: Exception, extended: bool) -> ResolutionAttempt:
        if isinstance(error, PlaywrightTimeoutError):
            # Nothing matched within the timeout
            return ResolutionAttempt(candidate.key, errored=False, count=0, extended=extended)
        return ResolutionAttempt(candidate.key, errored=True, error=str(error)[:300], extended=extended)

    def _not_found(self, description: str, candidates, attempts) -> ElementNotFoundError:
        logger.error(
            "Element not found: %s after %d candidates: %s",
            description, len(candidates), [a.selector for a in attempts],
        )
        return ElementNotFoundError(description, attempts, len(candidates))


class ElementResolver(_ResolverBase):
    """Resolver for the async Playwright API."""

    async def _wait_and_count(self, locator, timeout: int) -> int:
        await locator.first.wait_for(state=self.config.state, timeout=timeout)
        return await locator.count()

    async def resolve(self, candidates: Sequence[SelectorDescriptor], description: str) -> ResolvedElement:
        attempts: List[ResolutionAttempt] = []
        if not candidates:
            raise ElementNotFoundError(description, attempts, 0)

        for candidate in candidates:
            try:
                locator = candidate.to_locator(self.page)
                count = await self._wait_and_count(locator, self.config.candidate_timeout_ms)
            except LOCATOR_ERRORS as e:
                attempts.append(self._failed_attempt(candidate, e, extended=False))
                continue
            attempts.append(ResolutionAttempt(candidate.key, count=count))
            if count > 0:
                return self._accept(locator, candidate, count, description, attempts)

        first = candidates[0]
        logger.info("No candidate resolved for %s, waiting longer for %s", description, first.key)
        try:
            locator = first.to_locator(self.page)
            count = await self._wait_and_count(locator, self.config.extended_timeout_ms)
        except LOCATOR_ERRORS as e:
            attempts.append(self._failed_attempt(first, e, extended=True))
            raise self._not_found(description, candidates, attempts)
        attempts.append(ResolutionAttempt(first.key, count=count, extended=True))
        if count > 0:
            return self._accept(locator, first, count, description, attempts)
        raise self._not_found(description, candidates, attempts)


class ElementResolverSync(_ResolverBase):
    """Resolver for the sync Playwright API."""

    def _wait_and_count(self, locator, timeout: int) -> int:
        locator.first.wait_for(state=self.config.state, timeout=timeout)
        return locator.count()

    def resolve(self, candidates: Sequence[SelectorDescriptor], description: str) -> ResolvedElement:
        attempts: List[ResolutionAttempt] = []
        if not candidates:
            raise ElementNotFoundError(description, attempts, 0)

        for candidate in candidates:
            try:
                locator = candidate.to_locator(self.page)
                count = self._wait_and_count(locator, self.config.candidate_timeout_ms)
            except LOCATOR_ERRORS as e:
                attempts.append(self._failed_attempt(candidate, e, extended=False))
                continue
            attempts.append(ResolutionAttempt(candidate.key, count=count))
            if count > 0:
                return self._accept(locator, candidate, count, description, attempts)

        first = candidates[0]
        logger.info("No candidate resolved for %s, waiting longer for %s", description, first.key)
        try:
            locator = first.to_locator(self.page)
            count = self._wait_and_count(locator, self.config.extended_timeout_ms)
        except LOCATOR_ERRORS as e:
            attempts.append(self._failed_attempt(first, e, extended=True))
            raise self._not_found(description, candidates, attempts)
        attempts.append(ResolutionAttempt(first.key, count=count, extended=True))
        if count > 0:
            return self._accept(locator, first, count, description, attempts)
        raise self._not_found(description, candidates, attempts)
