"""
Analysis Orchestrator.

This module coordinates one analysis request through the protective layer:
budget check, rate limit, cache lookup, single-flight classifier call,
cost accounting and cache write.
"""

import asyncio
import logging
import time
from typing import Optional

from ..config import Settings
from ..models import (
    AnalysisOutcome,
    AnalysisResult,
    BudgetCheck,
    BudgetStatus,
    BudgetSummary,
    ClassificationResult,
    ErrorKind,
    RateLimitResult,
)
from ..utils.metrics import MetricsPublisher
from ..utils.validators import (
    ValidationError,
    validate_identifier,
    validate_text,
    validate_url,
)
from .budget_tracker import BudgetTracker
from .cache_store import CacheStore, generate_analysis_key
from .classifier import Classifier
from .exceptions import (
    BudgetExceededError,
    BudgetUnavailableError,
    ClassifierError,
    ClassifierUnavailableError,
    RateLimitExceededError,
)
from .rate_limiter import RateLimiter
from .single_flight import SingleFlight

logger = logging.getLogger(__name__)

BUDGET_THRESHOLD_PERCENT = 100
ALERT_THRESHOLD_PERCENT = 90


class AnalysisOrchestrator:
    """
    Orchestrator for guarded text analysis.

    Holds only injected handles; all state lives in the collaborators, so
    one instance can serve concurrent requests.
    """

    def __init__(
        self,
        cache_store: CacheStore,
        rate_limiter: RateLimiter,
        budget_tracker: BudgetTracker,
        classifier: Classifier,
        single_flight: SingleFlight,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsPublisher] = None
    ):
        """
        Initialize orchestrator with all required services.

        Args:
            cache_store: Result cache
            rate_limiter: Per-caller rate limiter
            budget_tracker: Monthly spend tracker
            classifier: External classifier
            single_flight: Duplicate call suppression
            settings: Limits and timeouts (default: Settings())
            metrics: Optional CloudWatch metrics publisher
        """
        self.cache_store = cache_store
        self.rate_limiter = rate_limiter
        self.budget_tracker = budget_tracker
        self.classifier = classifier
        self.single_flight = single_flight
        self.settings = settings or Settings()
        self.metrics = metrics

    async def analyze(
        self,
        text: str,
        url: Optional[str] = None,
        caller_identity: Optional[str] = None
    ) -> AnalysisOutcome:
        """
        Analyse text, protected by budget, rate limit, cache and single-flight.

        Args:
            text: Text to analyse
            url: Optional source URL; identifies the content for caching
            caller_identity: Caller identity for rate limiting (source IP)

        Returns:
            AnalysisOutcome with the result or an error kind
        """
        start_time = time.time()

        try:
            validate_text(text, max_length=self.settings.max_text_length)
            validate_url(url)
            validate_identifier(caller_identity, field_name='caller_identity')
        except ValidationError as e:
            logger.info(f"Rejected analysis request: {e.message}")
            return AnalysisOutcome.failed(ErrorKind.VALIDATION_ERROR, e.message)

        try:
            self._check_budget()
            self._check_rate_limit(caller_identity)
        except BudgetExceededError as e:
            return AnalysisOutcome.failed(ErrorKind.BUDGET_EXCEEDED, str(e))
        except BudgetUnavailableError:
            return AnalysisOutcome.failed(
                ErrorKind.BUDGET_UNAVAILABLE,
                'Budget status is temporarily unavailable'
            )
        except RateLimitExceededError as e:
            return AnalysisOutcome.failed(ErrorKind.RATE_LIMITED, str(e), rate_limit=e.rate_limit)

        cache_key = generate_analysis_key(text, url)

        cached_result = self._load_cached(cache_key)
        if cached_result is not None:
            if self.metrics is not None:
                self.metrics.emit_cache_hit()
            logger.info(f"Cache hit for {cache_key}")
            return AnalysisOutcome.succeeded(cached_result, cached=True)

        if self.metrics is not None:
            self.metrics.emit_cache_miss()

        classified = False

        async def compute() -> AnalysisResult:
            nonlocal classified
            existing = self._load_cached(cache_key, consistent_read=True)
            if existing is not None:
                return existing

            classification = await self._classify(text.strip())
            classified = True
            result = classification.to_analysis_result()

            self._record_cost(classification)
            self.cache_store.set(
                cache_key,
                result.to_payload(),
                ttl_seconds=self.settings.cache_ttl_seconds
            )
            return result

        async def lookup() -> Optional[AnalysisResult]:
            return self._load_cached(cache_key, consistent_read=True)

        try:
            result, _ = await self.single_flight.run(cache_key, compute, lookup)
        except ClassifierError as e:
            if self.metrics is not None:
                self.metrics.emit_classifier_failure(type(e).__name__)
            logger.error(f"Classifier failed for {cache_key}: {e}")
            return AnalysisOutcome.failed(
                ErrorKind.CLASSIFIER_UNAVAILABLE,
                'Analysis service is temporarily unavailable'
            )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Analysis complete for {cache_key}: "
            f"classified={classified}, duration: {duration_ms:.2f}ms"
        )

        # Joiners and pollers did not call the classifier themselves
        return AnalysisOutcome.succeeded(result, cached=not classified)

    def get_budget_status(self) -> BudgetStatus:
        """
        Get the current month's budget status.

        Raises:
            BudgetUnavailableError: If the budget cannot be read
        """
        return self.budget_tracker.get_status()

    def get_budget_summary(self, months: int = 6) -> BudgetSummary:
        return self.budget_tracker.get_summary(months)

    def check_rate_limit(self, identifier: str, route: str = 'api') -> RateLimitResult:
        """
        Count a request against a route's rate limit.

        Args:
            identifier: Caller identity
            route: Rate limit route ('analyze', 'api', 'strict')

        Returns:
            RateLimitResult

        Raises:
            KeyError: If the route has no configured rule
            ValidationError: If identifier is invalid
        """
        rule = self.settings.rate_limit_for(route)
        result = self.rate_limiter.check(identifier, rule.limit, rule.window_seconds)
        if not result.allowed:
            if self.metrics is not None:
                self.metrics.emit_rate_limited(route)
        return result

    def get_cache_stats(self) -> dict:
        return self.cache_store.get_stats()

    def check_budget(self, threshold_percent=ALERT_THRESHOLD_PERCENT) -> BudgetCheck:
        """
        Check the current month against a percentage of the cap.

        Args:
            threshold_percent: Percentage of the cap (0-100, default 90)

        Raises:
            ValidationError: If threshold is outside 0-100
            BudgetUnavailableError: If the budget cannot be read
        """
        return self.budget_tracker.is_exceeded(threshold_percent)

    def lookup_cached_analysis(self, text: str, url: Optional[str] = None) -> Optional[AnalysisResult]:
        """
        Return the cached verdict for a request without classifying.

        Raises:
            ValidationError: If text or url is invalid
        """
        validate_text(text, max_length=self.settings.max_text_length)
        validate_url(url)
        return self._load_cached(generate_analysis_key(text, url))

    def invalidate_cached_analysis(self, text: str, url: Optional[str] = None) -> dict:
        """
        Drop the cached verdict for a request.

        Args:
            text: Text of the original request
            url: URL of the original request, if any

        Returns:
            Dictionary with the cache key and whether the delete reached the store

        Raises:
            ValidationError: If text or url is invalid
        """
        validate_text(text, max_length=self.settings.max_text_length)
        validate_url(url)
        cache_key = generate_analysis_key(text, url)
        return {
            'cacheKey': cache_key,
            'invalidated': self.cache_store.delete(cache_key),
        }

    def check_health(self) -> dict:
        reachable = self.cache_store.is_reachable()
        return {
            'status': 'healthy' if reachable else 'unhealthy',
            'service': 'analysis-guard',
            'store': 'reachable' if reachable else 'unreachable',
        }

    def _check_budget(self) -> None:
        """
        Raises:
            BudgetExceededError: If the cap has been reached
            BudgetUnavailableError: If the budget cannot be read
        """
        check = self.budget_tracker.is_exceeded(BUDGET_THRESHOLD_PERCENT)
        if check.exceeded:
            if self.metrics is not None:
                self.metrics.emit_budget_exceeded()
            logger.warning(
                f"Monthly budget exceeded for {check.current_period.month_key}: "
                f"{check.percentage_used:.2f}% used"
            )
            raise BudgetExceededError(
                'Monthly analysis budget has been exhausted',
                check=check
            )

    def _check_rate_limit(self, caller_identity: str) -> None:
        """
        Raises:
            RateLimitExceededError: If the caller is over the analyze limit
        """
        result = self.check_rate_limit(caller_identity, route='analyze')
        if not result.allowed:
            retry_after = result.retry_after_seconds(int(self.rate_limiter.clock() * 1000))
            raise RateLimitExceededError(
                f'Rate limit exceeded. Retry after {retry_after} seconds.',
                retry_after=retry_after,
                rate_limit=result
            )

    def _load_cached(self, cache_key: str, consistent_read: bool = False) -> Optional[AnalysisResult]:
        payload = self.cache_store.get(cache_key, consistent_read=consistent_read)
        if payload is None:
            return None
        try:
            return AnalysisResult.from_payload(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cached result {cache_key}: {e}")
            return None

    async def _classify(self, text: str) -> ClassificationResult:
        """
        Call the classifier with a timeout.

        Raises:
            ClassifierError: On any classifier failure, timeout or
                malformed result
        """
        if self.metrics is not None:
            self.metrics.emit_classifier_invocation()
        timeout = self.settings.classifier_timeout_seconds

        try:
            classification = await asyncio.wait_for(
                self.classifier.classify(text),
                timeout=timeout
            )
        except ClassifierError:
            raise
        except asyncio.TimeoutError as e:
            raise ClassifierUnavailableError(f"Classifier timed out after {timeout}s") from e
        except Exception as e:
            logger.error(f"Unexpected classifier error: {type(e).__name__}: {e}", exc_info=True)
            raise ClassifierUnavailableError(f"Classifier failed: {e}") from e

        if not isinstance(classification, ClassificationResult):
            raise ClassifierUnavailableError(
                f"Classifier returned {type(classification).__name__}, "
                f"expected ClassificationResult"
            )

        return classification

    def _record_cost(self, classification: ClassificationResult) -> None:
        """
        Add the call's cost to the budget.

        The classifier has already been paid for, so a failure here is
        logged and the result is still returned.
        """
        try:
            cost = self.budget_tracker.calculate_cost(
                classification.input_tokens,
                classification.output_tokens
            )
            period = self.budget_tracker.add_cost(cost)
        except (BudgetUnavailableError, ValidationError) as e:
            logger.error(
                f"Failed to record classifier cost "
                f"({classification.input_tokens} in / {classification.output_tokens} out): {e}"
            )
            return

        if self.metrics is not None:
            self.metrics.emit_budget_percentage_used(period.percentage_used)
