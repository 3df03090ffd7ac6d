"""
Analysis data models.

AnalysisResult is what gets cached and returned to callers.
ClassificationResult is what the external classifier hands back, token
usage included. AnalysisOutcome wraps either a result or an error kind.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .rate_limit import RateLimitResult


class ErrorKind(str, Enum):
    """Error kinds surfaced by the orchestrator."""

    VALIDATION_ERROR = 'VALIDATION_ERROR'
    BUDGET_EXCEEDED = 'BUDGET_EXCEEDED'
    BUDGET_UNAVAILABLE = 'BUDGET_UNAVAILABLE'
    RATE_LIMITED = 'RATE_LIMITED'
    CLASSIFIER_UNAVAILABLE = 'CLASSIFIER_UNAVAILABLE'


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def _validate_confidence(confidence: float) -> None:
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"confidence must be between 0.0 and 1.0, got {confidence}")


@dataclass(frozen=True)
class AnalysisResult:
    """
    Immutable verdict for one analysed text.

    Attributes:
        is_fake: Whether the text was judged fake
        confidence: Confidence in the verdict (0.0-1.0)
        explanation: Reasoning behind the verdict
        suspicious_phrases: Phrases that drove the verdict
        recommendations: Advice for the reader
        model_used: Model that produced the verdict
        cached_at: ISO-8601 UTC timestamp when the result was produced
    """

    is_fake: bool
    confidence: float
    explanation: str
    suspicious_phrases: Tuple[str, ...]
    recommendations: str
    model_used: str
    cached_at: str

    def __post_init__(self):
        """Validate field constraints."""
        _validate_confidence(self.confidence)
        # Tuples keep the frozen instance hashable and unmodifiable.
        object.__setattr__(self, 'suspicious_phrases', tuple(self.suspicious_phrases))

    def to_payload(self) -> Dict[str, Any]:
        """
        Convert to the cached payload shape.
        """
        return {
            'is_fake': self.is_fake,
            'confidence': self.confidence,
            'explanation': self.explanation,
            'suspicious_phrases': list(self.suspicious_phrases),
            'recommendations': self.recommendations,
            'model_used': self.model_used,
            'cached_at': self.cached_at,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'AnalysisResult':
        """
        Create AnalysisResult from a cached payload.

        Args:
            payload: Dictionary written by to_payload

        Returns:
            AnalysisResult instance

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field is out of range
        """
        return cls(
            is_fake=bool(payload['is_fake']),
            confidence=float(payload['confidence']),
            explanation=str(payload['explanation']),
            suspicious_phrases=tuple(payload.get('suspicious_phrases') or ()),
            recommendations=str(payload.get('recommendations', '')),
            model_used=str(payload.get('model_used', '')),
            cached_at=str(payload.get('cached_at', '')),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the API response shape.
        """
        return {
            'isFake': self.is_fake,
            'confidence': self.confidence,
            'explanation': self.explanation,
            'suspiciousPhrases': list(self.suspicious_phrases),
            'recommendations': self.recommendations,
            'modelUsed': self.model_used,
            'cachedAt': self.cached_at,
        }


@dataclass(frozen=True)
class ClassificationResult:
    """
    Verdict returned by the external classifier, with token usage.
    """

    is_fake: bool
    confidence: float
    explanation: str
    suspicious_phrases: Sequence[str]
    recommendations: str
    model_used: str
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        """Validate field constraints."""
        _validate_confidence(self.confidence)

        if self.input_tokens < 0 or self.output_tokens < 0:
            raise ValueError(
                f"token counts must be non-negative, got "
                f"{self.input_tokens}/{self.output_tokens}"
            )

    def to_analysis_result(self, cached_at: Optional[str] = None) -> AnalysisResult:
        """
        Build the cacheable result, dropping token usage.

        Args:
            cached_at: Production timestamp (default: now)

        Returns:
            New AnalysisResult
        """
        return AnalysisResult(
            is_fake=self.is_fake,
            confidence=self.confidence,
            explanation=self.explanation,
            suspicious_phrases=tuple(self.suspicious_phrases),
            recommendations=self.recommendations,
            model_used=self.model_used,
            cached_at=cached_at or utc_now_iso(),
        )


@dataclass(frozen=True)
class AnalysisOutcome:
    """
    Outcome of one analyze call.

    Attributes:
        success: Whether a result was produced
        cached: Whether the result came from the cache or a shared computation
        result: The result, when success is True
        error_kind: Error kind, when success is False
        error_message: Human-readable error message
        rate_limit: Rate limit state, set for RATE_LIMITED outcomes
    """

    success: bool
    cached: bool = False
    result: Optional[AnalysisResult] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    rate_limit: Optional[RateLimitResult] = field(default=None)

    @classmethod
    def succeeded(cls, result: AnalysisResult, cached: bool) -> 'AnalysisOutcome':
        return cls(success=True, cached=cached, result=result)

    @classmethod
    def failed(
        cls,
        error_kind: ErrorKind,
        error_message: str,
        rate_limit: Optional[RateLimitResult] = None
    ) -> 'AnalysisOutcome':
        return cls(
            success=False,
            error_kind=error_kind,
            error_message=error_message,
            rate_limit=rate_limit,
        )

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'success': self.success,
            'cached': self.cached,
            'analysis': self.result.to_dict() if self.result else None,
            'error': self.error_kind.value if self.error_kind else None,
            'message': self.error_message,
        }
        if self.rate_limit is not None:
            body['rateLimit'] = self.rate_limit.to_dict()
        return body
