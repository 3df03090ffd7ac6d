"""
Service layer exceptions.
"""
from typing import Optional

from ..models import BudgetCheck, RateLimitResult


class BudgetUnavailableError(Exception):
    """Raised when budget state cannot be read or updated."""
    pass


class BudgetExceededError(Exception):
    """Raised when the monthly budget cap has been reached."""

    def __init__(self, message: str, check: Optional[BudgetCheck] = None):
        super().__init__(message)
        self.check = check


class RateLimitExceededError(Exception):
    """Raised when a caller exceeds its rate limit."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        rate_limit: Optional[RateLimitResult] = None
    ):
        """
        Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds until the window resets
            rate_limit: Limiter result that denied the request
        """
        super().__init__(message)
        self.retry_after = retry_after
        self.rate_limit = rate_limit


class ClassifierError(Exception):
    """Base exception for classifier failures."""
    pass


class ClassifierUnavailableError(ClassifierError):
    """Raised when the classifier cannot be reached or returns garbage."""
    pass


class ClassifierQuotaExceededError(ClassifierError):
    """Raised when the classifier provider throttles the call."""
    pass
