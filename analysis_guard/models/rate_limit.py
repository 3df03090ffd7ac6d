"""
Rate limit data models.
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict


@dataclass(frozen=True)
class RateLimitCounter:
    """
    Fixed-window request counter for one caller.

    The window start is implicit: a window ends at expires_at_ms, which is
    written once by the increment that opened the window.

    Attributes:
        identifier: Caller identity (IP address, user ID)
        count: Requests seen in the current window
        expires_at_ms: Window end in milliseconds
    """

    identifier: str
    count: int
    expires_at_ms: int

    def remaining_ttl_ms(self, now_ms: int) -> int:
        return max(0, self.expires_at_ms - now_ms)

    @classmethod
    def from_item(cls, identifier: str, item: Dict[str, Any]) -> 'RateLimitCounter':
        """
        Create RateLimitCounter from a DynamoDB item.

        Args:
            identifier: Caller identity the item belongs to
            item: Item attributes (Decimal numbers)

        Returns:
            RateLimitCounter instance
        """
        return cls(
            identifier=identifier,
            count=int(Decimal(item.get('count', 0))),
            expires_at_ms=int(Decimal(item.get('expiresAtMs', 0))),
        )


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed
        remaining: Requests left in the current window
        reset_time_ms: Unix timestamp in milliseconds when the window resets
        limit: Limit the request was checked against
    """

    allowed: bool
    remaining: int
    reset_time_ms: int
    limit: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """
        Seconds until the window resets, rounded up (at least 1).
        """
        return max(1, math.ceil((self.reset_time_ms - now_ms) / 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed': self.allowed,
            'remaining': self.remaining,
            'resetTime': self.reset_time_ms,
            'limit': self.limit,
        }
