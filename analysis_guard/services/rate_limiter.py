"""
Fixed-window rate limiter on the shared state table.

Each hit is one conditional update: the counter is incremented and, only on
the increment that opens the window, the window end is written. A stale
window left behind by lazy TTL deletion is replaced by a conditional put so
that exactly one of several racing callers resets it.
"""

import logging
import math
import time
from typing import Callable, Optional

from ..data_access import (
    ConditionalCheckFailedError,
    DynamoDBClient,
    DynamoDBError,
)
from ..models import RateLimitCounter, RateLimitResult
from ..utils.validators import validate_identifier, validate_rate_limit

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY_PREFIX = 'rate_limit:'
MAX_ATTEMPTS = 3

INCREMENT_EXPRESSION = (
    'SET expiresAtMs = if_not_exists(expiresAtMs, :windowEnd), '
    'expiresAt = if_not_exists(expiresAt, :ttl) '
    'ADD #count :one'
)
OPEN_WINDOW_CONDITION = 'attribute_not_exists(expiresAtMs) OR expiresAtMs > :now'
STALE_WINDOW_CONDITION = 'attribute_not_exists(expiresAtMs) OR expiresAtMs <= :now'


class RateLimiter:
    """
    Per-caller fixed-window rate limiter.

    Fails open: when the store cannot be reached the request is allowed.
    """

    def __init__(
        self,
        table_name: str,
        dynamodb_client: Optional[DynamoDBClient] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize RateLimiter.

        Args:
            table_name: Shared state table name
            dynamodb_client: Optional DynamoDB client instance
            clock: Returns current epoch time in seconds
        """
        self.table_name = table_name
        self.client = dynamodb_client or DynamoDBClient()
        self.clock = clock

    def check(self, identifier: str, limit: int, window_seconds: int) -> RateLimitResult:
        """
        Count a request and check it against the limit.

        Args:
            identifier: Caller identity (IP address, user ID)
            limit: Requests allowed per window (1-1000)
            window_seconds: Window length in seconds (1-86400)

        Returns:
            RateLimitResult for this request

        Raises:
            ValidationError: If identifier, limit or window is invalid
        """
        validate_identifier(identifier)
        validate_rate_limit(limit, window_seconds)

        try:
            counter = self._increment(identifier, window_seconds)
        except DynamoDBError as e:
            logger.warning(
                f"Rate limiter unavailable, allowing request for {identifier}: {e}"
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit,
                reset_time_ms=self._now_ms() + window_seconds * 1000,
                limit=limit
            )

        now_ms = self._now_ms()
        allowed = counter.count <= limit
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - counter.count),
            reset_time_ms=now_ms + counter.remaining_ttl_ms(now_ms),
            limit=limit
        )

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {identifier}: {counter.count}/{limit} in window"
            )

        return result

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _increment(self, identifier: str, window_seconds: int) -> RateLimitCounter:
        """
        Increment the caller's counter, opening a new window when needed.

        Raises:
            DynamoDBError: On store failure, or if the window could not be
                settled after MAX_ATTEMPTS rounds of contention
        """
        key = {'key': f"{RATE_LIMIT_KEY_PREFIX}{identifier}"}

        for attempt in range(1, MAX_ATTEMPTS + 1):
            now_ms = self._now_ms()
            window_end_ms = now_ms + window_seconds * 1000

            try:
                attributes = self.client.update_item(
                    table_name=self.table_name,
                    key=key,
                    update_expression=INCREMENT_EXPRESSION,
                    condition_expression=OPEN_WINDOW_CONDITION,
                    expression_attribute_names={'#count': 'count'},
                    expression_attribute_values={
                        ':windowEnd': window_end_ms,
                        ':ttl': math.ceil(window_end_ms / 1000),
                        ':one': 1,
                        ':now': now_ms,
                    },
                    return_values='ALL_NEW'
                )
                return RateLimitCounter.from_item(identifier, attributes or {})
            except ConditionalCheckFailedError:
                logger.debug(f"Stale rate limit window for {identifier}, resetting")

            try:
                self.client.put_item(
                    table_name=self.table_name,
                    item={
                        **key,
                        'count': 1,
                        'expiresAtMs': window_end_ms,
                        'expiresAt': math.ceil(window_end_ms / 1000),
                    },
                    condition_expression=STALE_WINDOW_CONDITION,
                    expression_attribute_values={':now': now_ms}
                )
                return RateLimitCounter(
                    identifier=identifier,
                    count=1,
                    expires_at_ms=window_end_ms
                )
            except ConditionalCheckFailedError:
                # Another caller opened the new window first
                logger.debug(
                    f"Lost window reset race for {identifier} (attempt {attempt})"
                )

        raise DynamoDBError(
            f"Could not settle rate limit window for {identifier} "
            f"after {MAX_ATTEMPTS} attempts"
        )
