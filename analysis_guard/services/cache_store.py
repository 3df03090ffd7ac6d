"""
Analysis result cache.

Results live in the shared state table under analysis:<sha256> keys with a
per-entry TTL. The cache is an optimisation only: a backing store failure
turns reads into misses and writes into no-ops.
"""

import hashlib
import logging
import time
from typing import Any, Callable, Dict, Optional

from ..data_access import DynamoDBClient, DynamoDBError
from ..models import CacheEntry
from ..utils.validators import validate_ttl_seconds

logger = logging.getLogger(__name__)

ANALYSIS_KEY_PREFIX = 'analysis:'
HEALTH_CHECK_KEY = 'health:check'


def generate_analysis_key(text: str, url: Optional[str] = None) -> str:
    """
    Generate the cache key for an analysis request.

    The URL identifies the content when present, otherwise the text does.
    Inputs are hashed as given: no case folding, no whitespace changes.

    Args:
        text: Text to analyse
        url: Optional source URL

    Returns:
        Cache key in the form analysis:<sha256 hex>
    """
    material = f"url:{url}" if url else f"text:{text}"
    digest = hashlib.sha256(material.encode('utf-8')).hexdigest()
    return f"{ANALYSIS_KEY_PREFIX}{digest}"


class CacheStore:
    """
    Key/value cache with per-entry TTL on the shared state table.

    Keeps in-process hit/miss counters for the stats endpoint.
    """

    def __init__(
        self,
        table_name: str,
        default_ttl_seconds: int = 3600,
        dynamodb_client: Optional[DynamoDBClient] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize CacheStore.

        Args:
            table_name: Shared state table name
            default_ttl_seconds: TTL used when set() gets none (1-86400)
            dynamodb_client: Optional DynamoDB client instance
            clock: Returns current epoch time in seconds
        """
        validate_ttl_seconds(default_ttl_seconds, field_name='default_ttl_seconds')

        self.table_name = table_name
        self.default_ttl_seconds = default_ttl_seconds
        self.client = dynamodb_client or DynamoDBClient()
        self.clock = clock

        self._hits = 0
        self._misses = 0
        self._errors = 0

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def get(self, key: str, consistent_read: bool = False) -> Optional[Dict[str, Any]]:
        """
        Look up a cached payload.

        Args:
            key: Cache key
            consistent_read: Read the latest write instead of an eventually
                consistent copy

        Returns:
            Cached payload, or None on miss, expiry or store failure
        """
        try:
            item = self.client.get_item(
                table_name=self.table_name,
                key={'key': key},
                consistent_read=consistent_read
            )
        except DynamoDBError as e:
            logger.warning(f"Cache unavailable, treating {key} as a miss: {e}")
            self._errors += 1
            self._misses += 1
            return None

        entry = None
        if item:
            try:
                entry = CacheEntry.from_item(item)
            except (ValueError, KeyError) as e:
                logger.warning(f"Discarding unreadable cache entry {key}: {e}")

        # TTL deletion is lazy, so expired items can still be returned
        if entry is None or entry.is_expired(self._now_ms()):
            self._misses += 1
            return None

        self._hits += 1
        logger.debug(f"Cache hit for {key}")
        return entry.payload

    def set(
        self,
        key: str,
        payload: Dict[str, Any],
        ttl_seconds: Optional[int] = None
    ) -> None:
        """
        Store a payload with a TTL.

        Args:
            key: Cache key
            payload: JSON-serialisable payload
            ttl_seconds: Entry lifetime (default: default_ttl_seconds)

        Raises:
            ValidationError: If ttl_seconds is not between 1 and 86400
        """
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds
        validate_ttl_seconds(ttl_seconds)

        entry = CacheEntry(
            key=key,
            payload=payload,
            ttl_seconds=ttl_seconds,
            created_at_ms=self._now_ms()
        )

        try:
            self.client.put_item(table_name=self.table_name, item=entry.to_item())
            logger.debug(f"Cached {key} for {ttl_seconds}s")
        except DynamoDBError as e:
            logger.warning(f"Cache unavailable, dropping write for {key}: {e}")
            self._errors += 1

    def delete(self, key: str) -> bool:
        """
        Invalidate a cache entry. Missing keys are ignored.

        Args:
            key: Cache key

        Returns:
            False if the store could not be reached
        """
        try:
            self.client.delete_item(table_name=self.table_name, key={'key': key})
        except DynamoDBError as e:
            logger.warning(f"Cache unavailable, could not delete {key}: {e}")
            self._errors += 1
            return False

        logger.info(f"Invalidated cache entry {key}")
        return True

    def is_reachable(self) -> bool:
        """Read a fixed key to see whether the backing table answers."""
        try:
            self.client.get_item(table_name=self.table_name, key={'key': HEALTH_CHECK_KEY})
        except DynamoDBError as e:
            logger.warning(f"Cache store {self.table_name} unreachable: {e}")
            return False
        return True

    def get_stats(self) -> Dict[str, Any]:
        """
        Get in-process cache statistics.

        Returns:
            Dictionary with hits, misses, errors and hit rate
        """
        total_requests = self._hits + self._misses
        hit_rate = self._hits / total_requests if total_requests > 0 else 0.0

        return {
            'hits': self._hits,
            'misses': self._misses,
            'errors': self._errors,
            'totalRequests': total_requests,
            'hitRate': hit_rate,
        }
