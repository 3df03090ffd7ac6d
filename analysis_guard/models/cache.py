"""
Cache entry data model.

This module defines the dataclass for entries in the analysis result cache
and its mapping onto a shared state table item.
"""

import json
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CacheEntry:
    """
    Entry in the analysis result cache.

    Attributes:
        key: Namespaced cache key (analysis:<sha256>)
        payload: JSON-serialisable result
        ttl_seconds: Time-to-live in seconds
        created_at_ms: Unix timestamp in milliseconds when entry was written
    """

    key: str
    payload: Dict[str, Any]
    ttl_seconds: int
    created_at_ms: int

    def __post_init__(self):
        """Validate field constraints."""
        if not self.key:
            raise ValueError("key cannot be empty")

        if self.ttl_seconds < 1:
            raise ValueError(f"ttl_seconds must be at least 1, got {self.ttl_seconds}")

    @property
    def expires_at_ms(self) -> int:
        return self.created_at_ms + self.ttl_seconds * 1000

    def is_expired(self, now_ms: int) -> bool:
        """
        Check if entry has expired.

        Args:
            now_ms: Current time in milliseconds

        Returns:
            True if the TTL window has elapsed
        """
        return now_ms >= self.expires_at_ms

    def to_item(self) -> Dict[str, Any]:
        """
        Convert to a DynamoDB item.

        expiresAt is whole epoch seconds for DynamoDB TTL; expiresAtMs is
        what readers compare against, since TTL deletion is lazy.
        """
        return {
            'key': self.key,
            'payload': json.dumps(self.payload, separators=(',', ':')),
            'createdAtMs': self.created_at_ms,
            'expiresAtMs': self.expires_at_ms,
            'expiresAt': math.ceil(self.expires_at_ms / 1000),
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> Optional['CacheEntry']:
        """
        Create CacheEntry from a DynamoDB item.

        Args:
            item: Item as returned by the table resource

        Returns:
            CacheEntry, or None if the item is not a cache entry
        """
        if 'payload' not in item:
            return None

        created_at_ms = int(Decimal(item.get('createdAtMs', 0)))
        expires_at_ms = int(Decimal(item.get('expiresAtMs', 0)))
        ttl_seconds = max(1, (expires_at_ms - created_at_ms) // 1000)

        return cls(
            key=item['key'],
            payload=json.loads(item['payload']),
            ttl_seconds=ttl_seconds,
            created_at_ms=created_at_ms,
        )
