"""
Duplicate call suppression keyed by cache key.

Within one process, concurrent callers for the same key share one future.
Across processes, the owner holds an inflight:<key> marker on the shared
state table; other workers poll for the result instead of computing it.
"""

import asyncio
import logging
import math
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from ..data_access import (
    ConditionalCheckFailedError,
    DynamoDBClient,
    DynamoDBError,
)

logger = logging.getLogger(__name__)

INFLIGHT_KEY_PREFIX = 'inflight:'
ACQUIRE_CONDITION = 'attribute_not_exists(#key) OR expiresAtMs <= :now'

Compute = Callable[[], Awaitable[Any]]
Lookup = Callable[[], Awaitable[Optional[Any]]]


class SingleFlight:
    """
    In-process and cross-process single-flight group.

    At most one compute() runs per key across all workers sharing the
    table, as long as the owner stays alive. A marker store failure drops
    back to in-process de-duplication only.
    """

    def __init__(
        self,
        table_name: str,
        dynamodb_client: Optional[DynamoDBClient] = None,
        marker_ttl_seconds: int = 30,
        poll_interval_seconds: float = 0.1,
        max_wait_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize SingleFlight.

        Args:
            table_name: Shared state table name
            dynamodb_client: Optional DynamoDB client instance
            marker_ttl_seconds: Lifetime of an in-flight marker
            poll_interval_seconds: Delay between result polls
            max_wait_seconds: Give up waiting and compute after this long
                (default: marker_ttl_seconds + 5)
            clock: Returns current epoch time in seconds
        """
        self.table_name = table_name
        self.client = dynamodb_client or DynamoDBClient()
        self.marker_ttl_seconds = marker_ttl_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.max_wait_seconds = (
            max_wait_seconds if max_wait_seconds is not None else marker_ttl_seconds + 5
        )
        self.clock = clock
        self.owner_id = str(uuid.uuid4())

        self._flights: Dict[str, asyncio.Future] = {}

    async def run(self, key: str, compute: Compute, lookup: Lookup) -> Tuple[Any, bool]:
        """
        Run compute() once for concurrent callers with the same key.

        If the task running compute() is cancelled, its joiners compete
        again rather than inheriting the cancellation.

        Args:
            key: De-duplication key
            compute: Coroutine function producing the value
            lookup: Coroutine function returning the value if another worker
                already produced it, else None

        Returns:
            Tuple of (value, shared) where shared is True when this caller
            did not run compute() itself

        Raises:
            Exception: Whatever compute() raised, for the owner and joiners
        """
        while True:
            flight = self._flights.get(key)
            if flight is None:
                return await self._own_flight(key, compute, lookup)

            logger.debug(f"Joining in-process flight for {key}")
            try:
                # Shielded so a cancelled joiner does not cancel the owner's result
                value = await asyncio.shield(flight)
            except asyncio.CancelledError:
                if not flight.cancelled() or asyncio.current_task().cancelling():
                    raise
                # Owner was cancelled, not us
                logger.info(f"Owner of in-process flight {key} was cancelled, competing again")
                continue
            return value, True

    async def _own_flight(self, key: str, compute: Compute, lookup: Lookup) -> Tuple[Any, bool]:
        flight = asyncio.get_running_loop().create_future()
        self._flights[key] = flight

        try:
            value, shared = await self._run_across_processes(key, compute, lookup)
        except asyncio.CancelledError:
            flight.cancel()
            raise
        except Exception as e:
            flight.set_exception(e)
            # Mark retrieved so an unjoined flight does not log a warning
            flight.exception()
            raise
        else:
            flight.set_result(value)
            return value, shared
        finally:
            self._flights.pop(key, None)

    async def _run_across_processes(
        self,
        key: str,
        compute: Compute,
        lookup: Lookup
    ) -> Tuple[Any, bool]:
        marker_key = {'key': f"{INFLIGHT_KEY_PREFIX}{key}"}
        deadline = self.clock() + self.max_wait_seconds

        while True:
            acquired = self._try_acquire(marker_key)
            if acquired:
                try:
                    return await compute(), False
                finally:
                    self._release(marker_key)

            value = await self._wait_for_owner(key, marker_key, lookup, deadline)
            if value is not None:
                return value, True

            if self.clock() >= deadline:
                logger.warning(f"Timed out waiting for in-flight {key}, computing locally")
                return await compute(), False

    def _try_acquire(self, marker_key: Dict[str, str]) -> bool:
        """
        Write the marker if it is absent or expired.

        Returns:
            True if this process owns the flight; also True when the marker
            store is down, so the caller computes without cross-process
            de-duplication
        """
        now_ms = int(self.clock() * 1000)
        expires_at_ms = now_ms + self.marker_ttl_seconds * 1000

        try:
            self.client.put_item(
                table_name=self.table_name,
                item={
                    **marker_key,
                    'ownerId': self.owner_id,
                    'expiresAtMs': expires_at_ms,
                    'expiresAt': math.ceil(expires_at_ms / 1000),
                },
                condition_expression=ACQUIRE_CONDITION,
                expression_attribute_names={'#key': 'key'},
                expression_attribute_values={':now': now_ms}
            )
            return True
        except ConditionalCheckFailedError:
            return False
        except DynamoDBError as e:
            logger.warning(
                f"In-flight marker unavailable for {marker_key['key']}, "
                f"falling back to in-process de-duplication: {e}"
            )
            return True

    async def _wait_for_owner(
        self,
        key: str,
        marker_key: Dict[str, str],
        lookup: Lookup,
        deadline: float
    ) -> Optional[Any]:
        """
        Poll for the owner's result until it appears, the marker goes away
        or the deadline passes.

        Returns:
            The value, or None if the caller should compete again
        """
        logger.debug(f"Waiting for another worker computing {key}")

        while self.clock() < deadline:
            await asyncio.sleep(self.poll_interval_seconds)

            value = await lookup()
            if value is not None:
                return value

            if not self._marker_alive(marker_key):
                return None

        return None

    def _marker_alive(self, marker_key: Dict[str, str]) -> bool:
        try:
            item = self.client.get_item(
                table_name=self.table_name,
                key=marker_key,
                consistent_read=True
            )
        except DynamoDBError as e:
            logger.warning(f"Could not read in-flight marker {marker_key['key']}: {e}")
            return False

        if not item:
            return False
        return int(item.get('expiresAtMs', 0)) > int(self.clock() * 1000)

    def _release(self, marker_key: Dict[str, str]) -> None:
        try:
            self.client.delete_item(
                table_name=self.table_name,
                key=marker_key,
                condition_expression='ownerId = :owner',
                expression_attribute_values={':owner': self.owner_id}
            )
        except ConditionalCheckFailedError:
            # Marker expired and was taken over by another worker
            logger.debug(f"In-flight marker {marker_key['key']} no longer ours")
        except DynamoDBError as e:
            logger.warning(f"Could not release in-flight marker {marker_key['key']}: {e}")
