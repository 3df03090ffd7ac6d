"""
Unit tests for SingleFlight.

Tests in-process de-duplication, cross-process marker handling, polling
and degradation when the marker store is down.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, Mock

from analysis_guard.data_access import (
    ConditionalCheckFailedError,
    DynamoDBClient,
    DynamoDBError,
)
from analysis_guard.services.single_flight import SingleFlight


@pytest.fixture
def mock_dynamodb_client():
    return Mock(spec=DynamoDBClient)


@pytest.fixture
def single_flight(mock_dynamodb_client, clock):
    return SingleFlight(
        'State-test',
        dynamodb_client=mock_dynamodb_client,
        poll_interval_seconds=0,
        clock=clock
    )


class TestInProcess:
    """Test de-duplication within one event loop."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_computation(self, single_flight):
        """Test two concurrent callers run compute once and get the same value."""
        # Arrange
        release = asyncio.Event()
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await release.wait()
            return 'verdict'

        lookup = AsyncMock(return_value=None)

        # Act
        first = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)
        second = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second)

        # Assert
        assert calls == 1
        assert results[0] == ('verdict', False)
        assert results[1] == ('verdict', True)

    @pytest.mark.asyncio
    async def test_joiners_receive_owner_exception(self, single_flight):
        release = asyncio.Event()

        async def compute():
            await release.wait()
            raise RuntimeError('classifier down')

        lookup = AsyncMock(return_value=None)

        first = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)
        second = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)

    @pytest.mark.asyncio
    async def test_different_keys_do_not_share(self, single_flight):
        compute_a = AsyncMock(return_value='a')
        compute_b = AsyncMock(return_value='b')
        lookup = AsyncMock(return_value=None)

        results = await asyncio.gather(
            single_flight.run('analysis:a', compute_a, lookup),
            single_flight.run('analysis:b', compute_b, lookup),
        )

        assert results == [('a', False), ('b', False)]

    @pytest.mark.asyncio
    async def test_flight_cleared_after_completion(self, single_flight):
        compute = AsyncMock(side_effect=['first', 'second'])
        lookup = AsyncMock(return_value=None)

        await single_flight.run('analysis:k', compute, lookup)
        value, shared = await single_flight.run('analysis:k', compute, lookup)

        assert value == 'second'
        assert shared is False

    @pytest.mark.asyncio
    async def test_joiner_completes_when_owner_cancelled(self, single_flight):
        """Test cancelling the owning request does not fail requests that joined it."""
        # Arrange
        release = asyncio.Event()
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await release.wait()
            return 'verdict'

        lookup = AsyncMock(return_value=None)
        owner = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)
        joiner = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)

        # Act
        owner.cancel()
        await asyncio.sleep(0)
        release.set()
        result = await joiner

        # Assert
        assert result == ('verdict', False)
        assert calls == 2
        with pytest.raises(asyncio.CancelledError):
            await owner

    @pytest.mark.asyncio
    async def test_cancelled_joiner_leaves_owner_running(self, single_flight):
        release = asyncio.Event()

        async def compute():
            await release.wait()
            return 'verdict'

        lookup = AsyncMock(return_value=None)
        owner = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)
        joiner = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)

        joiner.cancel()
        await asyncio.sleep(0)
        release.set()

        assert await owner == ('verdict', False)
        with pytest.raises(asyncio.CancelledError):
            await joiner

    @pytest.mark.asyncio
    async def test_joiner_cancelled_with_owner_stays_cancelled(self, single_flight):
        async def compute():
            await asyncio.Event().wait()

        lookup = AsyncMock(return_value=None)
        owner = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)
        joiner = asyncio.create_task(single_flight.run('analysis:k', compute, lookup))
        await asyncio.sleep(0)

        owner.cancel()
        joiner.cancel()
        results = await asyncio.gather(owner, joiner, return_exceptions=True)

        assert all(isinstance(r, asyncio.CancelledError) for r in results)
        assert single_flight._flights == {}


class TestCrossProcess:
    """Test the in-flight marker protocol."""

    @pytest.mark.asyncio
    async def test_owner_writes_and_releases_marker(self, single_flight, mock_dynamodb_client, clock):
        """Test the marker is a conditional put and a conditional delete on ownerId."""
        compute = AsyncMock(return_value='verdict')

        await single_flight.run('analysis:k', compute, AsyncMock())

        put_kwargs = mock_dynamodb_client.put_item.call_args.kwargs
        assert put_kwargs['item']['key'] == 'inflight:analysis:k'
        assert put_kwargs['item']['ownerId'] == single_flight.owner_id
        assert put_kwargs['item']['expiresAtMs'] == int(clock() * 1000) + 30_000
        assert put_kwargs['condition_expression'] == (
            'attribute_not_exists(#key) OR expiresAtMs <= :now'
        )

        delete_kwargs = mock_dynamodb_client.delete_item.call_args.kwargs
        assert delete_kwargs['key'] == {'key': 'inflight:analysis:k'}
        assert delete_kwargs['condition_expression'] == 'ownerId = :owner'
        assert delete_kwargs['expression_attribute_values'] == {':owner': single_flight.owner_id}

    @pytest.mark.asyncio
    async def test_marker_released_when_compute_fails(self, single_flight, mock_dynamodb_client):
        compute = AsyncMock(side_effect=RuntimeError('boom'))

        with pytest.raises(RuntimeError):
            await single_flight.run('analysis:k', compute, AsyncMock())

        mock_dynamodb_client.delete_item.assert_called_once()

    @pytest.mark.asyncio
    async def test_waiter_returns_result_from_other_worker(self, single_flight, mock_dynamodb_client, clock):
        """Test a caller that loses the marker polls instead of computing."""
        # Arrange
        mock_dynamodb_client.put_item.side_effect = ConditionalCheckFailedError('held')
        mock_dynamodb_client.get_item.return_value = {
            'key': 'inflight:analysis:k',
            'expiresAtMs': int(clock() * 1000) + 30_000,
        }
        compute = AsyncMock(return_value='mine')
        lookup = AsyncMock(side_effect=[None, 'theirs'])

        # Act
        value, shared = await single_flight.run('analysis:k', compute, lookup)

        # Assert
        assert (value, shared) == ('theirs', True)
        compute.assert_not_called()
        mock_dynamodb_client.delete_item.assert_not_called()

    @pytest.mark.asyncio
    async def test_waiter_competes_again_when_marker_disappears(self, single_flight, mock_dynamodb_client):
        """Test a vanished marker (owner finished without result or crashed) is retaken."""
        mock_dynamodb_client.put_item.side_effect = [ConditionalCheckFailedError('held'), None]
        mock_dynamodb_client.get_item.return_value = None
        compute = AsyncMock(return_value='mine')
        lookup = AsyncMock(return_value=None)

        value, shared = await single_flight.run('analysis:k', compute, lookup)

        assert (value, shared) == ('mine', False)
        assert mock_dynamodb_client.put_item.call_count == 2

    @pytest.mark.asyncio
    async def test_expired_marker_is_treated_as_gone(self, single_flight, mock_dynamodb_client, clock):
        mock_dynamodb_client.put_item.side_effect = [ConditionalCheckFailedError('held'), None]
        mock_dynamodb_client.get_item.return_value = {
            'key': 'inflight:analysis:k',
            'expiresAtMs': int(clock() * 1000) - 1,
        }
        compute = AsyncMock(return_value='mine')

        value, _ = await single_flight.run('analysis:k', compute, AsyncMock(return_value=None))

        assert value == 'mine'

    @pytest.mark.asyncio
    async def test_waiter_computes_after_max_wait(self, mock_dynamodb_client, clock):
        """Test waiting is bounded; past the deadline the caller computes itself."""
        single_flight = SingleFlight(
            'State-test',
            dynamodb_client=mock_dynamodb_client,
            poll_interval_seconds=0,
            max_wait_seconds=1,
            clock=clock
        )
        mock_dynamodb_client.put_item.side_effect = ConditionalCheckFailedError('held')
        mock_dynamodb_client.get_item.return_value = {
            'key': 'inflight:analysis:k',
            'expiresAtMs': int(clock() * 1000) + 3_600_000,
        }

        async def lookup():
            clock.advance(1)
            return None

        compute = AsyncMock(return_value='mine')

        value, shared = await single_flight.run('analysis:k', compute, lookup)

        assert (value, shared) == ('mine', False)
        compute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_marker_store_failure_degrades_to_in_process(self, single_flight, mock_dynamodb_client):
        """Test compute still runs when the marker cannot be written."""
        mock_dynamodb_client.put_item.side_effect = DynamoDBError('down')
        mock_dynamodb_client.delete_item.side_effect = DynamoDBError('down')
        compute = AsyncMock(return_value='mine')

        value, shared = await single_flight.run('analysis:k', compute, AsyncMock())

        assert (value, shared) == ('mine', False)
