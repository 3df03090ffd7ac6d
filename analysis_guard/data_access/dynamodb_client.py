"""
DynamoDB access for the shared state and ledger tables.

All numbers cross this boundary as Decimal, as boto3's resource API expects.
"""
import logging
from typing import Dict, Optional, Any, Union
from decimal import Decimal

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import (
    DynamoDBError,
    ConditionalCheckFailedError,
    RetryableError,
)

logger = logging.getLogger(__name__)

RETRYABLE_ERROR_CODES = frozenset([
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'InternalServerError',
    'ServiceUnavailable',
])


def _expression_kwargs(
    condition_expression: Optional[str],
    values: Optional[Dict[str, Any]],
    names: Optional[Dict[str, str]]
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {}
    if condition_expression:
        kwargs['ConditionExpression'] = condition_expression
    if values:
        kwargs['ExpressionAttributeValues'] = values
    if names:
        kwargs['ExpressionAttributeNames'] = names
    return kwargs


class DynamoDBClient:
    """
    DynamoDB client with atomic operations and error handling.

    Every botocore failure leaves this class as one of the data access
    exceptions, so callers decide between fail-open and fail-closed
    without knowing about botocore.
    """

    def __init__(
        self,
        region: str = 'us-east-1',
        endpoint_url: Optional[str] = None,
        resource=None
    ):
        """
        Initialize DynamoDB client.

        Args:
            region: AWS region for DynamoDB
            endpoint_url: Optional endpoint override (local DynamoDB)
            resource: Optional pre-built boto3 DynamoDB resource
        """
        self.dynamodb = resource or boto3.resource(
            'dynamodb',
            region_name=region,
            endpoint_url=endpoint_url
        )

    def get_table(self, table_name: str):
        return self.dynamodb.Table(table_name)

    def get_item(
        self,
        table_name: str,
        key: Dict[str, Any],
        consistent_read: bool = False
    ) -> Optional[Dict[str, Any]]:
        """
        Read one item.

        Returns:
            Item dict, or None if absent

        Raises:
            DynamoDBError: On store failure
        """
        try:
            response = self.get_table(table_name).get_item(
                Key=key,
                ConsistentRead=consistent_read
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, 'get item', table_name) from e
        return response.get('Item')

    def put_item(
        self,
        table_name: str,
        item: Dict[str, Any],
        condition_expression: Optional[str] = None,
        expression_attribute_values: Optional[Dict[str, Any]] = None,
        expression_attribute_names: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Write one item, optionally guarded by a condition.

        Raises:
            ConditionalCheckFailedError: If the condition is false
            DynamoDBError: On store failure
        """
        kwargs = _expression_kwargs(
            condition_expression,
            expression_attribute_values,
            expression_attribute_names
        )
        try:
            self.get_table(table_name).put_item(Item=item, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, 'put item', table_name) from e

    def update_item(
        self,
        table_name: str,
        key: Dict[str, Any],
        update_expression: str,
        condition_expression: Optional[str] = None,
        expression_attribute_values: Optional[Dict[str, Any]] = None,
        expression_attribute_names: Optional[Dict[str, str]] = None,
        return_values: str = 'NONE'
    ) -> Optional[Dict[str, Any]]:
        """
        Apply an update expression to one item.

        Args:
            table_name: Name of the table
            key: Primary key of the item
            update_expression: SET/ADD/REMOVE expression
            condition_expression: Optional guard
            expression_attribute_values: Values referenced as :name
            expression_attribute_names: Names referenced as #name
            return_values: NONE, ALL_OLD, UPDATED_OLD, ALL_NEW or UPDATED_NEW

        Returns:
            Returned attributes, or None when return_values is NONE

        Raises:
            ConditionalCheckFailedError: If the condition is false
            DynamoDBError: On store failure
        """
        kwargs = _expression_kwargs(
            condition_expression,
            expression_attribute_values,
            expression_attribute_names
        )
        try:
            response = self.get_table(table_name).update_item(
                Key=key,
                UpdateExpression=update_expression,
                ReturnValues=return_values,
                **kwargs
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, 'update item', table_name) from e
        return response.get('Attributes')

    def delete_item(
        self,
        table_name: str,
        key: Dict[str, Any],
        condition_expression: Optional[str] = None,
        expression_attribute_values: Optional[Dict[str, Any]] = None,
        expression_attribute_names: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Delete one item, optionally guarded by a condition.

        Raises:
            ConditionalCheckFailedError: If the condition is false
            DynamoDBError: On store failure
        """
        kwargs = _expression_kwargs(
            condition_expression,
            expression_attribute_values,
            expression_attribute_names
        )
        try:
            self.get_table(table_name).delete_item(Key=key, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, 'delete item', table_name) from e

    def atomic_add(
        self,
        table_name: str,
        key: Dict[str, Any],
        attribute_name: str,
        amount: Union[int, Decimal] = 1,
        set_if_missing: Optional[Dict[str, Any]] = None,
        require_existing: bool = False
    ) -> Decimal:
        """
        Atomically add to a numeric attribute, creating the item if needed.

        Uses DynamoDB's ADD action, so concurrent callers never lose
        updates. Attributes in set_if_missing are written only when the
        item has no value for them yet.

        Args:
            table_name: Name of the table
            key: Primary key of the item
            attribute_name: Name of the numeric attribute
            amount: Value to add (int or Decimal, never float)
            set_if_missing: Optional attributes to initialise on creation
            require_existing: Only add when the attribute already has a value

        Returns:
            New value after the add

        Raises:
            ConditionalCheckFailedError: If require_existing and the attribute is missing
            DynamoDBError: On DynamoDB errors
        """
        names = {'#attr': attribute_name}
        values: Dict[str, Any] = {':amount': amount}
        set_clauses = []

        for index, (name, value) in enumerate((set_if_missing or {}).items()):
            names[f'#s{index}'] = name
            values[f':s{index}'] = value
            set_clauses.append(f'#s{index} = if_not_exists(#s{index}, :s{index})')

        update_expression = 'ADD #attr :amount'
        if set_clauses:
            update_expression = f"SET {', '.join(set_clauses)} {update_expression}"

        result = self.update_item(
            table_name=table_name,
            key=key,
            update_expression=update_expression,
            condition_expression='attribute_exists(#attr)' if require_existing else None,
            expression_attribute_values=values,
            expression_attribute_names=names,
            return_values='ALL_NEW'
        )

        return Decimal(result[attribute_name]) if result else Decimal(0)

    def _translate_error(
        self,
        error: Exception,
        operation: str,
        table_name: str
    ) -> DynamoDBError:
        """
        Map a botocore exception onto the data access taxonomy.

        Args:
            error: ClientError or BotoCoreError raised by boto3
            operation: Human-readable operation name for the log line
            table_name: Table the operation targeted

        Returns:
            Exception to raise (chained by the caller)
        """
        if isinstance(error, ClientError):
            error_code = error.response.get('Error', {}).get('Code', 'Unknown')

            if error_code == 'ConditionalCheckFailedException':
                return ConditionalCheckFailedError("Conditional check failed")

            logger.error(f"Error trying to {operation} in {table_name}: {error_code} - {error}")

            if error_code in RETRYABLE_ERROR_CODES:
                return RetryableError(f"Failed to {operation}: {error_code}")
            return DynamoDBError(f"Failed to {operation}: {error_code}")

        logger.error(f"Connection error trying to {operation} in {table_name}: {error}")
        return DynamoDBError(f"Failed to {operation}: {error}")
