"""
Data access layer for DynamoDB operations.
"""
from .dynamodb_client import DynamoDBClient
from .budget_ledger_repository import BudgetLedgerRepository
from .exceptions import (
    DynamoDBError,
    ConditionalCheckFailedError,
    RetryableError,
)

__all__ = [
    'DynamoDBClient',
    'BudgetLedgerRepository',
    'DynamoDBError',
    'ConditionalCheckFailedError',
    'RetryableError',
]
