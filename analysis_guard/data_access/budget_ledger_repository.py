"""
Repository for BudgetLedger table operations.

The ledger is the durable record of monthly spend. It receives the same
atomic adds as the shared state table and is read back at startup and for
multi-month summaries.
"""
import time
import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional

from .dynamodb_client import DynamoDBClient

logger = logging.getLogger(__name__)


class BudgetLedgerRepository:
    """
    Repository for managing monthly budget ledger rows in DynamoDB.
    """

    def __init__(self, table_name: str, dynamodb_client: Optional[DynamoDBClient] = None):
        """
        Initialize BudgetLedger repository.

        Args:
            table_name: Name of the BudgetLedger table
            dynamodb_client: Optional DynamoDB client instance
        """
        self.table_name = table_name
        self.client = dynamodb_client or DynamoDBClient()

    def add_to_month(self, month_key: str, amount: Decimal) -> Decimal:
        """
        Atomically add spend to a month row, creating it on first use.

        Args:
            month_key: Month in YYYY-MM format
            amount: Amount in USD

        Returns:
            New ledger total for the month

        Raises:
            DynamoDBError: On DynamoDB errors
        """
        return self.client.atomic_add(
            table_name=self.table_name,
            key={'monthYear': month_key},
            attribute_name='totalUsed',
            amount=amount,
            set_if_missing={'createdAt': int(time.time() * 1000)}
        )

    def get_month_total(self, month_key: str) -> Optional[Decimal]:
        """
        Get the ledger total for a month.

        Args:
            month_key: Month in YYYY-MM format

        Returns:
            Total spend in USD, or None if the month has no row

        Raises:
            DynamoDBError: On DynamoDB errors
        """
        item = self.client.get_item(
            table_name=self.table_name,
            key={'monthYear': month_key},
            consistent_read=True
        )
        if not item:
            return None
        return Decimal(item.get('totalUsed', 0))

    def get_month_totals(self, month_keys: Iterable[str]) -> Dict[str, Decimal]:
        """
        Get ledger totals for several months, one consistent read each.

        Months without a row are omitted from the result.

        Args:
            month_keys: Months in YYYY-MM format

        Returns:
            Mapping of month key to total spend
        """
        totals = {}
        for month_key in month_keys:
            total = self.get_month_total(month_key)
            if total is not None:
                totals[month_key] = total
        return totals
