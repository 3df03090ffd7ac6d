"""
Monthly spend tracking against a cap.

The running total for the current month lives on the shared state table
under budget:<YYYY-MM> and is only ever changed by an atomic ADD. Every add
is mirrored to the durable BudgetLedger table, which seeds the shared
counter whenever it is missing (at startup or on the next add) and backs
multi-month summaries.

Budget fails closed: when the total cannot be read or updated the caller
gets BudgetUnavailableError rather than an optimistic answer.
"""

import logging
import math
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Union

from ..data_access import (
    BudgetLedgerRepository,
    ConditionalCheckFailedError,
    DynamoDBClient,
    DynamoDBError,
)
from ..models import BudgetCheck, BudgetPeriod, BudgetStatus, BudgetSummary
from ..utils.validators import ValidationError, validate_amount, validate_threshold
from .exceptions import BudgetUnavailableError

logger = logging.getLogger(__name__)

BUDGET_KEY_PREFIX = 'budget:'
# Long enough to outlive the month it tracks
BUDGET_ITEM_TTL_SECONDS = 400 * 86400
MAX_SUMMARY_MONTHS = 24
TOKENS_PER_MILLION = Decimal(1000000)

Number = Union[int, float, Decimal]


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    input_usd_per_million: Number = Decimal('0.25'),
    output_usd_per_million: Number = Decimal('1.25')
) -> Decimal:
    """
    Calculate the USD cost of one classifier call.

    Args:
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
        input_usd_per_million: Price per million input tokens
        output_usd_per_million: Price per million output tokens

    Returns:
        Cost in USD

    Raises:
        ValidationError: If a token count is negative
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValidationError('token counts must be non-negative', field='tokens')

    input_rate = validate_amount(input_usd_per_million, field_name='input_usd_per_million')
    output_rate = validate_amount(output_usd_per_million, field_name='output_usd_per_million')

    return (
        Decimal(input_tokens) / TOKENS_PER_MILLION * input_rate
        + Decimal(output_tokens) / TOKENS_PER_MILLION * output_rate
    )


def month_key_for(epoch_seconds: float) -> str:
    """Return the UTC YYYY-MM month for an epoch timestamp."""
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).strftime('%Y-%m')


def previous_month_keys(month_key: str, months: int) -> List[str]:
    """
    List month keys ending at month_key, newest first.

    Example:
        >>> previous_month_keys('2025-02', 3)
        ['2025-02', '2025-01', '2024-12']
    """
    year, month = (int(part) for part in month_key.split('-'))
    keys = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year -= 1
            month = 12
    return keys


class BudgetTracker:
    """
    Tracks spend for the current UTC month against a monthly cap.
    """

    def __init__(
        self,
        table_name: str,
        ledger: BudgetLedgerRepository,
        monthly_cap_usd: Number = Decimal('25'),
        input_usd_per_million: Number = Decimal('0.25'),
        output_usd_per_million: Number = Decimal('1.25'),
        dynamodb_client: Optional[DynamoDBClient] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize BudgetTracker.

        Args:
            table_name: Shared state table name
            ledger: Durable ledger repository
            monthly_cap_usd: Monthly spending cap in USD (positive)
            input_usd_per_million: Classifier price per million input tokens
            output_usd_per_million: Classifier price per million output tokens
            dynamodb_client: Optional DynamoDB client instance
            clock: Returns current epoch time in seconds
        """
        cap = validate_amount(monthly_cap_usd, field_name='monthly_cap_usd')
        if cap == 0:
            raise ValidationError('monthly_cap_usd must be positive', field='monthly_cap_usd')

        self.table_name = table_name
        self.ledger = ledger
        self.monthly_cap_usd = cap
        self.input_usd_per_million = validate_amount(
            input_usd_per_million, field_name='input_usd_per_million'
        )
        self.output_usd_per_million = validate_amount(
            output_usd_per_million, field_name='output_usd_per_million'
        )
        self.client = dynamodb_client or DynamoDBClient()
        self.clock = clock

    def current_month_key(self) -> str:
        return month_key_for(self.clock())

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> Decimal:
        """
        Calculate call cost with the configured token prices.
        """
        return calculate_cost(
            input_tokens,
            output_tokens,
            self.input_usd_per_million,
            self.output_usd_per_million
        )

    def add_cost(self, amount_usd: Number) -> BudgetPeriod:
        """
        Atomically add spend to the current month.

        Args:
            amount_usd: Cost in USD (finite, non-negative)

        Returns:
            Period with the new running total

        Raises:
            ValidationError: If amount is negative or not finite
            BudgetUnavailableError: If the shared store cannot be updated, or
                a missing counter cannot be seeded from the ledger
        """
        amount = validate_amount(amount_usd, field_name='amount_usd')
        month_key = self.current_month_key()

        try:
            try:
                total = self._add_to_counter(month_key, amount, require_existing=True)
            except ConditionalCheckFailedError:
                # Counter gone (first call of the month or store reset)
                self._seed_from_ledger(month_key)
                total = self._add_to_counter(month_key, amount)
        except DynamoDBError as e:
            logger.error(f"Budget store unavailable, could not add {amount} USD: {e}")
            raise BudgetUnavailableError(f"Failed to record cost for {month_key}") from e

        try:
            self.ledger.add_to_month(month_key, amount)
        except DynamoDBError as e:
            # Shared store stays authoritative for the running month
            logger.error(f"Failed to mirror {amount} USD to budget ledger for {month_key}: {e}")

        logger.info(f"Recorded {amount} USD for {month_key}, total {total} USD")
        return self._period(month_key, total)

    def get_current_period(self) -> BudgetPeriod:
        """
        Get the current month's period.

        Falls back to the ledger when the shared store has no counter for
        the month, and to a fresh period when neither has one.

        Raises:
            BudgetUnavailableError: If either store cannot be read
        """
        month_key = self.current_month_key()

        try:
            item = self.client.get_item(
                table_name=self.table_name,
                key={'key': f"{BUDGET_KEY_PREFIX}{month_key}"},
                consistent_read=True
            )
            if item and 'totalUsed' in item:
                return self._period(month_key, Decimal(item['totalUsed']))

            ledger_total = self.ledger.get_month_total(month_key)
        except DynamoDBError as e:
            logger.error(f"Budget store unavailable, could not read {month_key}: {e}")
            raise BudgetUnavailableError(f"Failed to read budget for {month_key}") from e

        return self._period(month_key, ledger_total or Decimal(0))

    def is_exceeded(self, threshold_percent: Number = 100.0) -> BudgetCheck:
        """
        Check whether the current month has reached a percentage of the cap.

        Args:
            threshold_percent: Percentage of the cap (0-100)

        Returns:
            BudgetCheck with exceeded = percentage_used >= threshold

        Raises:
            ValidationError: If threshold is outside 0-100
            BudgetUnavailableError: If the budget cannot be read
        """
        threshold = validate_threshold(threshold_percent, field_name='threshold_percent')
        period = self.get_current_period()
        percentage = period.percentage_used

        return BudgetCheck(
            exceeded=percentage >= threshold,
            current_period=period,
            percentage_used=percentage,
            threshold=threshold
        )

    def get_status(self) -> BudgetStatus:
        return BudgetStatus.from_period(self.get_current_period())

    def restore_current_period(self) -> Optional[BudgetPeriod]:
        """
        Seed the shared counter for the current month from the ledger.

        The put only succeeds when no counter exists yet, so a live counter
        is never overwritten.

        Returns:
            Restored period, or None if nothing was restored
        """
        month_key = self.current_month_key()

        try:
            ledger_total = self._seed_from_ledger(month_key)
        except DynamoDBError as e:
            logger.warning(f"Could not restore budget for {month_key} from ledger: {e}")
            return None

        if ledger_total is None:
            return None
        return self._period(month_key, ledger_total)

    def get_usage_trend(self, months: int = 12) -> List[BudgetPeriod]:
        """
        Get per-month spend from the ledger, newest first.

        Months without spend are omitted.

        Args:
            months: How many months back to look, current month included (1-24)

        Raises:
            ValidationError: If months is out of range
            BudgetUnavailableError: If the ledger cannot be read
        """
        if isinstance(months, bool) or not isinstance(months, int) or not 1 <= months <= MAX_SUMMARY_MONTHS:
            raise ValidationError(
                f'months must be between 1 and {MAX_SUMMARY_MONTHS}', field='months'
            )

        month_keys = previous_month_keys(self.current_month_key(), months)
        try:
            totals = self.ledger.get_month_totals(month_keys)
        except DynamoDBError as e:
            logger.error(f"Budget ledger unavailable: {e}")
            raise BudgetUnavailableError("Failed to read budget ledger") from e

        return [
            self._period(month_key, totals[month_key])
            for month_key in month_keys
            if month_key in totals
        ]

    def get_summary(self, months: int = 6) -> BudgetSummary:
        """
        Summarise spend over recent months.

        Args:
            months: How many months back to look (1-24)

        Returns:
            BudgetSummary with the live current period and the ledger trend
        """
        trend = self.get_usage_trend(months)
        return BudgetSummary(
            current_period=self.get_current_period(),
            monthly_trend=trend
        )

    def _add_to_counter(
        self,
        month_key: str,
        amount: Decimal,
        require_existing: bool = False
    ) -> Decimal:
        return self.client.atomic_add(
            table_name=self.table_name,
            key={'key': f"{BUDGET_KEY_PREFIX}{month_key}"},
            attribute_name='totalUsed',
            amount=amount,
            set_if_missing={
                'monthYear': month_key,
                'expiresAt': math.ceil(self.clock()) + BUDGET_ITEM_TTL_SECONDS,
            },
            require_existing=require_existing
        )

    def _seed_from_ledger(self, month_key: str) -> Optional[Decimal]:
        """
        Create the month counter from the ledger total, unless it exists.

        Returns:
            Ledger total written to the counter, or None if nothing was written

        Raises:
            DynamoDBError: If the ledger or the shared store cannot be reached
        """
        ledger_total = self.ledger.get_month_total(month_key)
        if ledger_total is None:
            logger.info(f"No ledger row for {month_key}, counter starts at zero")
            return None

        try:
            self.client.put_item(
                table_name=self.table_name,
                item={
                    'key': f"{BUDGET_KEY_PREFIX}{month_key}",
                    'monthYear': month_key,
                    'totalUsed': ledger_total,
                    'expiresAt': math.ceil(self.clock()) + BUDGET_ITEM_TTL_SECONDS,
                },
                condition_expression='attribute_not_exists(#key)',
                expression_attribute_names={'#key': 'key'}
            )
        except ConditionalCheckFailedError:
            logger.info(f"Budget counter for {month_key} already live, not seeding")
            return None

        logger.info(f"Seeded budget for {month_key} from ledger: {ledger_total} USD")
        return ledger_total

    def _period(self, month_key: str, total: Decimal) -> BudgetPeriod:
        return BudgetPeriod(
            month_key=month_key,
            total_used_usd=total,
            cap_usd=self.monthly_cap_usd
        )
