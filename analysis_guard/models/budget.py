"""
Budget data models.

Percentage used and remaining budget are always derived from the stored
total and the configured cap, never stored alongside them.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

MONTH_KEY_PATTERN = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')


@dataclass(frozen=True)
class BudgetPeriod:
    """
    Spend accrued in one calendar month.

    Attributes:
        month_key: Month in YYYY-MM format
        total_used_usd: Spend accrued so far (non-decreasing within the month)
        cap_usd: Configured monthly cap
    """

    month_key: str
    total_used_usd: Decimal
    cap_usd: Decimal

    def __post_init__(self):
        """Validate field constraints."""
        if not MONTH_KEY_PATTERN.match(self.month_key):
            raise ValueError(f"month_key must be in YYYY-MM format, got {self.month_key!r}")

        if self.cap_usd <= 0:
            raise ValueError(f"cap_usd must be positive, got {self.cap_usd}")

    @property
    def percentage_used(self) -> Decimal:
        return self.total_used_usd / self.cap_usd * 100

    @property
    def remaining_usd(self) -> Decimal:
        return max(Decimal(0), self.cap_usd - self.total_used_usd)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'monthYear': self.month_key,
            'totalUsed': float(self.total_used_usd),
            'totalRemaining': float(self.remaining_usd),
            'percentageUsed': float(self.percentage_used),
            'cap': float(self.cap_usd),
        }


@dataclass(frozen=True)
class BudgetCheck:
    """
    Result of comparing the current period against a threshold.
    """

    exceeded: bool
    current_period: BudgetPeriod
    percentage_used: Decimal
    threshold: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exceeded': self.exceeded,
            'currentBudget': self.current_period.to_dict(),
            'percentageUsed': float(self.percentage_used),
            'threshold': float(self.threshold),
        }


@dataclass(frozen=True)
class BudgetStatus:
    """
    Budget view exposed to the API layer.
    """

    month_key: str
    used_usd: Decimal
    remaining_usd: Decimal
    percentage_used: Decimal
    cap_usd: Decimal

    @classmethod
    def from_period(cls, period: BudgetPeriod) -> 'BudgetStatus':
        return cls(
            month_key=period.month_key,
            used_usd=period.total_used_usd,
            remaining_usd=period.remaining_usd,
            percentage_used=period.percentage_used,
            cap_usd=period.cap_usd,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'monthYear': self.month_key,
            'usedUSD': float(self.used_usd),
            'remainingUSD': float(self.remaining_usd),
            'percentageUsed': float(self.percentage_used),
            'capUSD': float(self.cap_usd),
        }


@dataclass(frozen=True)
class BudgetSummary:
    """
    Spend across recent months, newest first.

    Attributes:
        current_period: Current month's period
        monthly_trend: Periods for months that recorded spend
        total_spent_usd: Sum over monthly_trend
        average_monthly_spend_usd: Mean over monthly_trend
        projected_annual_cost_usd: Average monthly spend times twelve
    """

    current_period: Optional[BudgetPeriod]
    monthly_trend: List[BudgetPeriod] = field(default_factory=list)

    @property
    def total_spent_usd(self) -> Decimal:
        return sum((p.total_used_usd for p in self.monthly_trend), Decimal(0))

    @property
    def average_monthly_spend_usd(self) -> Decimal:
        if not self.monthly_trend:
            return Decimal(0)
        return self.total_spent_usd / len(self.monthly_trend)

    @property
    def projected_annual_cost_usd(self) -> Decimal:
        return self.average_monthly_spend_usd * 12

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentMonth': self.current_period.to_dict() if self.current_period else None,
            'monthlyTrend': [p.to_dict() for p in self.monthly_trend],
            'totalSpent': float(self.total_spent_usd),
            'averageMonthlySpend': float(self.average_monthly_spend_usd),
            'projectedAnnualCost': float(self.projected_annual_cost_usd),
        }
