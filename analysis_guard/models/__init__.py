"""
Data models for cached results, counters and budget periods.
"""
from .analysis import (
    AnalysisOutcome,
    AnalysisResult,
    ClassificationResult,
    ErrorKind,
)
from .budget import BudgetCheck, BudgetPeriod, BudgetStatus, BudgetSummary
from .cache import CacheEntry
from .rate_limit import RateLimitCounter, RateLimitResult

__all__ = [
    'AnalysisOutcome',
    'AnalysisResult',
    'ClassificationResult',
    'ErrorKind',
    'BudgetCheck',
    'BudgetPeriod',
    'BudgetStatus',
    'BudgetSummary',
    'CacheEntry',
    'RateLimitCounter',
    'RateLimitResult',
]
