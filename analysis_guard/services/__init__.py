"""
Services for guarded text analysis.
"""
from .analysis_orchestrator import AnalysisOrchestrator
from .budget_tracker import BudgetTracker, calculate_cost
from .cache_store import CacheStore, generate_analysis_key
from .classifier import BedrockClassifier, Classifier
from .exceptions import (
    BudgetExceededError,
    BudgetUnavailableError,
    ClassifierError,
    ClassifierQuotaExceededError,
    ClassifierUnavailableError,
    RateLimitExceededError,
)
from .rate_limiter import RateLimiter
from .single_flight import SingleFlight

__all__ = [
    'AnalysisOrchestrator',
    'BudgetTracker',
    'calculate_cost',
    'CacheStore',
    'generate_analysis_key',
    'BedrockClassifier',
    'Classifier',
    'BudgetExceededError',
    'BudgetUnavailableError',
    'ClassifierError',
    'ClassifierQuotaExceededError',
    'ClassifierUnavailableError',
    'RateLimitExceededError',
    'RateLimiter',
    'SingleFlight',
]
