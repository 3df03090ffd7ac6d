"""
Fixtures wiring a real orchestrator to moto-backed tables.
"""
import pytest
from unittest.mock import AsyncMock, Mock

from analysis_guard.config import Settings
from analysis_guard.models import ClassificationResult
from analysis_guard.services import (
    AnalysisOrchestrator,
    BudgetTracker,
    CacheStore,
    RateLimiter,
    SingleFlight,
)
from analysis_guard.utils.metrics import MetricsPublisher

STATE_TABLE = 'AnalysisGuardState-test'


def make_classification(**overrides):
    fields = dict(
        is_fake=True,
        confidence=0.9,
        explanation='Sensational claims without sources',
        suspicious_phrases=['doctors hate this'],
        recommendations='Check the original source',
        model_used='test-model',
        input_tokens=2000,
        output_tokens=400,
    )
    fields.update(overrides)
    return ClassificationResult(**fields)


@pytest.fixture
def classifier():
    mock = Mock()
    mock.classify = AsyncMock(return_value=make_classification())
    return mock


@pytest.fixture
def build_orchestrator(dynamodb_tables, ledger, clock, classifier):
    """Factory for an orchestrator over the mocked tables."""

    def build(cache_table=STATE_TABLE, settings=None):
        settings = settings or Settings()
        return AnalysisOrchestrator(
            cache_store=CacheStore(cache_table, dynamodb_client=dynamodb_tables, clock=clock),
            rate_limiter=RateLimiter(STATE_TABLE, dynamodb_client=dynamodb_tables, clock=clock),
            budget_tracker=BudgetTracker(
                STATE_TABLE,
                ledger,
                monthly_cap_usd=settings.monthly_budget_usd,
                dynamodb_client=dynamodb_tables,
                clock=clock
            ),
            classifier=classifier,
            single_flight=SingleFlight(
                STATE_TABLE,
                dynamodb_client=dynamodb_tables,
                poll_interval_seconds=0,
                clock=clock
            ),
            settings=settings,
            metrics=Mock(spec=MetricsPublisher)
        )

    return build


@pytest.fixture
def orchestrator(build_orchestrator):
    return build_orchestrator()
