"""
CloudWatch custom metrics for the analysis guard.

Counts show how often each protective layer fires (cache hits, rate limit
and budget rejections, classifier calls and failures); the budget gauge
tracks how much of the monthly cap has been spent.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

CACHE_HIT = 'CacheHit'
CACHE_MISS = 'CacheMiss'
RATE_LIMITED = 'RateLimited'
BUDGET_EXCEEDED = 'BudgetExceeded'
BUDGET_PERCENTAGE_USED = 'BudgetPercentageUsed'
CLASSIFIER_INVOCATIONS = 'ClassifierInvocations'
CLASSIFIER_FAILURES = 'ClassifierFailures'

Dimensions = List[Dict[str, str]]


def _dimension(name: str, value: str) -> Dimensions:
    return [{'Name': name, 'Value': value}]


class MetricsPublisher:
    """
    Publishes one datum per call to CloudWatch.

    Publishing is best effort: a failed put is logged and never raised into
    the request path.
    """

    def __init__(self, namespace: str = 'AnalysisGuard', cloudwatch_client=None):
        """
        Initialize metrics publisher.

        Args:
            namespace: CloudWatch metrics namespace
            cloudwatch_client: Optional CloudWatch client for testing
        """
        self.namespace = namespace
        self.cloudwatch = cloudwatch_client or boto3.client(
            'cloudwatch',
            region_name=os.environ.get('AWS_REGION', 'us-east-1')
        )

    def put_count_metric(
        self,
        metric_name: str,
        value: int = 1,
        dimensions: Optional[Dimensions] = None
    ):
        self._put_metric(metric_name, value, 'Count', dimensions)

    def put_gauge_metric(
        self,
        metric_name: str,
        value: float,
        unit: str = 'Percent',
        dimensions: Optional[Dimensions] = None
    ):
        self._put_metric(metric_name, value, unit, dimensions)

    def _put_metric(
        self,
        metric_name: str,
        value: float,
        unit: str,
        dimensions: Optional[Dimensions]
    ):
        datum = {
            'MetricName': metric_name,
            'Value': value,
            'Unit': unit,
            'Timestamp': datetime.now(timezone.utc),
        }
        if dimensions:
            datum['Dimensions'] = dimensions

        try:
            self.cloudwatch.put_metric_data(Namespace=self.namespace, MetricData=[datum])
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Dropped metric {self.namespace}/{metric_name}: {e}")

    def emit_cache_hit(self):
        self.put_count_metric(CACHE_HIT)

    def emit_cache_miss(self):
        self.put_count_metric(CACHE_MISS)

    def emit_rate_limited(self, route: str):
        """
        Count a rate limit rejection.

        Args:
            route: Rate limit route ('analyze', 'api', 'strict')
        """
        self.put_count_metric(RATE_LIMITED, dimensions=_dimension('Route', route))

    def emit_budget_exceeded(self):
        self.put_count_metric(BUDGET_EXCEEDED)

    def emit_classifier_invocation(self):
        self.put_count_metric(CLASSIFIER_INVOCATIONS)

    def emit_classifier_failure(self, error_type: str):
        """
        Count a failed classifier call.

        Args:
            error_type: Exception class name, e.g. 'ClassifierQuotaExceededError'
        """
        self.put_count_metric(CLASSIFIER_FAILURES, dimensions=_dimension('ErrorType', error_type))

    def emit_budget_percentage_used(self, percentage):
        self.put_gauge_metric(BUDGET_PERCENTAGE_USED, value=float(percentage))
