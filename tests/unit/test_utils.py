"""
Unit tests for logging, metrics and response helpers.
"""
import json
import logging
import pytest
from decimal import Decimal
from unittest.mock import Mock

from botocore.exceptions import ClientError

from analysis_guard.models import RateLimitResult
from analysis_guard.utils.metrics import MetricsPublisher
from analysis_guard.utils.response_builder import (
    error_response,
    rate_limit_error_response,
    rate_limit_headers,
    success_response,
)
from analysis_guard.utils.structured_logger import LoggingContext, get_structured_logger


class TestStructuredLogger:

    def test_log_entry_is_json_with_correlation_fields(self, caplog):
        logger = get_structured_logger('TestComponent', request_id='req-1', caller_id='203.0.113.7')

        with caplog.at_level(logging.INFO, logger='TestComponent'):
            logger.info('Budget checked', operation='check', total=Decimal('1.5'))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry['level'] == 'INFO'
        assert entry['component'] == 'TestComponent'
        assert entry['requestId'] == 'req-1'
        assert entry['callerId'] == '203.0.113.7'
        assert entry['operation'] == 'check'
        assert entry['context'] == {'total': 1.5}
        assert entry['timestamp'].endswith('Z')

    def test_error_records_exception_type(self, caplog):
        logger = get_structured_logger('TestComponent')

        with caplog.at_level(logging.ERROR, logger='TestComponent'):
            logger.error('Failed', error=ValueError('bad value'))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry['context']['error_type'] == 'ValueError'
        assert entry['context']['error_message'] == 'bad value'
        assert 'requestId' not in entry

    def test_logging_context_logs_failure_and_reraises(self, caplog):
        logger = get_structured_logger('TestComponent')

        with caplog.at_level(logging.ERROR, logger='TestComponent'):
            with pytest.raises(RuntimeError):
                with LoggingContext(logger, 'analyze'):
                    raise RuntimeError('boom')

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry['message'] == 'Operation failed: analyze'
        assert 'duration_ms' in entry['context']


class TestMetricsPublisher:

    def test_count_metric_with_dimensions(self):
        cloudwatch = Mock()
        metrics = MetricsPublisher(cloudwatch_client=cloudwatch)

        metrics.emit_rate_limited('analyze')

        kwargs = cloudwatch.put_metric_data.call_args.kwargs
        assert kwargs['Namespace'] == 'AnalysisGuard'
        datum = kwargs['MetricData'][0]
        assert datum['MetricName'] == 'RateLimited'
        assert datum['Unit'] == 'Count'
        assert datum['Dimensions'] == [{'Name': 'Route', 'Value': 'analyze'}]

    def test_budget_gauge_is_percent(self):
        cloudwatch = Mock()
        metrics = MetricsPublisher(cloudwatch_client=cloudwatch)

        metrics.emit_budget_percentage_used(Decimal('42.5'))

        datum = cloudwatch.put_metric_data.call_args.kwargs['MetricData'][0]
        assert datum['Value'] == 42.5
        assert datum['Unit'] == 'Percent'
        assert 'Dimensions' not in datum

    def test_publish_failure_is_swallowed(self):
        cloudwatch = Mock()
        cloudwatch.put_metric_data.side_effect = ClientError(
            {'Error': {'Code': 'ThrottlingException', 'Message': 'Rate exceeded'}},
            'PutMetricData'
        )
        metrics = MetricsPublisher(cloudwatch_client=cloudwatch)

        metrics.emit_cache_hit()

        cloudwatch.put_metric_data.assert_called_once()


class TestResponseBuilder:

    def test_success_response(self):
        response = success_response(200, {'total': Decimal('0.5')})

        assert response['statusCode'] == 200
        assert response['headers']['Content-Type'] == 'application/json'
        assert json.loads(response['body']) == {'total': 0.5}

    def test_error_response_body(self):
        response = error_response(400, 'VALIDATION_ERROR', 'text is required', {'field': 'text'})

        body = json.loads(response['body'])
        assert response['statusCode'] == 400
        assert body['type'] == 'error'
        assert body['code'] == 'VALIDATION_ERROR'
        assert body['message'] == 'text is required'
        assert body['details'] == {'field': 'text'}
        assert isinstance(body['timestamp'], int)

    def test_rate_limit_headers(self):
        result = RateLimitResult(allowed=True, remaining=4, reset_time_ms=1742043600500, limit=5)

        assert rate_limit_headers(result) == {
            'X-RateLimit-Limit': '5',
            'X-RateLimit-Remaining': '4',
            'X-RateLimit-Reset': '1742043600',
        }

    def test_rate_limit_error_response(self):
        result = RateLimitResult(allowed=False, remaining=0, reset_time_ms=1742043600000, limit=10)

        response = rate_limit_error_response(120, result)

        body = json.loads(response['body'])
        assert response['statusCode'] == 429
        assert response['headers']['Retry-After'] == '120'
        assert response['headers']['X-RateLimit-Remaining'] == '0'
        assert body['code'] == 'RATE_LIMITED'
        assert body['details']['retryAfter'] == 120
        assert body['details']['rateLimit']['limit'] == 10


class TestRejectionLogging:

    @pytest.mark.parametrize('error_kind,status_code,level', [
        ('VALIDATION_ERROR', 400, 'INFO'),
        ('RATE_LIMITED', 429, 'INFO'),
        ('BUDGET_EXCEEDED', 402, 'WARNING'),
        ('CLASSIFIER_UNAVAILABLE', 503, 'WARNING'),
    ])
    def test_rejection_level(self, caplog, error_kind, status_code, level):
        logger = get_structured_logger('TestComponent', request_id='req-1')

        with caplog.at_level(logging.INFO, logger='TestComponent'):
            logger.log_rejection(error_kind, status_code)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry['level'] == level
        assert entry['operation'] == 'reject'
        assert entry['context'] == {'error_kind': error_kind, 'status_code': status_code}
