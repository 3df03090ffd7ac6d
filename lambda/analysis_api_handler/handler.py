"""
HTTP API Lambda handler for guarded text analysis.

This handler implements REST API endpoints over the analysis orchestrator:
- POST /analyze - Analyse text (budget, rate limit, cache, single-flight)
- GET /budget - Current month's budget status
- GET /budget/summary - Spend over recent months (?months=N)
- GET /budget/check - Spend against a percentage of the cap (?threshold=N, default 90)
- GET /rate-limit - Count a request against the 'api' limit and report it
- GET /cache/stats - In-process cache statistics
- POST /cache/lookup - Cached verdict for {"text", "url"} without classifying
- DELETE /cache - Invalidate the cached verdict for {"text", "url"}
- GET /health - Health check, 503 when the shared state store is unreachable

Caller identity is the HTTP source IP.

Environment Variables:
    STATE_TABLE_NAME: Shared state table (cache, counters, markers)
    BUDGET_LEDGER_TABLE_NAME: Durable monthly spend ledger table
    MONTHLY_BUDGET_USD: Monthly spending cap (default: 25)
    CACHE_TTL_SECONDS: Cached result lifetime (default: 3600)
    CLASSIFIER_MODEL_ID: Bedrock model for the classifier
    LOG_LEVEL: Logging level (default: INFO)
"""
import asyncio
import base64
import binascii
import json
from typing import Any, Dict, Optional

from analysis_guard.config import load_settings
from analysis_guard.data_access import BudgetLedgerRepository, DynamoDBClient
from analysis_guard.models import AnalysisOutcome, ErrorKind
from analysis_guard.services import (
    AnalysisOrchestrator,
    BedrockClassifier,
    BudgetTracker,
    BudgetUnavailableError,
    CacheStore,
    RateLimiter,
    SingleFlight,
)
from analysis_guard.services.analysis_orchestrator import ALERT_THRESHOLD_PERCENT
from analysis_guard.utils.metrics import MetricsPublisher
from analysis_guard.utils.response_builder import (
    error_response,
    rate_limit_error_response,
    rate_limit_headers,
    success_response,
)
from analysis_guard.utils.structured_logger import (
    LoggingContext,
    configure_lambda_logging,
    get_structured_logger,
)
from analysis_guard.utils.validators import ValidationError

configure_lambda_logging()

logger = get_structured_logger('AnalysisApiHandler')

# Services (initialized once per container)
settings = load_settings()
dynamodb_client = DynamoDBClient(region=settings.region)

cache_store = CacheStore(
    table_name=settings.state_table_name,
    default_ttl_seconds=settings.cache_ttl_seconds,
    dynamodb_client=dynamodb_client
)
rate_limiter = RateLimiter(
    table_name=settings.state_table_name,
    dynamodb_client=dynamodb_client
)
budget_tracker = BudgetTracker(
    table_name=settings.state_table_name,
    ledger=BudgetLedgerRepository(
        table_name=settings.budget_ledger_table_name,
        dynamodb_client=dynamodb_client
    ),
    monthly_cap_usd=settings.monthly_budget_usd,
    input_usd_per_million=settings.input_usd_per_million,
    output_usd_per_million=settings.output_usd_per_million,
    dynamodb_client=dynamodb_client
)
single_flight = SingleFlight(
    table_name=settings.state_table_name,
    dynamodb_client=dynamodb_client,
    marker_ttl_seconds=settings.inflight_marker_ttl_seconds
)

orchestrator = AnalysisOrchestrator(
    cache_store=cache_store,
    rate_limiter=rate_limiter,
    budget_tracker=budget_tracker,
    classifier=BedrockClassifier(
        model_id=settings.classifier_model_id,
        region=settings.region
    ),
    single_flight=single_flight,
    settings=settings,
    metrics=MetricsPublisher()
)

# Seed the shared budget counter from the ledger on cold start
restored_period = budget_tracker.restore_current_period()
logger.info(
    'Analysis API handler initialized',
    operation='cold_start',
    state_table=settings.state_table_name,
    restored_month=restored_period.month_key if restored_period else None
)

ERROR_STATUS_CODES = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.BUDGET_EXCEEDED: 402,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.BUDGET_UNAVAILABLE: 503,
    ErrorKind.CLASSIFIER_UNAVAILABLE: 503,
}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    HTTP API Lambda handler for analysis operations.

    Routes:
    - POST /analyze -> analyze
    - GET /budget -> get_budget_status
    - GET /budget/summary -> get_budget_summary
    - GET /budget/check -> check_budget
    - GET /rate-limit -> check_rate_limit
    - GET /cache/stats -> get_cache_stats
    - POST /cache/lookup -> lookup_cached_analysis
    - DELETE /cache -> invalidate_cached_analysis
    - GET /health -> health_check
    """
    request_context = event.get('requestContext', {})
    http = request_context.get('http', {})
    http_method = http.get('method', '')
    path = http.get('path', '')
    source_ip = http.get('sourceIp', '')

    request_logger = get_structured_logger(
        'AnalysisApiHandler',
        request_id=request_context.get('requestId') or getattr(context, 'aws_request_id', None),
        caller_id=source_ip
    )
    request_logger.info('HTTP request received', operation='route', method=http_method, path=path)

    try:
        if http_method == 'POST' and path == '/analyze':
            return analyze(event, source_ip, request_logger)
        elif http_method == 'GET' and path == '/budget':
            return get_budget_status(request_logger)
        elif http_method == 'GET' and path == '/budget/summary':
            return get_budget_summary(event, request_logger)
        elif http_method == 'GET' and path == '/budget/check':
            return check_budget(event, request_logger)
        elif http_method == 'GET' and path == '/rate-limit':
            return check_rate_limit(source_ip)
        elif http_method == 'GET' and path == '/cache/stats':
            return success_response(200, orchestrator.get_cache_stats())
        elif http_method == 'POST' and path == '/cache/lookup':
            return lookup_cached_analysis(event)
        elif http_method == 'DELETE' and path == '/cache':
            return invalidate_cached_analysis(event, request_logger)
        elif http_method == 'GET' and path == '/health':
            return health_check(request_logger)
        else:
            return error_response(404, 'NOT_FOUND', 'Not found')

    except Exception as e:
        request_logger.error('Unhandled error', operation='route', error=e, path=path)
        return error_response(500, 'INTERNAL_ERROR', 'Internal server error')


def analyze(event: Dict[str, Any], source_ip: str, request_logger) -> Dict[str, Any]:
    """Analyse the text in the request body."""
    body, error = _text_request(event)
    if error is not None:
        return error

    text = body.get('text')
    url = body.get('url') or None

    with LoggingContext(request_logger, 'analyze', has_url=url is not None):
        outcome = asyncio.run(orchestrator.analyze(text=text, url=url, caller_identity=source_ip))

    if outcome.success:
        request_logger.info('Analysis served', operation='analyze', cached=outcome.cached)
        return success_response(200, outcome.to_dict())

    return _outcome_error_response(outcome, request_logger)


def get_budget_status(request_logger) -> Dict[str, Any]:
    """Return the current month's budget status."""
    try:
        status = orchestrator.get_budget_status()
    except BudgetUnavailableError as e:
        request_logger.error('Budget status unavailable', operation='get_budget_status', error=e)
        return error_response(503, ErrorKind.BUDGET_UNAVAILABLE.value, 'Budget status is temporarily unavailable')

    return success_response(200, status.to_dict())


def get_budget_summary(event: Dict[str, Any], request_logger) -> Dict[str, Any]:
    """Return spend over the last N months (default 6)."""
    params = event.get('queryStringParameters') or {}
    try:
        months = int(params.get('months', 6))
        summary = orchestrator.get_budget_summary(months)
    except ValueError:
        return error_response(400, ErrorKind.VALIDATION_ERROR.value, 'months must be an integer')
    except ValidationError as e:
        return error_response(400, ErrorKind.VALIDATION_ERROR.value, e.message, {'field': e.field})
    except BudgetUnavailableError as e:
        request_logger.error('Budget summary unavailable', operation='get_budget_summary', error=e)
        return error_response(503, ErrorKind.BUDGET_UNAVAILABLE.value, 'Budget status is temporarily unavailable')

    return success_response(200, summary.to_dict())


def check_budget(event: Dict[str, Any], request_logger) -> Dict[str, Any]:
    """Check spend against a percentage of the cap (?threshold=N, default 90)."""
    params = event.get('queryStringParameters') or {}
    try:
        threshold = float(params.get('threshold', ALERT_THRESHOLD_PERCENT))
        check = orchestrator.check_budget(threshold)
    except ValueError:
        return error_response(400, ErrorKind.VALIDATION_ERROR.value, 'threshold must be a number')
    except ValidationError as e:
        return error_response(400, ErrorKind.VALIDATION_ERROR.value, e.message, {'field': e.field})
    except BudgetUnavailableError as e:
        request_logger.error('Budget check unavailable', operation='check_budget', error=e)
        return error_response(503, ErrorKind.BUDGET_UNAVAILABLE.value, 'Budget status is temporarily unavailable')

    return success_response(200, check.to_dict())


def check_rate_limit(source_ip: str) -> Dict[str, Any]:
    """Count this request against the 'api' limit and report the state."""
    try:
        result = orchestrator.check_rate_limit(source_ip, route='api')
    except ValidationError as e:
        return error_response(400, ErrorKind.VALIDATION_ERROR.value, e.message, {'field': e.field})

    return success_response(200, result.to_dict(), headers=rate_limit_headers(result))


def lookup_cached_analysis(event: Dict[str, Any]) -> Dict[str, Any]:
    """Return the cached verdict for the request body, never classifying."""
    body, error = _text_request(event)
    if error is not None:
        return error

    try:
        result = orchestrator.lookup_cached_analysis(body.get('text'), body.get('url') or None)
    except ValidationError as e:
        return error_response(400, ErrorKind.VALIDATION_ERROR.value, e.message, {'field': e.field})

    return success_response(200, {
        'cached': result is not None,
        'analysis': result.to_dict() if result is not None else None,
    })


def invalidate_cached_analysis(event: Dict[str, Any], request_logger) -> Dict[str, Any]:
    """Drop the cached verdict for the request body."""
    body, error = _text_request(event)
    if error is not None:
        return error

    try:
        outcome = orchestrator.invalidate_cached_analysis(body.get('text'), body.get('url') or None)
    except ValidationError as e:
        return error_response(400, ErrorKind.VALIDATION_ERROR.value, e.message, {'field': e.field})

    if not outcome['invalidated']:
        request_logger.log_rejection('SERVICE_UNAVAILABLE', 503)
        return error_response(503, 'SERVICE_UNAVAILABLE', 'Cache is temporarily unavailable', outcome)

    request_logger.info(
        'Cache entry invalidated',
        operation='invalidate_cached_analysis',
        cache_key=outcome['cacheKey']
    )
    return success_response(200, outcome)


def health_check(request_logger) -> Dict[str, Any]:
    health = orchestrator.check_health()
    if health['status'] != 'healthy':
        request_logger.log_rejection('SERVICE_UNAVAILABLE', 503)
        return error_response(503, 'SERVICE_UNAVAILABLE', 'Shared state store is unreachable', health)

    return success_response(200, health)


def _outcome_error_response(outcome: AnalysisOutcome, request_logger) -> Dict[str, Any]:
    status_code = ERROR_STATUS_CODES.get(outcome.error_kind, 500)
    request_logger.log_rejection(outcome.error_kind.value, status_code)

    if outcome.error_kind == ErrorKind.RATE_LIMITED and outcome.rate_limit is not None:
        retry_after = outcome.rate_limit.retry_after_seconds(int(rate_limiter.clock() * 1000))
        return rate_limit_error_response(retry_after, outcome.rate_limit)

    return error_response(status_code, outcome.error_kind.value, outcome.error_message)


def _text_request(event: Dict[str, Any]):
    """
    Parse a {"text", "url"} body.

    Returns:
        Tuple of (body, None), or (None, 400 response) when the body is unusable
    """
    body = _parse_body(event)
    if body is None:
        return None, error_response(400, ErrorKind.VALIDATION_ERROR.value, 'Request body must be a JSON object')

    url = body.get('url') or None
    if url is not None and not isinstance(url, str):
        return None, error_response(400, ErrorKind.VALIDATION_ERROR.value, 'url must be a string')

    return body, None


def _parse_body(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    raw = event.get('body') or '{}'
    try:
        if event.get('isBase64Encoded'):
            raw = base64.b64decode(raw).decode('utf-8')
        body = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return body if isinstance(body, dict) else None
