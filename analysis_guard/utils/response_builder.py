"""
API Gateway (HTTP API) response helpers.

Error bodies share one shape so clients can switch on ``code``:

    {"type": "error", "code": "RATE_LIMITED", "message": "...",
     "timestamp": 1742040000000, "details": {...}}
"""
import json
import time
from decimal import Decimal
from typing import Any, Dict, Optional

from ..models import RateLimitResult

JSON_HEADERS = {'Content-Type': 'application/json'}


def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _response(
    status_code: int,
    body: Dict[str, Any],
    headers: Optional[Dict[str, str]]
) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {**JSON_HEADERS, **(headers or {})},
        'body': json.dumps(body, default=_json_default),
    }


def success_response(
    status_code: int = 200,
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    return _response(status_code, body or {}, headers)


def error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Build an error response.

    Args:
        status_code: HTTP status code
        error_code: Application error code (an ErrorKind value, NOT_FOUND,
            SERVICE_UNAVAILABLE or INTERNAL_ERROR)
        message: Human-readable error message
        details: Optional structured details
        headers: Optional extra headers

    Returns:
        API Gateway response dict
    """
    body = {
        'type': 'error',
        'code': error_code,
        'message': message,
        'timestamp': int(time.time() * 1000),
    }
    if details:
        body['details'] = details

    return _response(status_code, body, headers)


def rate_limit_headers(rate_limit: RateLimitResult) -> Dict[str, str]:
    """X-RateLimit-* headers; the reset is in epoch seconds."""
    return {
        'X-RateLimit-Limit': str(rate_limit.limit),
        'X-RateLimit-Remaining': str(rate_limit.remaining),
        'X-RateLimit-Reset': str(rate_limit.reset_time_ms // 1000),
    }


def rate_limit_error_response(
    retry_after: int,
    rate_limit: Optional[RateLimitResult] = None
) -> Dict[str, Any]:
    """
    Build the 429 response for a rate limited caller.

    Args:
        retry_after: Seconds until the window resets
        rate_limit: Limiter result, adds X-RateLimit-* headers when given

    Returns:
        API Gateway response dict with Retry-After header
    """
    headers = {'Retry-After': str(retry_after)}
    details: Dict[str, Any] = {'retryAfter': retry_after}

    if rate_limit is not None:
        headers.update(rate_limit_headers(rate_limit))
        details['rateLimit'] = rate_limit.to_dict()

    return error_response(
        429,
        'RATE_LIMITED',
        f'Rate limit exceeded. Retry after {retry_after} seconds.',
        details=details,
        headers=headers
    )
