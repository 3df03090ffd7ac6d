"""
Input validation utilities for analysis requests and guard parameters.
"""
import math
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from urllib.parse import urlparse

MAX_URL_LENGTH = 2048
MAX_IDENTIFIER_LENGTH = 256
MAX_TTL_SECONDS = 86400


class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
        """
        super().__init__(message)
        self.field = field
        self.message = message


def validate_text(text: str, max_length: int = 10000, field_name: str = 'text') -> None:
    """
    Validate text submitted for analysis.

    Args:
        text: Text to validate
        max_length: Maximum length in characters
        field_name: Name of the field for error messages

    Raises:
        ValidationError: If text is missing, blank or too long
    """
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(f'{field_name} is required', field=field_name)

    if len(text) > max_length:
        raise ValidationError(
            f'{field_name} must be at most {max_length} characters, got {len(text)}',
            field=field_name
        )


def validate_url(url: Optional[str], field_name: str = 'url') -> None:
    """
    Validate an optional source URL.

    Empty values are accepted and mean "no URL".

    Args:
        url: URL to validate
        field_name: Name of the field for error messages

    Raises:
        ValidationError: If URL is not an absolute http(s) URL
    """
    if not url:
        return

    if not isinstance(url, str) or len(url) > MAX_URL_LENGTH:
        raise ValidationError(
            f'{field_name} must be at most {MAX_URL_LENGTH} characters',
            field=field_name
        )

    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValidationError(f'{field_name} must be a valid http(s) URL', field=field_name)


def validate_identifier(identifier: str, field_name: str = 'identifier') -> None:
    """
    Validate a caller identity used for rate limiting.

    Raises:
        ValidationError: If identifier is empty or too long
    """
    if not isinstance(identifier, str) or not identifier:
        raise ValidationError(f'{field_name} is required', field=field_name)

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f'{field_name} must be at most {MAX_IDENTIFIER_LENGTH} characters',
            field=field_name
        )


def validate_ttl_seconds(ttl_seconds: int, field_name: str = 'ttl_seconds') -> None:
    """
    Validate a cache TTL.

    Raises:
        ValidationError: If TTL is not an integer between 1 and 86400
    """
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int):
        raise ValidationError(f'{field_name} must be an integer', field=field_name)

    if not 1 <= ttl_seconds <= MAX_TTL_SECONDS:
        raise ValidationError(
            f'{field_name} must be between 1 and {MAX_TTL_SECONDS}, got {ttl_seconds}',
            field=field_name
        )


def validate_amount(
    amount: Union[int, float, Decimal],
    field_name: str = 'amount'
) -> Decimal:
    """
    Validate a cost amount and convert it to Decimal.

    Floats go through str() so 0.1 becomes Decimal('0.1') rather than its
    binary expansion.

    Args:
        amount: Amount in USD
        field_name: Name of the field for error messages

    Returns:
        Amount as Decimal

    Raises:
        ValidationError: If amount is negative, not finite or not a number
    """
    if isinstance(amount, bool):
        raise ValidationError(f'{field_name} must be a number', field=field_name)

    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValidationError(f'{field_name} must be finite', field=field_name)

    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field_name} must be a number', field=field_name) from None

    if not value.is_finite():
        raise ValidationError(f'{field_name} must be finite', field=field_name)

    if value < 0:
        raise ValidationError(
            f'{field_name} must be non-negative, got {value}',
            field=field_name
        )

    return value


def validate_threshold(
    threshold: Union[int, float, Decimal],
    field_name: str = 'threshold'
) -> Decimal:
    """
    Validate a budget threshold percentage and convert it to Decimal.

    Raises:
        ValidationError: If threshold is outside 0-100
    """
    value = validate_amount(threshold, field_name=field_name)

    if value > 100:
        raise ValidationError(
            f'{field_name} must be at most 100, got {value}',
            field=field_name
        )

    return value


def validate_rate_limit(limit: int, window_seconds: int) -> None:
    """
    Validate rate limit parameters.

    Raises:
        ValidationError: If limit is outside 1-1000 or window outside 1-86400
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= 1000:
        raise ValidationError('limit must be an integer between 1 and 1000', field='limit')

    if (
        isinstance(window_seconds, bool)
        or not isinstance(window_seconds, int)
        or not 1 <= window_seconds <= 86400
    ):
        raise ValidationError(
            'window_seconds must be an integer between 1 and 86400',
            field='window_seconds'
        )
