"""
Runtime configuration for the analysis guard.

Settings are read once from environment variables (Lambda configuration)
and validated on construction, so a misconfigured deployment fails at cold
start instead of on the first request.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional

from .table_names import (
    BUDGET_LEDGER_TABLE_NAME,
    STATE_TABLE_NAME,
    get_table_name,
)

MAX_CACHE_TTL_SECONDS = 86400
MAX_RATE_LIMIT = 1000
MAX_RATE_WINDOW_SECONDS = 86400


@dataclass(frozen=True)
class RateLimitRule:
    """
    Fixed-window limit for one route.

    Attributes:
        limit: Requests allowed per window (1-1000)
        window_seconds: Window length in seconds (1-86400)
    """

    limit: int
    window_seconds: int

    def __post_init__(self):
        if not 1 <= self.limit <= MAX_RATE_LIMIT:
            raise ValueError(
                f"limit must be between 1 and {MAX_RATE_LIMIT}, got {self.limit}"
            )
        if not 1 <= self.window_seconds <= MAX_RATE_WINDOW_SECONDS:
            raise ValueError(
                f"window_seconds must be between 1 and {MAX_RATE_WINDOW_SECONDS}, "
                f"got {self.window_seconds}"
            )


def _default_rate_limits() -> Dict[str, RateLimitRule]:
    return {
        'analyze': RateLimitRule(limit=10, window_seconds=3600),
        'api': RateLimitRule(limit=100, window_seconds=3600),
        'strict': RateLimitRule(limit=5, window_seconds=3600),
    }


@dataclass
class Settings:
    """
    Configuration for the analysis guard.

    Attributes:
        state_table_name: Shared state table (cache, counters, markers)
        budget_ledger_table_name: Durable monthly spend ledger table
        monthly_budget_usd: Monthly spending cap in USD
        cache_ttl_seconds: Default cache entry TTL (1-86400)
        rate_limits: Per-route fixed-window limits ('analyze', 'api', 'strict')
        input_usd_per_million: Classifier price per million input tokens
        output_usd_per_million: Classifier price per million output tokens
        classifier_model_id: Bedrock model used by the classifier adapter
        classifier_timeout_seconds: Upper bound for one classifier call
        max_text_length: Maximum accepted text length in characters
        inflight_marker_ttl_seconds: Lifetime of a cross-process in-flight marker
        region: AWS region
    """

    state_table_name: str = STATE_TABLE_NAME
    budget_ledger_table_name: str = BUDGET_LEDGER_TABLE_NAME
    monthly_budget_usd: Decimal = Decimal('25')
    cache_ttl_seconds: int = 3600
    rate_limits: Dict[str, RateLimitRule] = field(default_factory=_default_rate_limits)
    input_usd_per_million: Decimal = Decimal('0.25')
    output_usd_per_million: Decimal = Decimal('1.25')
    classifier_model_id: str = 'anthropic.claude-3-haiku-20240307-v1:0'
    classifier_timeout_seconds: float = 20.0
    max_text_length: int = 10000
    inflight_marker_ttl_seconds: int = 30
    region: str = 'us-east-1'

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValueError: If any parameter is outside its valid range
        """
        if self.monthly_budget_usd <= 0:
            raise ValueError(
                f"monthly_budget_usd must be positive, got {self.monthly_budget_usd}"
            )

        if not 1 <= self.cache_ttl_seconds <= MAX_CACHE_TTL_SECONDS:
            raise ValueError(
                f"cache_ttl_seconds must be between 1 and {MAX_CACHE_TTL_SECONDS}, "
                f"got {self.cache_ttl_seconds}"
            )

        for route in ('analyze', 'api'):
            if route not in self.rate_limits:
                raise ValueError(f"rate_limits is missing the '{route}' route")

        if self.input_usd_per_million < 0 or self.output_usd_per_million < 0:
            raise ValueError("classifier token prices must be non-negative")

        if self.classifier_timeout_seconds <= 0:
            raise ValueError(
                f"classifier_timeout_seconds must be positive, "
                f"got {self.classifier_timeout_seconds}"
            )

        if self.max_text_length < 1:
            raise ValueError(
                f"max_text_length must be at least 1, got {self.max_text_length}"
            )

        if self.inflight_marker_ttl_seconds < 1:
            raise ValueError(
                f"inflight_marker_ttl_seconds must be at least 1, "
                f"got {self.inflight_marker_ttl_seconds}"
            )

    def __post_init__(self):
        """Validate configuration on initialization."""
        self.validate()

    def rate_limit_for(self, route: str) -> RateLimitRule:
        """
        Get the rate limit rule for a route.

        Raises:
            KeyError: If the route has no configured rule
        """
        return self.rate_limits[route]


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_decimal(environ: Mapping[str, str], name: str, default: str) -> Decimal:
    raw = environ.get(name) or default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if not value.is_finite():
        raise ValueError(f"{name} must be finite, got {raw!r}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)

    Returns:
        Validated Settings

    Raises:
        ValueError: If a variable is malformed or out of range
    """
    if environ is None:
        environ = os.environ

    rate_limits = {}
    for route, default in _default_rate_limits().items():
        prefix = route.upper()
        rate_limits[route] = RateLimitRule(
            limit=_env_int(environ, f'{prefix}_RATE_LIMIT', default.limit),
            window_seconds=_env_int(
                environ, f'{prefix}_RATE_WINDOW_SECONDS', default.window_seconds
            ),
        )

    return Settings(
        state_table_name=get_table_name('STATE_TABLE_NAME', environ=environ),
        budget_ledger_table_name=get_table_name(
            'BUDGET_LEDGER_TABLE_NAME', environ=environ
        ),
        monthly_budget_usd=_env_decimal(environ, 'MONTHLY_BUDGET_USD', '25'),
        cache_ttl_seconds=_env_int(environ, 'CACHE_TTL_SECONDS', 3600),
        rate_limits=rate_limits,
        input_usd_per_million=_env_decimal(
            environ, 'CLASSIFIER_INPUT_USD_PER_MILLION', '0.25'
        ),
        output_usd_per_million=_env_decimal(
            environ, 'CLASSIFIER_OUTPUT_USD_PER_MILLION', '1.25'
        ),
        classifier_model_id=environ.get(
            'CLASSIFIER_MODEL_ID', 'anthropic.claude-3-haiku-20240307-v1:0'
        ),
        classifier_timeout_seconds=_env_float(
            environ, 'CLASSIFIER_TIMEOUT_SECONDS', 20.0
        ),
        max_text_length=_env_int(environ, 'MAX_TEXT_LENGTH', 10000),
        inflight_marker_ttl_seconds=_env_int(
            environ, 'INFLIGHT_MARKER_TTL_SECONDS', 30
        ),
        region=environ.get('AWS_REGION', 'us-east-1'),
    )
