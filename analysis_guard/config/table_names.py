"""
DynamoDB table name constants.

This module provides centralized table name constants to ensure consistency
across all modules and Lambda functions.
"""
import os
from typing import Mapping, Optional

# Shared state table: cache entries, rate limit counters, budget counters
# and in-flight markers, all keyed by a namespaced string.
STATE_TABLE_NAME = 'AnalysisGuardState'

# Durable monthly spend ledger
BUDGET_LEDGER_TABLE_NAME = 'BudgetLedger'

# Table name mapping for environment variable overrides
TABLE_NAME_ENV_VARS = {
    'STATE_TABLE_NAME': STATE_TABLE_NAME,
    'BUDGET_LEDGER_TABLE_NAME': BUDGET_LEDGER_TABLE_NAME,
}


def get_table_name(
    table_key: str,
    default: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None
) -> str:
    """
    Get table name from environment variable or use default constant.

    Supports both the *_TABLE_NAME convention and the shorter *_TABLE form
    used by deployment templates.

    Args:
        table_key: Environment variable key (e.g., 'STATE_TABLE_NAME')
        default: Default table name if environment variable not set
        environ: Mapping to read from (default: os.environ)

    Returns:
        Table name from environment or default

    Example:
        >>> os.environ['STATE_TABLE_NAME'] = 'AnalysisGuardState-Dev'
        >>> get_table_name('STATE_TABLE_NAME')
        'AnalysisGuardState-Dev'
    """
    if default is None:
        default = TABLE_NAME_ENV_VARS.get(table_key, '')

    if environ is None:
        environ = os.environ

    value = environ.get(table_key)
    if value:
        return value

    legacy_key = table_key.replace('_TABLE_NAME', '_TABLE')
    value = environ.get(legacy_key)
    if value:
        return value

    return default
