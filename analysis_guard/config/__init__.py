"""
Configuration for table names and runtime settings.
"""
from .settings import RateLimitRule, Settings, load_settings
from .table_names import (
    BUDGET_LEDGER_TABLE_NAME,
    STATE_TABLE_NAME,
    get_table_name,
)

__all__ = [
    'RateLimitRule',
    'Settings',
    'load_settings',
    'BUDGET_LEDGER_TABLE_NAME',
    'STATE_TABLE_NAME',
    'get_table_name',
]
