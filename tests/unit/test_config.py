"""
Unit tests for settings loading and table name resolution.
"""
import pytest
from decimal import Decimal

from analysis_guard.config import (
    BUDGET_LEDGER_TABLE_NAME,
    STATE_TABLE_NAME,
    RateLimitRule,
    Settings,
    get_table_name,
    load_settings,
)


class TestLoadSettings:
    """Test Settings construction from environment mappings."""

    def test_defaults_from_empty_environment(self):
        """Test every setting falls back to its default."""
        settings = load_settings({})

        assert settings.state_table_name == STATE_TABLE_NAME
        assert settings.budget_ledger_table_name == BUDGET_LEDGER_TABLE_NAME
        assert settings.monthly_budget_usd == Decimal('25')
        assert settings.cache_ttl_seconds == 3600
        assert settings.rate_limit_for('analyze') == RateLimitRule(10, 3600)
        assert settings.rate_limit_for('api') == RateLimitRule(100, 3600)
        assert settings.rate_limit_for('strict') == RateLimitRule(5, 3600)
        assert settings.input_usd_per_million == Decimal('0.25')
        assert settings.output_usd_per_million == Decimal('1.25')
        assert settings.classifier_timeout_seconds == 20.0
        assert settings.max_text_length == 10000
        assert settings.inflight_marker_ttl_seconds == 30
        assert settings.region == 'us-east-1'

    def test_overrides_from_environment(self):
        settings = load_settings({
            'STATE_TABLE_NAME': 'State-prod',
            'MONTHLY_BUDGET_USD': '100.50',
            'ANALYZE_RATE_LIMIT': '3',
            'ANALYZE_RATE_WINDOW_SECONDS': '60',
            'CLASSIFIER_TIMEOUT_SECONDS': '5.5',
            'AWS_REGION': 'eu-west-1',
        })

        assert settings.state_table_name == 'State-prod'
        assert settings.monthly_budget_usd == Decimal('100.50')
        assert settings.rate_limit_for('analyze') == RateLimitRule(3, 60)
        assert settings.classifier_timeout_seconds == 5.5
        assert settings.region == 'eu-west-1'

    def test_malformed_integer_raises(self):
        with pytest.raises(ValueError, match='CACHE_TTL_SECONDS'):
            load_settings({'CACHE_TTL_SECONDS': 'soon'})

    def test_out_of_range_cache_ttl_raises(self):
        with pytest.raises(ValueError, match='cache_ttl_seconds'):
            load_settings({'CACHE_TTL_SECONDS': '90000'})

    def test_non_positive_budget_raises(self):
        with pytest.raises(ValueError, match='monthly_budget_usd'):
            load_settings({'MONTHLY_BUDGET_USD': '0'})

    def test_rate_limit_out_of_range_raises(self):
        with pytest.raises(ValueError, match='limit'):
            load_settings({'API_RATE_LIMIT': '1001'})

    def test_missing_route_rule_raises(self):
        with pytest.raises(ValueError, match="'api'"):
            Settings(rate_limits={'analyze': RateLimitRule(10, 3600)})


class TestTableNames:
    """Test table name resolution."""

    def test_table_name_env_var(self):
        assert get_table_name('STATE_TABLE_NAME', environ={'STATE_TABLE_NAME': 'S-dev'}) == 'S-dev'

    def test_legacy_table_env_var(self):
        """Test the shorter *_TABLE form is honoured."""
        environ = {'BUDGET_LEDGER_TABLE': 'Ledger-legacy'}

        assert get_table_name('BUDGET_LEDGER_TABLE_NAME', environ=environ) == 'Ledger-legacy'

    def test_default_constant(self):
        assert get_table_name('STATE_TABLE_NAME', environ={}) == STATE_TABLE_NAME
