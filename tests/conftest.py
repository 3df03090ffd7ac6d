"""
Pytest configuration and fixtures.
"""
import os
import sys

import pytest
from moto import mock_aws

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from analysis_guard.data_access import BudgetLedgerRepository, DynamoDBClient

STATE_TABLE = 'AnalysisGuardState-test'
LEDGER_TABLE = 'BudgetLedger-test'

# 2025-03-15T12:00:00Z
MID_MARCH_2025 = 1742040000.0


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, now: float = MID_MARCH_2025):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def aws_credentials():
    """Mock AWS credentials for testing."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture(scope="session", autouse=True)
def env_vars():
    """Set up environment variables for tests."""
    os.environ["AWS_REGION"] = "us-east-1"
    os.environ["STATE_TABLE_NAME"] = STATE_TABLE
    os.environ["BUDGET_LEDGER_TABLE_NAME"] = LEDGER_TABLE
    os.environ["MONTHLY_BUDGET_USD"] = "25"
    os.environ["LOG_LEVEL"] = "INFO"


@pytest.fixture
def clock():
    """Clock fixed at 2025-03-15T12:00:00Z."""
    return FakeClock()


@pytest.fixture
def dynamodb_tables(aws_credentials):
    """Create the state and ledger tables in moto's DynamoDB."""
    with mock_aws():
        client = DynamoDBClient(region='us-east-1')

        client.dynamodb.create_table(
            TableName=STATE_TABLE,
            KeySchema=[{'AttributeName': 'key', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'key', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )

        client.dynamodb.create_table(
            TableName=LEDGER_TABLE,
            KeySchema=[{'AttributeName': 'monthYear', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'monthYear', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )

        yield client


@pytest.fixture
def ledger(dynamodb_tables):
    return BudgetLedgerRepository(LEDGER_TABLE, dynamodb_tables)
