"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.insights.config import InsightsConfig
from src.insights.store import DataFrameSampleStore


@pytest.fixture
def now():
    """Reference time the fixtures build their samples around."""
    return datetime.now(timezone.utc)


@pytest.fixture
def store():
    """Empty in-memory sample store."""
    return DataFrameSampleStore()


@pytest.fixture
def insights_config():
    """Configuration for tests (no real database is contacted)."""
    return InsightsConfig(
        postgres_host="localhost",
        postgres_port=5432,
        postgres_database="test_db",
        postgres_user="test_user",
        postgres_password="test_password",
    )


@pytest.fixture
def hourly_system_rows(now):
    """Build system_metrics rows, one per hour, the last value being the newest."""

    def build(column, values):
        count = len(values)
        return [
            {"timestamp": now - timedelta(hours=count - 1 - i), column: value}
            for i, value in enumerate(values)
        ]

    return build


@pytest.fixture
def smart_rows(now):
    """Build daily SMART rows for one disk, the last row being the newest.

    Any attribute may be given as a scalar or as a list with one value per row.
    """

    def build(disk_name, count, **attributes):
        defaults = {
            "temperature": 35.0,
            "power_on_hours": 1000,
            "reallocated_sectors": 0,
            "pending_sectors": 0,
            "health_status": "PASSED",
        }
        defaults.update(attributes)
        rows = []
        for i in range(count):
            row = {
                "timestamp": now - timedelta(days=count - 1 - i, minutes=5),
                "disk_name": disk_name,
            }
            for key, value in defaults.items():
                row[key] = value[i] if isinstance(value, list) else value
            rows.append(row)
        return rows

    return build
