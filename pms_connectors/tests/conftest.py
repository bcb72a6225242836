"""
Pytest configuration for connector tests
"""

import pytest
import structlog

from .fixtures import *  # noqa: F401, F403


@pytest.fixture(autouse=True)
def clear_log_context():
    """Correlation ids are bound per test"""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


# Markers for different test types
def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "integration: mark test as requiring external services"
    )
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line(
        "markers", "golden: mark test as part of golden contract suite"
    )
