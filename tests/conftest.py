"""Pytest configuration and fixtures."""

import shutil
import tempfile

import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_path = tempfile.mkdtemp()
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def sample_entries():
    """Stored ledger rows for testing."""
    return [
        {"date": "2024-03-10", "project": "Alpha", "branch": "main", "minutes": 30.0},
        {"date": "2024-03-12", "project": "Alpha", "branch": "feature-x", "minutes": 15.5},
        {"date": "2024-03-13", "project": "Beta", "branch": "main", "minutes": 42.25},
        {"date": "2024-02-28", "project": "Beta", "branch": "develop", "minutes": 60.0},
        {"date": "2023-12-31", "project": "Alpha", "branch": "main", "minutes": 120.0},
    ]


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "unit: mark test as unit test")
