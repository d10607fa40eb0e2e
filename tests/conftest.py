"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """A fixed reference time."""
    return datetime(2025, 3, 1, 9, 0, 0, tzinfo=UTC)


@pytest.fixture
def sample_response(now):
    """Provide a valid raw response record."""
    return {
        "object_id": "lex-001",
        "component": "LEX",
        "correct": True,
        "cue_level": 0,
        "response_time_ms": 2400,
        "timestamp": now.isoformat(),
        "session_id": "session-1",
    }


@pytest.fixture
def sample_candidates():
    """Provide a few candidate objects with varied signals."""
    return [
        {
            "object_id": "lex-001",
            "content": "patient",
            "component": "LEX",
            "frequency": 0.9,
            "domain_tags": ["medical"],
            "base_difficulty": -1.0,
            "relational_density": 0.6,
            "contextual_relevance": 0.8,
        },
        {
            "object_id": "lex-002",
            "content": "prognosis",
            "component": "LEX",
            "frequency_rank": 5000,
            "domain_tags": ["medical"],
            "base_difficulty": 2.0,
            "relational_density": 0.2,
        },
        {
            "object_id": "lex-003",
            "content": "weather",
            "component": "LEX",
            "frequency": 0.5,
            "domain_tags": ["general"],
            "base_difficulty": 0.0,
        },
    ]


def make_responses(component, errors, total, start, session_prefix="s"):
    """Build `total` response records for a component with `errors` incorrect."""
    records = []
    for i in range(total):
        records.append(
            {
                "object_id": f"{component.lower()}-{i:03d}",
                "component": component,
                "correct": i >= errors,
                "cue_level": 0,
                "response_time_ms": 3000,
                "timestamp": (start + timedelta(minutes=i)).isoformat(),
                "session_id": f"{session_prefix}{i % 4}",
            }
        )
    return records


@pytest.fixture
def response_factory():
    """Expose make_responses to tests."""
    return make_responses
