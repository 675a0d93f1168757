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

from studyorbit.config import SchedulerSettings  # noqa: E402
from studyorbit.core.models import ReviewableItem  # noqa: E402
from studyorbit.core.timeutil import to_iso  # noqa: E402

NOW = datetime(2024, 1, 1, 0, 0, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings():
    """Default settings, isolated from any .env file or environment."""
    return SchedulerSettings(_env_file=None)


@pytest.fixture
def now():
    """Fixed reference time: 2024-01-01T00:00:00Z."""
    return NOW


@pytest.fixture
def make_item():
    """Factory for items relative to NOW."""

    def _make(
        item_id: str = "q1",
        attempts: int = 0,
        mastery: float = 0.0,
        stability: float | None = None,
        due_in_hours: float | None = None,
        reviewed_hours_ago: float | None = None,
        last_correct: bool = True,
        **payload,
    ) -> ReviewableItem:
        data = {
            "id": item_id,
            "totalAttempts": attempts,
            "masteryScore": mastery,
            "lastWasCorrect": last_correct,
            **payload,
        }
        if stability is not None:
            data["stability"] = stability
        if due_in_hours is not None:
            data["nextReviewDate"] = to_iso(NOW + timedelta(hours=due_in_hours))
        if reviewed_hours_ago is not None:
            data["lastReviewedAt"] = to_iso(NOW - timedelta(hours=reviewed_hours_ago))
        return ReviewableItem.model_validate(data)

    return _make


@pytest.fixture
def sample_question():
    """Provide a sample multiple-choice question record."""
    return {
        "id": "q_osi_01",
        "questionText": "Which layer of the OSI model handles routing?",
        "options": {
            "A": "Physical Layer",
            "B": "Data Link Layer",
            "C": "Network Layer",
            "D": "Transport Layer",
        },
        "correctAnswer": "C",
        "lessonId": "networking-101",
        "totalAttempts": 0,
        "masteryScore": 0,
        "attemptHistory": [],
    }
