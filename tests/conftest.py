"""Shared fixtures for Business Manager tests."""

from datetime import date, datetime

import pytest

from src.config import get_settings
from src.models.business import Job


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every local file at a temporary directory."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("RESEND_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def job_a():
    """One-off job with a deadline two days after its date."""
    return Job(
        id="job-a",
        title="Deliver cake",
        date=date(2024, 1, 10),
        deadline=datetime(2024, 1, 12, 9, 0),
        gross_income="150000",
        expenses="40000",
        remind_for_deadline=True,
    )


@pytest.fixture
def job_b():
    """Weekly job anchored on Monday 2024-01-01, with 2024-01-15 suppressed."""
    return Job(
        id="job-b",
        title="Weekly cleaning",
        date=date(2024, 1, 1),
        deadline=datetime(2024, 1, 1, 17, 0),
        gross_income=100,
        expenses=20,
        is_recurring=True,
        exceptions=["2024-01-15"],
        remind_for_deadline=True,
    )
