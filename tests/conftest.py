"""
Shared fixtures for complaint triage tests
"""
from datetime import datetime, timedelta, timezone

import pytest

from civic_triage.models import Complaint, Report, Severity

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def make_report():
    """Factory for reports around the Main Street pothole"""
    def _make(**overrides) -> Report:
        data = {
            "reporter_id": "citizen-1",
            "description": "pothole on Main St",
            "latitude": 12.90,
            "longitude": 77.60,
            "category": "Infrastructure",
            "severity": Severity.MEDIUM,
            "submitted_at": T0,
        }
        data.update(overrides)
        return Report(**data)
    return _make


@pytest.fixture
def make_complaint():
    """Factory for open complaints"""
    def _make(**overrides) -> Complaint:
        data = {
            "description": "pothole on Main St",
            "latitude": 12.90,
            "longitude": 77.60,
            "category": "Infrastructure",
            "severity": Severity.MEDIUM,
            "report_ids": ["r-1"],
            "reporter_ids": ["citizen-1"],
            "created_at": T0,
            "updated_at": T0,
        }
        data.update(overrides)
        return Complaint(**data)
    return _make
