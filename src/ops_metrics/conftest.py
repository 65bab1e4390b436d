"""
Shared pytest fixtures for the metrics engine tests.

Provides:
  - A Config with the stock business rules
  - A fixed reference instant (Sunday 2024-03-10 12:00, Africa/Kigali)
  - Raw record builders for reports and collection jobs
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from ops_metrics.config import Config

KIGALI = ZoneInfo("Africa/Kigali")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config():
    return Config(overrides={
        "timezone": "Africa/Kigali",
        "sla_target_hours": 168,
        "week_start": "sunday",
    })


@pytest.fixture
def reference_instant():
    return datetime(2024, 3, 10, 12, 0, tzinfo=KIGALI)


@pytest.fixture
def make_report(reference_instant):
    """Build a raw report dict; ``assigned_hours_ago`` adds a currentAssignment block."""
    counter = {"n": 0}

    def _make(status="new", assigned_hours_ago=None, resolved_after_hours=None, **fields):
        counter["n"] += 1
        raw = {
            "id": fields.pop("id", f"r{counter['n']}"),
            "status": status,
            "createdAt": fields.pop("createdAt", (reference_instant - timedelta(days=20)).isoformat()),
        }
        if assigned_hours_ago is not None:
            assigned_at = reference_instant - timedelta(hours=assigned_hours_ago)
            raw["currentAssignment"] = {"createdAt": assigned_at.isoformat(), "assignee": {"id": "officer-1"}}
            if resolved_after_hours is not None:
                raw["updatedAt"] = (assigned_at + timedelta(hours=resolved_after_hours)).isoformat()
        raw.update(fields)
        return raw

    return _make


@pytest.fixture
def make_collection(reference_instant):
    """Build a raw collection job dict scheduled ``hours_ago`` before the reference instant."""
    counter = {"n": 0}

    def _make(status="scheduled", hours_ago=24, start_delay_minutes=None, **fields):
        counter["n"] += 1
        scheduled = reference_instant - timedelta(hours=hours_ago)
        raw = {
            "id": fields.pop("id", f"c{counter['n']}"),
            "kind": "collection",
            "status": status,
            "scheduledTime": scheduled.isoformat(),
            "createdAt": (scheduled - timedelta(days=2)).isoformat(),
        }
        if start_delay_minutes is not None:
            raw["actualStartTime"] = (scheduled + timedelta(minutes=start_delay_minutes)).isoformat()
        raw.update(fields)
        return raw

    return _make
