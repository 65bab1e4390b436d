"""Tests for SLA compliance, overdue tracking and resolution times."""

from datetime import timedelta

import pytest

from ops_metrics.config import Config
from ops_metrics.models import RecordKind
from ops_metrics.normalizer import normalize
from ops_metrics.sla_metrics import SLAFramework, SLAMetrics


@pytest.fixture
def metrics(config):
    return SLAMetrics(config)


def test_unassigned_records_are_not_eligible(metrics, config, make_report, reference_instant):
    records = normalize([make_report("new") for _ in range(3)], config)
    summary = metrics.calculate_key_metrics(records, reference_instant)

    assert summary.eligible_count == 0
    assert summary.compliance_rate is None
    assert summary.overdue_count == 0
    assert summary.overdue_percentage is None


def test_open_past_target_is_overdue(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("in_progress", assigned_hours_ago=200)], config)
    outcome = metrics.classify(record, reference_instant)

    assert outcome.eligible
    assert outcome.overdue
    assert outcome.compliant is False
    assert outcome.age_hours == 200.0


def test_open_within_target_is_compliant(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("assigned", assigned_hours_ago=10)], config)
    outcome = metrics.classify(record, reference_instant)
    assert outcome.compliant is True
    assert not outcome.overdue


def test_resolved_within_target_is_compliant(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("resolved", assigned_hours_ago=300, resolved_after_hours=100)], config)
    outcome = metrics.classify(record, reference_instant)
    assert outcome.compliant is True
    assert not outcome.overdue


def test_resolved_late_is_not_compliant(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("resolved", assigned_hours_ago=300, resolved_after_hours=200)], config)
    assert metrics.classify(record, reference_instant).compliant is False


def test_resolved_without_update_is_unmeasured(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("resolved", assigned_hours_ago=50)], config)
    outcome = metrics.classify(record, reference_instant)
    assert outcome.eligible
    assert outcome.compliant is None


def test_update_before_assignment_is_unmeasured(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("resolved", assigned_hours_ago=50, resolved_after_hours=-5)], config)
    assert metrics.classify(record, reference_instant).compliant is None


def test_assignment_in_future_is_unmeasured(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("assigned", assigned_hours_ago=-3)], config)
    outcome = metrics.classify(record, reference_instant)
    assert outcome.compliant is None
    assert not outcome.overdue


def test_rejected_is_excluded(metrics, config, make_report, reference_instant):
    [record] = normalize([make_report("rejected", assigned_hours_ago=500)], config)
    outcome = metrics.classify(record, reference_instant)
    assert not outcome.eligible
    assert not outcome.overdue


def test_rates(metrics, config, make_report, reference_instant):
    records = normalize([
        make_report("in_progress", assigned_hours_ago=200),
        make_report("assigned", assigned_hours_ago=10),
        make_report("resolved", assigned_hours_ago=300, resolved_after_hours=100),
        make_report("resolved", assigned_hours_ago=300),
        make_report("new"),
    ], config)
    summary = metrics.calculate_key_metrics(records, reference_instant)

    assert summary.kind is RecordKind.REPORT
    assert summary.eligible_count == 4
    assert summary.compliant_count == 2
    assert summary.compliance_rate == pytest.approx(66.7)
    assert summary.overdue_count == 1
    assert summary.overdue_percentage == 25.0
    assert summary.status_counts == {"assigned": 1, "in_progress": 1, "new": 1, "resolved": 2}
    assert summary.completion_rate is None


def test_configurable_target(make_report, reference_instant):
    metrics = SLAMetrics(Config(overrides={"sla_target_hours": 24}))
    [record] = normalize([make_report("in_progress", assigned_hours_ago=30)])
    assert metrics.classify(record, reference_instant).overdue


def test_mixed_kinds_raise(metrics, config, make_report, make_collection, reference_instant):
    records = normalize([make_report("new"), make_collection("scheduled")], config)
    with pytest.raises(ValueError):
        metrics.calculate_key_metrics(records, reference_instant)


def test_empty_input(metrics, reference_instant):
    summary = metrics.calculate_key_metrics([], reference_instant)
    assert summary.kind is None
    assert summary.compliance_rate is None
    assert summary.overdue_percentage is None
    assert summary.average_resolution_hours is None
    assert summary.category_resolution_times == []


def test_category_resolution_times(config, reference_instant):
    created = reference_instant - timedelta(days=10)

    def report(record_id, category, hours, status="resolved"):
        return {
            "id": record_id,
            "status": status,
            "category": category,
            "createdAt": created.isoformat(),
            "updatedAt": (created + timedelta(hours=hours)).isoformat(),
        }

    records = normalize([
        report("a", "waste", 10),
        report("b", "waste", 20),
        report("c", "water", 40),
        report("d", None, 5),
        report("e", "water", 1000, status="in_progress"),
        report("f", "roads", -2),
    ], config)
    stats = SLAMetrics.category_resolution_times(records)

    assert [(s.category, s.sample_count, s.average_resolution_hours) for s in stats] == [
        ("water", 1, 40.0),
        ("waste", 2, 15.0),
        ("uncategorized", 1, 5.0),
    ]


def test_average_resolution_hours(metrics, config, reference_instant):
    created = reference_instant - timedelta(days=10)
    records = normalize([
        {"id": "a", "status": "resolved", "category": "waste", "createdAt": created.isoformat(),
         "updatedAt": (created + timedelta(hours=10)).isoformat()},
        {"id": "b", "status": "resolved", "category": "water", "createdAt": created.isoformat(),
         "updatedAt": (created + timedelta(hours=40)).isoformat()},
    ], config)
    assert metrics.calculate_key_metrics(records, reference_instant).average_resolution_hours == 25.0


def test_average_resolution_uses_raw_durations(metrics, config, reference_instant):
    created = reference_instant - timedelta(days=1)

    def resolved(record_id, category, seconds):
        return {"id": record_id, "status": "resolved", "category": category, "createdAt": created.isoformat(),
                "updatedAt": (created + timedelta(seconds=seconds)).isoformat()}

    records = normalize([resolved("a1", "a", 21.6), resolved("a2", "a", 21.6), resolved("b1", "b", 3.6)], config)
    summary = metrics.calculate_key_metrics(records, reference_instant)

    # Category averages round to 0.01 and 0.0; the three raw samples average 0.0043.
    assert [s.average_resolution_hours for s in summary.category_resolution_times] == [0.01, 0.0]
    assert summary.average_resolution_hours == 0.0


def test_collection_metrics(metrics, config, make_collection, reference_instant):
    records = normalize([
        make_collection("completed", start_delay_minutes=10,
                        currentAssignment={"createdAt": (reference_instant - timedelta(hours=48)).isoformat()},
                        updatedAt=(reference_instant - timedelta(hours=20)).isoformat()),
        make_collection("completed", start_delay_minutes=45),
        make_collection("missed", currentAssignment={"createdAt": (reference_instant - timedelta(hours=400)).isoformat()}),
        make_collection("cancelled"),
    ], config)
    summary = metrics.calculate_key_metrics(records, reference_instant)

    assert summary.kind is RecordKind.COLLECTION
    assert summary.completion_rate == 50.0
    assert summary.missed_count == 1
    assert summary.on_time_rate == 50.0
    # the missed job is eligible, never compliant and never overdue
    assert summary.eligible_count == 2
    assert summary.compliant_count == 1
    assert summary.overdue_count == 0


def test_outcome_frame(metrics, config, make_report, reference_instant):
    records = normalize([make_report("in_progress", assigned_hours_ago=200, id="late")], config)
    frame = SLAMetrics.get_outcome_frame(metrics.evaluate(records, reference_instant))
    assert bool(frame.loc["late", "overdue"]) is True


def test_framework_summary(config):
    summary = SLAFramework.get_framework_summary(config)
    assert "168 hours" in summary
    assert "overdue" in summary
