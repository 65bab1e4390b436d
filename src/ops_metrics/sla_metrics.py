"""
SLA Metrics and Framework Module

This module defines the SLA framework, per-record compliance and overdue
classification, resolution-time statistics and the key metrics summary.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .config import Config
from .models import (
    CategoryResolutionStat,
    NormalizedRecord,
    RecordKind,
    SLAOutcome,
    SLASummary,
    STATUS_VOCABULARY,
)
from .normalizer import records_to_frame

logger = logging.getLogger(__name__)

# Statuses that end a record's lifecycle successfully.
RESOLVED_STATUSES = {
    RecordKind.REPORT: {"resolved"},
    RecordKind.COLLECTION: {"completed"},
}

# Statuses that take a record out of SLA tracking altogether.
EXCLUDED_STATUSES = {
    RecordKind.REPORT: {"rejected"},
    RecordKind.COLLECTION: {"cancelled"},
}

# Terminal but unsuccessful: never overdue, never compliant.
FAILED_STATUSES = {
    RecordKind.REPORT: set(),
    RecordKind.COLLECTION: {"missed"},
}

UNCATEGORIZED = "uncategorized"


def _hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 3600.0


def _pct(numerator: int, denominator: int) -> Optional[float]:
    if denominator <= 0:
        return None
    return round(numerator / denominator * 100, 1)


class SLAMetrics:
    """SLA metrics calculation over normalized records."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()

    @staticmethod
    def record_kind(records: Sequence[NormalizedRecord]) -> Optional[RecordKind]:
        """
        Return the single kind shared by all records.

        Raises:
            ValueError: If reports and collection jobs are mixed
        """
        kinds = {r.kind for r in records}
        if len(kinds) > 1:
            raise ValueError("SLA metrics cannot mix report and collection records")
        return next(iter(kinds), None)

    def classify(self, record: NormalizedRecord, now: datetime) -> SLAOutcome:
        """
        Classify one record against the SLA target.

        Args:
            record: Normalized record
            now: Point in time used for still-open records

        Returns:
            SLAOutcome for the record
        """
        target = self.config.sla_target_hours
        assigned_at = record.assigned_at
        status = record.status

        anchor = assigned_at if assigned_at is not None else record.created_at
        age_hours = _hours_between(anchor, now)
        if age_hours is not None:
            age_hours = round(age_hours, 2)

        eligible = assigned_at is not None and status not in EXCLUDED_STATUSES[record.kind]
        if not eligible:
            return SLAOutcome(record.id, eligible=False, compliant=None, overdue=False, age_hours=age_hours)

        if status in RESOLVED_STATUSES[record.kind]:
            elapsed = _hours_between(assigned_at, record.updated_at)
            compliant = None if elapsed is None or elapsed < 0 else elapsed <= target
            return SLAOutcome(record.id, eligible=True, compliant=compliant, overdue=False, age_hours=age_hours)

        if status in FAILED_STATUSES[record.kind]:
            return SLAOutcome(record.id, eligible=True, compliant=False, overdue=False, age_hours=age_hours)

        elapsed = _hours_between(assigned_at, now)
        if elapsed < 0:
            logger.debug("Record %s is assigned after the reference instant", record.id)
            return SLAOutcome(record.id, eligible=True, compliant=None, overdue=False, age_hours=age_hours)
        return SLAOutcome(
            record.id,
            eligible=True,
            compliant=elapsed <= target,
            overdue=elapsed > target,
            age_hours=age_hours,
        )

    def evaluate(self, records: Sequence[NormalizedRecord], now: datetime) -> List[SLAOutcome]:
        """Classify every record; the vocabularies may not be mixed."""
        self.record_kind(records)
        return [self.classify(r, now) for r in records]

    @staticmethod
    def _resolution_frame(records: Sequence[NormalizedRecord]) -> pd.DataFrame:
        """Resolved records with a non-negative creation-to-update duration."""
        columns = ["category", "resolution_hours"]
        kind = SLAMetrics.record_kind(records)
        if kind is None:
            return pd.DataFrame(columns=columns)

        df = records_to_frame(list(records))
        df = df[df["status"].isin(RESOLVED_STATUSES[kind])
                & df["created_at"].notna()
                & df["updated_at"].notna()].copy()
        if df.empty:
            return pd.DataFrame(columns=columns)

        df["resolution_hours"] = [
            _hours_between(created, updated) for created, updated in zip(df["created_at"], df["updated_at"])
        ]
        df = df[df["resolution_hours"] >= 0].copy()
        df["category"] = df["category"].fillna(UNCATEGORIZED)
        return df[columns]

    @staticmethod
    def category_resolution_times(records: Sequence[NormalizedRecord]) -> List[CategoryResolutionStat]:
        """
        Average creation-to-update time per category for resolved records.

        Returns:
            One entry per category with at least one sample, slowest first
        """
        df = SLAMetrics._resolution_frame(records)
        if df.empty:
            return []

        summary = df.groupby("category").agg(
            sample_count=("resolution_hours", "count"),
            average=("resolution_hours", "mean"),
        )

        stats = [
            CategoryResolutionStat(
                category=str(category),
                sample_count=int(row["sample_count"]),
                average_resolution_hours=round(float(row["average"]), 2),
            )
            for category, row in summary.iterrows()
        ]
        return sorted(stats, key=lambda s: (-s.average_resolution_hours, s.category))

    def _on_time_rate(self, records: Sequence[NormalizedRecord]) -> Optional[float]:
        tolerance = self.config.on_time_tolerance_minutes * 60
        measured = [r for r in records if r.scheduled_at is not None and r.occurred_at is not None]
        on_time = sum(
            1 for r in measured
            if abs((r.occurred_at - r.scheduled_at).total_seconds()) <= tolerance
        )
        return _pct(on_time, len(measured))

    def calculate_key_metrics(self, records: Sequence[NormalizedRecord], now: datetime) -> SLASummary:
        """
        Calculate key SLA performance metrics.

        Args:
            records: Normalized records of a single kind
            now: Reference instant for open records

        Returns:
            SLASummary; every rate is None when its denominator is zero
        """
        kind = self.record_kind(records)
        outcomes = self.evaluate(records, now)

        eligible = [o for o in outcomes if o.eligible]
        measured = [o for o in eligible if o.compliant is not None]
        compliant_count = sum(1 for o in measured if o.compliant)
        overdue_count = sum(1 for o in eligible if o.overdue)

        categories = self.category_resolution_times(records)
        durations = self._resolution_frame(records)["resolution_hours"]
        average_resolution = None
        if not durations.empty:
            average_resolution = round(float(durations.mean()), 2)

        status_counts: Dict[str, int] = {}
        severity_counts: Dict[str, int] = {}
        for record in records:
            status = record.status or "unknown"
            status_counts[status] = status_counts.get(status, 0) + 1
            if record.severity:
                severity_counts[record.severity] = severity_counts.get(record.severity, 0) + 1

        known_statuses = STATUS_VOCABULARY[kind] if kind else ()
        unknown = sorted(s for s in status_counts if s not in known_statuses)
        if unknown:
            logger.debug("Statuses outside the %s vocabulary: %s", kind.value, unknown)

        completion_rate = None
        missed_count = 0
        on_time_rate = None
        if kind is RecordKind.COLLECTION:
            completion_rate = _pct(status_counts.get("completed", 0), len(records))
            missed_count = status_counts.get("missed", 0)
            on_time_rate = self._on_time_rate(records)

        return SLASummary(
            kind=kind,
            eligible_count=len(eligible),
            compliant_count=compliant_count,
            compliance_rate=_pct(compliant_count, len(measured)),
            overdue_count=overdue_count,
            overdue_percentage=_pct(overdue_count, len(eligible)),
            category_resolution_times=categories,
            average_resolution_hours=average_resolution,
            status_counts=dict(sorted(status_counts.items())),
            severity_counts=dict(sorted(severity_counts.items())),
            completion_rate=completion_rate,
            missed_count=missed_count,
            on_time_rate=on_time_rate,
        )

    @staticmethod
    def get_outcome_frame(outcomes: Sequence[SLAOutcome]) -> pd.DataFrame:
        """
        Get per-record outcomes as a DataFrame.

        Returns:
            DataFrame indexed by record id
        """
        columns = ["record_id", "eligible", "compliant", "overdue", "age_hours"]
        frame = pd.DataFrame(
            [[o.record_id, o.eligible, o.compliant, o.overdue, o.age_hours] for o in outcomes],
            columns=columns,
        )
        return frame.set_index("record_id")


class SLAFramework:
    """SLA framework definition and utilities."""

    METRIC_DEFINITIONS = {
        'eligible': 'Record has an assignment timestamp and is not rejected/cancelled',
        'compliant': 'Resolved: update within target of assignment. Open: age since assignment within target',
        'overdue': 'Eligible, still open, and assigned longer ago than the target',
        'compliance_rate': 'Compliant / eligible records with a measurable outcome, None when none',
        'overdue_percentage': 'Overdue / eligible records, None when none are eligible',
        'resolution_hours': 'Hours from creation to last update for resolved records',
        'completion_rate': 'Completed / all collection jobs',
        'on_time_rate': 'Collection jobs started within tolerance of their scheduled time',
    }

    STATUS_CATEGORIES = {
        'resolved': 'resolved (reports), completed (collections)',
        'excluded': 'rejected (reports), cancelled (collections)',
        'failed': 'missed (collections): terminal, never compliant, never overdue',
        'open': 'every other status',
    }

    @classmethod
    def get_framework_summary(cls, config: Optional[Config] = None) -> str:
        """Get formatted framework summary."""
        config = config or Config()
        summary = f"""
SLA FRAMEWORK SUMMARY

Target: {config.sla_target_hours:.0f} hours from assignment

Core Metrics:
"""
        for metric, definition in cls.METRIC_DEFINITIONS.items():
            summary += f"  • {metric}: {definition}\n"

        summary += "\nStatus Categories:\n"
        for category, definition in cls.STATUS_CATEGORIES.items():
            summary += f"  • {category}: {definition}\n"

        return summary


if __name__ == "__main__":
    print(SLAFramework.get_framework_summary())
