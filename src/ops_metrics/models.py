"""
Data Model Module

This module defines the canonical record type produced by the normalizer,
the result types returned by each aggregator, and the error types shared
across the engine.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ValidationError(ValueError):
    """The input as a whole is not a usable record collection."""


class ConfigError(ValueError):
    """A configuration value is missing or out of range."""


class RecordKind(str, Enum):
    """Which status vocabulary a record speaks."""

    REPORT = "report"
    COLLECTION = "collection"


REPORT_STATUSES = ("new", "triaged", "assigned", "in_progress", "resolved", "rejected")
COLLECTION_STATUSES = ("scheduled", "in_progress", "completed", "missed", "cancelled")

STATUS_VOCABULARY = {
    RecordKind.REPORT: REPORT_STATUSES,
    RecordKind.COLLECTION: COLLECTION_STATUSES,
}

SEVERITIES = ("low", "medium", "high")


def clean_text(value: Any) -> Optional[str]:
    """Trim a free-form name; empty or whitespace-only values become None."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


class Granularity(str, Enum):
    """Time-series granularities understood by the bucketer."""

    HOUR_OF_DAY = "hourOfDay"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Any) -> "Granularity":
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value) in (member.value, member.name, member.name.lower()):
                return member
        raise ValueError(f"Unknown granularity: {value!r}")


@dataclass(frozen=True)
class Assignment:
    assigned_at: Optional[datetime] = None
    assignee_id: Optional[str] = None


@dataclass(frozen=True)
class NormalizedRecord:
    """A report or collection job in canonical shape.

    Every timestamp is timezone-aware (configured local zone) or None.
    Geographic names are trimmed, and empty names are None.
    """

    id: str
    kind: RecordKind
    status: Optional[str] = None
    severity: Optional[str] = None
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    occurred_at: Optional[datetime] = None
    province: Optional[str] = None
    district: Optional[str] = None
    sector: Optional[str] = None
    assignment: Optional[Assignment] = None

    @property
    def assigned_at(self) -> Optional[datetime]:
        return self.assignment.assigned_at if self.assignment else None

    @property
    def effective_at(self) -> Optional[datetime]:
        """Actual occurrence, else scheduled time, else creation time."""
        for value in (self.occurred_at, self.scheduled_at, self.created_at):
            if value is not None:
                return value
        return None


@dataclass(frozen=True)
class TimeBucket:
    label: str
    start: datetime
    end: datetime
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "startInstant": self.start.isoformat(),
            "endInstant": self.end.isoformat(),
            "count": self.count,
        }


@dataclass(frozen=True)
class GeoNode:
    """One row of a geographic roll-up.

    Parents are referenced by name only. For a province node both parents
    are None; a district node carries its province; a sector node carries
    its district and province.
    """

    name: str
    count: int = 0
    province: Optional[str] = None
    district: Optional[str] = None

    @property
    def parent(self) -> Optional[str]:
        return self.district if self.district is not None else self.province

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "count": self.count}
        if self.province is not None or self.district is not None:
            out["province"] = self.province
        if self.district is not None:
            out["district"] = self.district
        return out


@dataclass(frozen=True)
class GeoFilters:
    """A single active drill-down path: province, then district, then sector."""

    province: Optional[str] = None
    district: Optional[str] = None
    sector: Optional[str] = None

    def __post_init__(self):
        # Compare on the same trimmed names the normalizer produces.
        for name in ("province", "district", "sector"):
            object.__setattr__(self, name, clean_text(getattr(self, name)))

    def select_province(self, province: Optional[str]) -> "GeoFilters":
        return GeoFilters(province=province)

    def select_district(self, district: Optional[str]) -> "GeoFilters":
        return GeoFilters(province=self.province, district=district)

    def select_sector(self, sector: Optional[str]) -> "GeoFilters":
        if self.district is None:
            return replace(self, sector=None)
        return replace(self, sector=sector)

    @property
    def is_empty(self) -> bool:
        return self.province is None and self.district is None and self.sector is None

    def matches(self, record: NormalizedRecord) -> bool:
        if self.province is not None and record.province != self.province:
            return False
        if self.district is not None and record.district != self.district:
            return False
        if self.sector is not None and record.sector != self.sector:
            return False
        return True


@dataclass(frozen=True)
class GeoSummary:
    total: int = 0
    average_per_province: Optional[float] = None
    active_provinces: int = 0
    most_concentrated: Optional[str] = None
    least_concentrated: Optional[str] = None
    significant_provinces: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "averagePerProvince": self.average_per_province,
            "activeProvinces": self.active_provinces,
            "mostConcentrated": self.most_concentrated,
            "leastConcentrated": self.least_concentrated,
            "significantProvinces": self.significant_provinces,
        }


@dataclass(frozen=True)
class GeoRollup:
    provinces: List[GeoNode] = field(default_factory=list)
    districts: List[GeoNode] = field(default_factory=list)
    sectors: List[GeoNode] = field(default_factory=list)
    summary: GeoSummary = field(default_factory=GeoSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provinces": [node.to_dict() for node in self.provinces],
            "districts": [node.to_dict() for node in self.districts],
            "sectors": [node.to_dict() for node in self.sectors],
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class SLAOutcome:
    record_id: str
    eligible: bool
    compliant: Optional[bool]
    overdue: bool
    age_hours: Optional[float]


@dataclass(frozen=True)
class CategoryResolutionStat:
    category: str
    sample_count: int
    average_resolution_hours: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "sampleCount": self.sample_count,
            "averageResolutionHours": self.average_resolution_hours,
        }


@dataclass(frozen=True)
class SLASummary:
    kind: Optional[RecordKind] = None
    eligible_count: int = 0
    compliant_count: int = 0
    compliance_rate: Optional[float] = None
    overdue_count: int = 0
    overdue_percentage: Optional[float] = None
    category_resolution_times: List[CategoryResolutionStat] = field(default_factory=list)
    average_resolution_hours: Optional[float] = None
    status_counts: Dict[str, int] = field(default_factory=dict)
    severity_counts: Dict[str, int] = field(default_factory=dict)
    completion_rate: Optional[float] = None
    missed_count: int = 0
    on_time_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value if self.kind else None,
            "eligibleCount": self.eligible_count,
            "compliantCount": self.compliant_count,
            "complianceRate": self.compliance_rate,
            "overdueCount": self.overdue_count,
            "overduePercentage": self.overdue_percentage,
            "categoryResolutionTimes": [s.to_dict() for s in self.category_resolution_times],
            "averageResolutionHours": self.average_resolution_hours,
            "statusCounts": dict(self.status_counts),
            "severityCounts": dict(self.severity_counts),
            "completionRate": self.completion_rate,
            "missedCount": self.missed_count,
            "onTimeRate": self.on_time_rate,
        }


@dataclass(frozen=True)
class AggregatorFailure:
    """Marker left in a bundle when one aggregator raised."""

    component: str
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"component": self.component, "errorType": self.error_type, "message": self.message}


@dataclass(frozen=True)
class AggregationContext:
    reference_instant: datetime
    filters: GeoFilters = field(default_factory=GeoFilters)
    granularities: tuple = (
        Granularity.HOUR_OF_DAY,
        Granularity.DAILY,
        Granularity.WEEKLY,
        Granularity.MONTHLY,
    )
    breakdown_granularity: Optional[Granularity] = Granularity.MONTHLY
    # Kind of the records in this batch; None lets the normalizer infer it.
    record_kind: Optional[RecordKind] = None


@dataclass(frozen=True)
class MetricsBundle:
    reference_instant: datetime
    record_count: int
    time_series: Optional[Dict[str, List[TimeBucket]]] = None
    category_trends: Optional[Dict[str, List[TimeBucket]]] = None
    status_trends: Optional[Dict[str, List[TimeBucket]]] = None
    geographic: Optional[GeoRollup] = None
    sla: Optional[SLASummary] = None
    errors: Dict[str, AggregatorFailure] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        def _series(data: Optional[Dict[str, List[TimeBucket]]]) -> Optional[Dict[str, Any]]:
            if data is None:
                return None
            return {key: [b.to_dict() for b in buckets] for key, buckets in data.items()}

        return {
            "referenceInstant": self.reference_instant.isoformat(),
            "recordCount": self.record_count,
            "timeSeries": _series(self.time_series),
            "categoryTrends": _series(self.category_trends),
            "statusTrends": _series(self.status_trends),
            "geographic": self.geographic.to_dict() if self.geographic else None,
            "sla": self.sla.to_dict() if self.sla else None,
            "errors": {name: failure.to_dict() for name, failure in self.errors.items()},
        }
