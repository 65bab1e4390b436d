"""
Record Normalization Module

This module validates raw report and collection-job records and coerces
them into the canonical NormalizedRecord shape used by every aggregator.
"""

import logging
import numbers
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .config import Config
from .models import (
    COLLECTION_STATUSES,
    REPORT_STATUSES,
    SEVERITIES,
    Assignment,
    NormalizedRecord,
    RecordKind,
    ValidationError,
    clean_text,
)

logger = logging.getLogger(__name__)

# Raw field names as they arrive from the ticketing and collection backends.
# Dotted names reach into nested objects.
FIELD_ALIASES: Dict[str, List[str]] = {
    "id": ["id", "_id", "reportId", "report_id", "collectionId", "collection_id", "collectionNumber"],
    "kind": ["kind", "recordKind", "record_kind"],
    "status": ["status"],
    "severity": ["severity", "priority"],
    "category": ["category", "type", "collectionType", "collection_type"],
    "created_at": ["createdAt", "created_at", "created"],
    "updated_at": ["updatedAt", "updated_at", "updated", "resolvedAt", "resolved_at"],
    "scheduled_at": ["scheduledTime", "scheduledAt", "scheduled_at", "scheduled_time"],
    "occurred_at": ["actualStartTime", "actualAt", "actual_at", "occurredAt", "occurred_at", "actual_start_time"],
    "province": ["province", "location.province"],
    "district": ["district", "location.district"],
    "sector": ["sector", "location.sector"],
}

ASSIGNMENT_KEYS = ["assignment", "currentAssignment", "current_assignment"]
ASSIGNED_AT_KEYS = ["assignedAt", "assigned_at", "createdAt", "created_at"]
# An assignment block has its own id; only these name the person it went to.
# Assignments made to an organization carry no assignee.
ASSIGNEE_KEYS = ["assigneeId", "assignee_id", "assignee.id", "officerId", "officer_id"]
# Officer objects embedded directly on the record; their id is the assignee.
OFFICER_KEYS = ["assignedOfficer", "assigned_officer"]

_COLLECTION_ONLY = set(COLLECTION_STATUSES) - set(REPORT_STATUSES)


def _lookup(raw: Mapping, path: str) -> Any:
    node: Any = raw
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def _first(raw: Mapping, paths: List[str]) -> Any:
    for path in paths:
        value = _lookup(raw, path)
        if value is not None:
            return value
    return None


def _clean_status(value: Any) -> Optional[str]:
    text = clean_text(value)
    if text is None:
        return None
    return text.lower().replace("-", "_").replace(" ", "_")


class RecordNormalizer:
    """Normalization of raw dashboard records into NormalizedRecord."""

    def __init__(self, config: Optional[Config] = None, default_kind: Optional[RecordKind] = None):
        """
        Initialize the normalizer.

        Args:
            config: Configuration instance; supplies the local timezone
            default_kind: Kind assumed for records that do not declare one
        """
        self.config = config or Config()
        self.default_kind = RecordKind(default_kind) if default_kind else None

    def parse_instant(self, value: Any) -> Optional[datetime]:
        """
        Coerce a date-like value to a timezone-aware datetime.

        Naive values are read as local time in the configured zone; numbers
        are epoch milliseconds. Anything unparseable returns None.
        """
        if value is None or isinstance(value, bool):
            return None
        try:
            if isinstance(value, numbers.Real):
                ts = pd.to_datetime(value, unit="ms", utc=True, errors="coerce")
            elif isinstance(value, (str, datetime, date, pd.Timestamp)):
                if isinstance(value, str) and not value.strip():
                    return None
                ts = pd.to_datetime(value.strip() if isinstance(value, str) else value, errors="coerce")
            else:
                return None
            if pd.isna(ts):
                return None
            if ts.tzinfo is None:
                ts = ts.tz_localize(self.config.timezone, ambiguous="NaT", nonexistent="shift_forward")
                if pd.isna(ts):
                    return None
            else:
                ts = ts.tz_convert(self.config.timezone)
            # Keep everything inside the nanosecond range the bucketer works in.
            ts = ts.as_unit("ns")
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug("Unparseable timestamp %r: %s", value, e)
            return None
        return ts.to_pydatetime()

    @staticmethod
    def _declared_kind(raw: Mapping) -> Optional[RecordKind]:
        declared = _clean_status(_first(raw, FIELD_ALIASES["kind"]))
        if declared in (RecordKind.REPORT.value, RecordKind.COLLECTION.value):
            return RecordKind(declared)
        return None

    @staticmethod
    def _looks_like_collection(raw: Mapping) -> bool:
        status = _clean_status(_first(raw, FIELD_ALIASES["status"]))
        if status in _COLLECTION_ONLY:
            return True
        return _first(raw, FIELD_ALIASES["scheduled_at"] + FIELD_ALIASES["occurred_at"]) is not None

    def infer_batch_kind(self, raw_records: List[Any]) -> RecordKind:
        """
        Decide the kind of every record in a batch that does not declare one.

        A batch comes from a single feed, so one collection-only status or
        schedule field among the undeclared records makes the whole batch a
        collection batch. The configured default kind always wins.
        """
        if self.default_kind is not None:
            return self.default_kind
        undeclared = [
            raw for raw in raw_records
            if isinstance(raw, Mapping) and self._declared_kind(raw) is None
        ]
        if any(self._looks_like_collection(raw) for raw in undeclared):
            return RecordKind.COLLECTION
        return RecordKind.REPORT

    def _parse_assignment(self, raw: Mapping) -> Optional[Assignment]:
        block = _first(raw, ASSIGNMENT_KEYS)
        if isinstance(block, Mapping):
            assigned_at = self.parse_instant(_first(block, ASSIGNED_AT_KEYS))
            assignee = clean_text(_first(block, ASSIGNEE_KEYS))
        else:
            assigned_at = self.parse_instant(_first(raw, ["assignedAt", "assigned_at"]))
            assignee = clean_text(_first(raw, ["assigneeId", "assignee_id"]))
            officer = _first(raw, OFFICER_KEYS)
            if isinstance(officer, Mapping):
                officer = officer.get("id")
            if assignee is None:
                assignee = clean_text(officer)

        if assigned_at is None and assignee is None:
            return None
        return Assignment(assigned_at=assigned_at, assignee_id=assignee)

    def normalize_record(self, raw: Mapping, position: int, kind: Optional[RecordKind] = None) -> NormalizedRecord:
        """
        Normalize one mapping. Field-level problems become None, never errors.

        Args:
            raw: Raw record
            position: Index in the batch, used when the record has no id
            kind: Kind for a record that does not declare one. Defaults to the
                configured default kind, then to what this record alone suggests
        """
        status = _clean_status(_first(raw, FIELD_ALIASES["status"]))
        severity = _clean_status(_first(raw, FIELD_ALIASES["severity"]))
        record_id = clean_text(_first(raw, FIELD_ALIASES["id"]))

        if kind is None:
            kind = self.infer_batch_kind([raw])

        return NormalizedRecord(
            id=record_id if record_id is not None else f"#{position}",
            kind=self._declared_kind(raw) or kind,
            status=status,
            severity=severity if severity in SEVERITIES else None,
            category=clean_text(_first(raw, FIELD_ALIASES["category"])),
            created_at=self.parse_instant(_first(raw, FIELD_ALIASES["created_at"])),
            updated_at=self.parse_instant(_first(raw, FIELD_ALIASES["updated_at"])),
            scheduled_at=self.parse_instant(_first(raw, FIELD_ALIASES["scheduled_at"])),
            occurred_at=self.parse_instant(_first(raw, FIELD_ALIASES["occurred_at"])),
            province=clean_text(_first(raw, FIELD_ALIASES["province"])),
            district=clean_text(_first(raw, FIELD_ALIASES["district"])),
            sector=clean_text(_first(raw, FIELD_ALIASES["sector"])),
            assignment=self._parse_assignment(raw),
        )

    def normalize(self, raw_records: Any) -> List[NormalizedRecord]:
        """
        Normalize a batch of raw records.

        Args:
            raw_records: Iterable of mappings, or a DataFrame with one row per record

        Returns:
            List of NormalizedRecord in input order

        Raises:
            ValidationError: If the input is not a usable collection of records
        """
        if isinstance(raw_records, pd.DataFrame):
            raw_records = raw_records.to_dict("records")
        if raw_records is None or isinstance(raw_records, (str, bytes, Mapping)):
            raise ValidationError(f"Expected a collection of records, got {type(raw_records).__name__}")
        if not isinstance(raw_records, Iterable):
            raise ValidationError(f"Expected a collection of records, got {type(raw_records).__name__}")

        normalized: List[NormalizedRecord] = []
        seen_ids = set()
        skipped = 0
        duplicates = 0

        try:
            raw_records = list(raw_records)
        except TypeError as e:
            raise ValidationError(f"Record collection could not be iterated: {e}") from e

        batch_kind = self.infer_batch_kind(raw_records)
        logger.debug("Undeclared records in this batch are treated as %s", batch_kind.value)

        for position, raw in enumerate(raw_records):
            if not isinstance(raw, Mapping):
                skipped += 1
                logger.warning("Skipping record #%d: expected a mapping, got %s", position, type(raw).__name__)
                continue
            record = self.normalize_record(raw, position, batch_kind)
            if record.id in seen_ids:
                duplicates += 1
                logger.warning("Skipping duplicate record id %s at #%d", record.id, position)
                continue
            seen_ids.add(record.id)
            normalized.append(record)

        logger.debug("Normalized %d records (%d skipped, %d duplicates)", len(normalized), skipped, duplicates)
        return normalized


def normalize(raw_records: Any, config: Optional[Config] = None) -> List[NormalizedRecord]:
    """Normalize raw records with a default RecordNormalizer."""
    return RecordNormalizer(config).normalize(raw_records)


def records_to_frame(records: List[NormalizedRecord]) -> pd.DataFrame:
    """
    Flatten normalized records into a DataFrame.

    Returns:
        DataFrame with one row per record; timestamps stay as object
        columns of aware datetimes (or None)
    """
    columns = [
        "id", "kind", "status", "severity", "category",
        "created_at", "updated_at", "scheduled_at", "occurred_at", "effective_at",
        "province", "district", "sector", "assigned_at", "assignee_id",
    ]
    rows = [
        {
            "id": r.id,
            "kind": r.kind.value,
            "status": r.status,
            "severity": r.severity,
            "category": r.category,
            "created_at": r.created_at,
            "updated_at": r.updated_at,
            "scheduled_at": r.scheduled_at,
            "occurred_at": r.occurred_at,
            "effective_at": r.effective_at,
            "province": r.province,
            "district": r.district,
            "sector": r.sector,
            "assigned_at": r.assigned_at,
            "assignee_id": r.assignment.assignee_id if r.assignment else None,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=columns, dtype=object)


if __name__ == "__main__":
    sample = [
        {"id": "r1", "status": "In Progress", "createdAt": "2024-03-01T08:15:00", "province": " Kigali City "},
        {"id": "r2", "status": "new", "createdAt": "not a date", "province": "   "},
    ]
    for record in normalize(sample):
        print(record)
