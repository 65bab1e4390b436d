"""
Time Bucketing Module

This module turns a record stream into fixed, fully populated time series
at hour-of-day, daily, weekly and monthly granularity.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import Config
from .models import Granularity, NormalizedRecord, TimeBucket

logger = logging.getLogger(__name__)

MONTH_NAMES = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
               'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']

BREAKDOWN_KEYS: Dict[str, Tuple[Callable[[NormalizedRecord], Optional[str]], str]] = {
    "category": (lambda r: r.category, "uncategorized"),
    "status": (lambda r: r.status, "unknown"),
}


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


class TimeBucketer:
    """Fixed-window time-series bucketing anchored on a reference instant."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()

    def _local(self, instant: datetime) -> pd.Timestamp:
        ts = pd.Timestamp(instant)
        if ts.tzinfo is None:
            return ts.tz_localize(self.config.timezone)
        return ts.tz_convert(self.config.timezone)

    def _midnight(self, day: date) -> pd.Timestamp:
        return pd.Timestamp(day.year, day.month, day.day).tz_localize(
            self.config.timezone, ambiguous=False, nonexistent="shift_forward"
        )

    def window(self, granularity: Granularity, reference_instant: datetime) -> Tuple[List[pd.Timestamp], List[str]]:
        """
        Compute bucket edges and labels for a windowed granularity.

        Args:
            granularity: DAILY, WEEKLY or MONTHLY
            reference_instant: Instant whose calendar unit is the last bucket

        Returns:
            (edges, labels): n + 1 ascending local edges and n labels
        """
        granularity = Granularity.parse(granularity)
        ref_day = self._local(reference_instant).date()

        if granularity is Granularity.DAILY:
            n = self.config.daily_window_days
            days = [ref_day - timedelta(days=n - 1 - i) for i in range(n + 1)]
            edges = [self._midnight(d) for d in days]
            labels = [f"{d:%a} {d.day}" for d in days[:-1]]
        elif granularity is Granularity.WEEKLY:
            n = self.config.weekly_window_weeks
            week_start = ref_day - timedelta(days=(ref_day.weekday() - self.config.week_start) % 7)
            starts = [week_start - timedelta(weeks=n - 1 - i) for i in range(n + 1)]
            edges = [self._midnight(d) for d in starts]
            labels = [f"Week {i + 1}" for i in range(n)]
        elif granularity is Granularity.MONTHLY:
            n = self.config.monthly_window_months
            months = [_shift_month(ref_day.year, ref_day.month, i - (n - 1)) for i in range(n + 1)]
            edges = [self._midnight(date(y, m, 1)) for y, m in months]
            labels = [MONTH_NAMES[m - 1] for _, m in months[:-1]]
        else:
            raise ValueError(f"{granularity.value} has no trailing window")

        return edges, labels

    def _instants(self, records: Sequence[NormalizedRecord]) -> pd.Series:
        """Effective timestamps as a UTC series; records without one are dropped."""
        stamps = [r.effective_at for r in records if r.effective_at is not None]
        return pd.to_datetime(pd.Series(stamps, dtype=object), utc=True).dt.as_unit("ns")

    def _hour_of_day(self, records: Sequence[NormalizedRecord], reference_instant: datetime) -> List[TimeBucket]:
        instants = self._instants(records)
        hours = instants.dt.tz_convert(self.config.timezone).dt.hour.to_numpy(dtype=np.int64)
        counts = np.bincount(hours, minlength=24)

        base = self._midnight(self._local(reference_instant).date())
        return [
            TimeBucket(
                label=f"{hour:02d}:00",
                start=(base + pd.Timedelta(hours=hour)).to_pydatetime(),
                end=(base + pd.Timedelta(hours=hour + 1)).to_pydatetime(),
                count=int(counts[hour]),
            )
            for hour in range(24)
        ]

    def _windowed(self, records: Sequence[NormalizedRecord], granularity: Granularity,
                  reference_instant: datetime) -> List[TimeBucket]:
        edges, labels = self.window(granularity, reference_instant)
        n = len(labels)

        edge_ns = pd.DatetimeIndex(edges).tz_convert("UTC").as_unit("ns").asi8
        values = pd.DatetimeIndex(self._instants(records)).asi8

        # side="right" keeps the interval half-open: [start, end)
        idx = np.searchsorted(edge_ns, values, side="right") - 1
        inside = (idx >= 0) & (idx < n)
        counts = np.bincount(idx[inside], minlength=n)

        return [
            TimeBucket(
                label=labels[i],
                start=edges[i].to_pydatetime(),
                end=edges[i + 1].to_pydatetime(),
                count=int(counts[i]),
            )
            for i in range(n)
        ]

    def bucket(self, records: Sequence[NormalizedRecord], granularity, reference_instant: datetime) -> List[TimeBucket]:
        """
        Bucket records by their effective timestamp.

        Args:
            records: Normalized records
            granularity: Granularity member or its name ("hourOfDay", "daily", ...)
            reference_instant: Anchor for the trailing window

        Returns:
            Fully populated list of TimeBucket, oldest first
        """
        granularity = Granularity.parse(granularity)
        if granularity is Granularity.HOUR_OF_DAY:
            return self._hour_of_day(records, reference_instant)
        return self._windowed(records, granularity, reference_instant)

    def bucket_by(self, records: Sequence[NormalizedRecord], granularity, reference_instant: datetime,
                  key: str = "category") -> Dict[str, List[TimeBucket]]:
        """
        Bucket records separately for each distinct value of a field.

        Args:
            key: "category" or "status"

        Returns:
            Dictionary of series keyed by field value, in sorted key order
        """
        if key not in BREAKDOWN_KEYS:
            raise ValueError(f"Unsupported breakdown key: {key!r}")
        getter, fallback = BREAKDOWN_KEYS[key]

        groups: Dict[str, List[NormalizedRecord]] = {}
        for record in records:
            groups.setdefault(getter(record) or fallback, []).append(record)

        return {
            value: self.bucket(groups[value], granularity, reference_instant)
            for value in sorted(groups)
        }


if __name__ == "__main__":
    bucketer = TimeBucketer()
    edges, labels = bucketer.window(Granularity.WEEKLY, datetime.now())
    for label, start in zip(labels, edges):
        print(f"{label}: {start:%Y-%m-%d %a}")
