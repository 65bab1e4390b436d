"""
Analysis Module

This module runs the metrics aggregators over one record batch and
assembles the MetricsBundle consumed by the dashboard, together with the
insight strings derived from it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .config import Config
from .geography import GeographicRoller
from .models import (
    AggregationContext,
    AggregatorFailure,
    Granularity,
    MetricsBundle,
    NormalizedRecord,
    ValidationError,
)
from .normalizer import RecordNormalizer
from .sla_metrics import SLAMetrics
from .time_buckets import TimeBucketer

logger = logging.getLogger(__name__)

# Assembly order of the bundle; also the keys used in MetricsBundle.errors.
COMPONENTS = ("timeSeries", "geographic", "sla")


class MetricsAggregator:
    """Fan-out/fan-in aggregation of a record batch into a MetricsBundle."""

    def __init__(self, config: Optional[Config] = None, parallel: bool = True):
        """
        Initialize the aggregator.

        Args:
            config: Configuration instance shared by every component
            parallel: Run the aggregators on a thread pool for this call
        """
        self.config = config or Config()
        self.parallel = parallel
        self.normalizer = RecordNormalizer(self.config)
        self.bucketer = TimeBucketer(self.config)
        self.roller = GeographicRoller(self.config)
        self.sla = SLAMetrics(self.config)

    def _time_series(self, records: List[NormalizedRecord], context: AggregationContext,
                     now: datetime) -> Dict[str, Any]:
        series = {
            Granularity.parse(g).value: self.bucketer.bucket(records, g, now)
            for g in context.granularities
        }
        category_trends = status_trends = None
        if context.breakdown_granularity is not None:
            category_trends = self.bucketer.bucket_by(records, context.breakdown_granularity, now, key="category")
            status_trends = self.bucketer.bucket_by(records, context.breakdown_granularity, now, key="status")
        return {
            "time_series": series,
            "category_trends": category_trends,
            "status_trends": status_trends,
        }

    def _geographic(self, records: List[NormalizedRecord], context: AggregationContext,
                    now: datetime) -> Dict[str, Any]:
        return {"geographic": self.roller.roll(records, context.filters)}

    def _sla(self, records: List[NormalizedRecord], context: AggregationContext,
             now: datetime) -> Dict[str, Any]:
        return {"sla": self.sla.calculate_key_metrics(records, now)}

    def _run(self, tasks: Dict[str, Callable[[], Dict[str, Any]]]) -> Dict[str, Any]:
        """Run each task; a failure is logged and turned into an AggregatorFailure."""
        outcomes: Dict[str, Any] = {}

        def _guarded(name: str, task: Callable[[], Dict[str, Any]]) -> Any:
            try:
                return task()
            except Exception as e:
                logger.exception("❌ %s aggregation failed", name)
                return AggregatorFailure(component=name, error_type=type(e).__name__, message=str(e))

        if self.parallel:
            with ThreadPoolExecutor(max_workers=self.config.max_workers,
                                    thread_name_prefix="ops-metrics") as executor:
                futures = {name: executor.submit(_guarded, name, task) for name, task in tasks.items()}
                for name in COMPONENTS:
                    outcomes[name] = futures[name].result()
        else:
            for name in COMPONENTS:
                outcomes[name] = _guarded(name, tasks[name])
        return outcomes

    def aggregate(self, raw_records: Any, context: AggregationContext) -> MetricsBundle:
        """
        Aggregate a batch of raw records.

        Args:
            raw_records: Iterable of raw record mappings (or a DataFrame)
            context: Reference instant, geographic filters and granularities

        Returns:
            MetricsBundle. A failing aggregator leaves its part as None and
            an entry in ``errors``

        Raises:
            ValidationError: If the input or the reference instant is unusable
        """
        normalizer = self.normalizer
        if context.record_kind is not None:
            normalizer = RecordNormalizer(self.config, default_kind=context.record_kind)

        now = normalizer.parse_instant(context.reference_instant)
        if now is None:
            raise ValidationError(f"Invalid reference instant: {context.reference_instant!r}")

        records = normalizer.normalize(raw_records)
        filters = context.filters
        scoped = records if filters.is_empty else [r for r in records if filters.matches(r)]
        logger.info("📊 Aggregating %d records (%d in scope) at %s", len(records), len(scoped), now.isoformat())

        tasks = {
            "timeSeries": lambda: self._time_series(scoped, context, now),
            "geographic": lambda: self._geographic(records, context, now),
            "sla": lambda: self._sla(scoped, context, now),
        }
        outcomes = self._run(tasks)

        parts: Dict[str, Any] = {}
        errors: Dict[str, AggregatorFailure] = {}
        for name in COMPONENTS:
            outcome = outcomes[name]
            if isinstance(outcome, AggregatorFailure):
                errors[name] = outcome
            else:
                parts.update(outcome)

        if errors:
            logger.warning("⚠️ Partial bundle, failed components: %s", ", ".join(errors))

        return MetricsBundle(
            reference_instant=now,
            record_count=len(scoped),
            errors=errors,
            **parts,
        )

    @staticmethod
    def generate_insights(bundle: MetricsBundle) -> List[str]:
        """
        Generate key insights from an aggregated bundle.

        Returns:
            List of insight strings; parts that failed or hold no data are skipped
        """
        insights = []

        # Geographic insights
        if bundle.geographic is not None:
            summary = bundle.geographic.summary
            if summary.most_concentrated is not None and summary.total > 0:
                top = next(n for n in bundle.geographic.provinces if n.name == summary.most_concentrated)
                insights.append(
                    f"Geographic concentration: {top.name} holds {top.count / summary.total * 100:.1f}% "
                    f"of records across {summary.active_provinces} active provinces"
                )

        # SLA insights
        if bundle.sla is not None:
            sla = bundle.sla
            if sla.overdue_percentage is not None:
                insights.append(
                    f"SLA backlog: {sla.overdue_count} of {sla.eligible_count} tracked records "
                    f"({sla.overdue_percentage:.1f}%) are overdue"
                )
            if sla.category_resolution_times:
                slowest = sla.category_resolution_times[0]
                insights.append(
                    f"Slowest category: {slowest.category} averages {slowest.average_resolution_hours:.1f} hours to resolve"
                )

        # Temporal insights
        if bundle.time_series is not None:
            hours = bundle.time_series.get(Granularity.HOUR_OF_DAY.value) or []
            peak = max(hours, key=lambda b: b.count, default=None)
            if peak is not None and peak.count > 0:
                insights.append(f"Peak hour: {peak.label} with {peak.count} records")

        return insights

    def get_comprehensive_summary(self, bundle: MetricsBundle) -> str:
        """
        Get comprehensive metrics summary.

        Returns:
            Formatted summary string
        """
        def _rate(value: Optional[float]) -> str:
            return "n/a" if value is None else f"{value:.1f}%"

        summary = f"""
OPERATIONS METRICS SUMMARY

Dataset Overview:
  • Records in scope: {bundle.record_count:,}
  • Reference instant: {bundle.reference_instant:%Y-%m-%d %H:%M %Z}
"""
        if bundle.sla is not None:
            summary += f"  • SLA compliance: {_rate(bundle.sla.compliance_rate)}\n"
            summary += f"  • Overdue: {_rate(bundle.sla.overdue_percentage)}\n"
        for name, failure in bundle.errors.items():
            summary += f"  • {name} unavailable: {failure.error_type}\n"

        summary += "\nKey Insights:\n"
        for i, insight in enumerate(self.generate_insights(bundle), 1):
            summary += f"  {i}. {insight}\n"

        return summary


def aggregate(raw_records: Any, context: AggregationContext, config: Optional[Config] = None) -> MetricsBundle:
    """Aggregate raw records with a default MetricsAggregator."""
    return MetricsAggregator(config).aggregate(raw_records, context)


if __name__ == "__main__":
    from .config import setup_environment

    aggregator = MetricsAggregator(setup_environment())
    sample = [
        {"id": "1", "status": "in_progress", "category": "waste", "createdAt": "2024-03-01T08:15:00",
         "province": "Kigali City", "district": "Gasabo",
         "currentAssignment": {"createdAt": "2024-03-01T09:00:00", "assignee": {"id": "u1"}}},
        {"id": "2", "status": "resolved", "category": "water", "createdAt": "2024-03-02T14:40:00",
         "updatedAt": "2024-03-04T10:00:00", "province": "Eastern Province",
         "currentAssignment": {"createdAt": "2024-03-02T15:00:00", "assignee": {"id": "u2"}}},
    ]
    result = aggregator.aggregate(sample, AggregationContext(reference_instant=datetime(2024, 3, 10, 12)))
    print(aggregator.get_comprehensive_summary(result))
