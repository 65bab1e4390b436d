"""Operations metrics aggregation for the reports and collections dashboard."""

from .analysis import MetricsAggregator, aggregate
from .config import Config, setup_environment
from .geography import GeographicRoller
from .models import (
    AggregationContext,
    AggregatorFailure,
    ConfigError,
    GeoFilters,
    GeoNode,
    GeoRollup,
    GeoSummary,
    Granularity,
    MetricsBundle,
    NormalizedRecord,
    RecordKind,
    SLAOutcome,
    SLASummary,
    TimeBucket,
    ValidationError,
)
from .normalizer import RecordNormalizer, normalize
from .sla_metrics import SLAFramework, SLAMetrics
from .time_buckets import TimeBucketer

__all__ = [
    "AggregationContext",
    "AggregatorFailure",
    "Config",
    "ConfigError",
    "GeoFilters",
    "GeoNode",
    "GeoRollup",
    "GeoSummary",
    "GeographicRoller",
    "Granularity",
    "MetricsAggregator",
    "MetricsBundle",
    "NormalizedRecord",
    "RecordKind",
    "RecordNormalizer",
    "SLAFramework",
    "SLAMetrics",
    "SLAOutcome",
    "SLASummary",
    "TimeBucket",
    "TimeBucketer",
    "ValidationError",
    "aggregate",
    "normalize",
    "setup_environment",
]
