"""Rollup, aggregation, and comparison engine for KPI time series."""

from .aggregate import aggregate, reduce_values, round_half_up
from .compare import (
    ComparisonPair,
    ComparisonResult,
    ComparisonResultSchema,
    compare,
    default_pair,
)
from .rollup import bucket_key, bucket_records
from .selector import (
    DashboardSelection,
    DashboardSelectionSchema,
    DashboardSession,
    MetricView,
    build_view,
    default_granularity,
)

__all__ = [
    "ComparisonPair",
    "ComparisonResult",
    "ComparisonResultSchema",
    "DashboardSelection",
    "DashboardSelectionSchema",
    "DashboardSession",
    "MetricView",
    "aggregate",
    "bucket_key",
    "bucket_records",
    "build_view",
    "compare",
    "default_granularity",
    "default_pair",
    "reduce_values",
    "round_half_up",
]
