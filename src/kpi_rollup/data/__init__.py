"""Top-level data module for KPI record handling."""

from .defaults import DEFAULT_PROJECTS, default_store
from .models import (
    AggregatedBucket,
    AggregatedBucketSchema,
    Aggregation,
    Direction,
    MetricDefinition,
    MetricDefinitionSchema,
    Project,
    ProjectSchema,
    RawRecord,
    RawRecordSchema,
)
from .parser import parse_metric, parse_projects, parse_records, parse_records_csv
from .reader import KpiDatabaseReader
from .store import MetricNotFoundError, ProjectNotFoundError, RecordStore

__all__ = [
    "AggregatedBucket",
    "AggregatedBucketSchema",
    "Aggregation",
    "DEFAULT_PROJECTS",
    "Direction",
    "KpiDatabaseReader",
    "MetricDefinition",
    "MetricDefinitionSchema",
    "MetricNotFoundError",
    "Project",
    "ProjectNotFoundError",
    "ProjectSchema",
    "RawRecord",
    "RawRecordSchema",
    "RecordStore",
    "default_store",
    "parse_metric",
    "parse_projects",
    "parse_records",
    "parse_records_csv",
]
