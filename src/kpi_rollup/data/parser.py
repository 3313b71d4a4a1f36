"""Parsers for KPI record store payloads."""

import csv
import io
from collections.abc import Iterable, Mapping
from typing import Any

import marshmallow as ma
import structlog

from ..periods import PeriodFormatError
from .models import (
    MetricDefinition,
    MetricDefinitionSchema,
    Project,
    ProjectSchema,
    RawRecord,
    RawRecordSchema,
)

logger = structlog.get_logger(__name__)

_RECORD_SCHEMA = RawRecordSchema()
_METRIC_SCHEMA = MetricDefinitionSchema()
_PROJECT_SCHEMA = ProjectSchema()


def _normalize_key(key: str) -> str:
    """Normalize header names for case/whitespace inconsistencies."""
    return key.strip().lower().replace(" ", "_")


def _read_csv(text: str) -> Iterable[dict[str, str]]:
    """Read a comma-separated payload into cleaned dictionaries."""
    reader = csv.DictReader(io.StringIO(text))
    for row in reader:
        if not row:
            continue
        if all(value is None or value.strip() == "" for value in row.values()):
            continue
        yield {_normalize_key(key): (value or "").strip() for key, value in row.items() if key}


def _entry_period(entry: object) -> object:
    """Return the raw period of an entry for log context."""
    if isinstance(entry, Mapping):
        return entry.get("month", entry.get("period"))
    return None


def parse_records(
    entries: Iterable[Mapping[str, Any]],
    *,
    strict: bool = True,
    metric_id: str | None = None,
) -> list[RawRecord]:
    """Decode ``{month|period, value}`` mappings into :class:`RawRecord` objects.

    In strict mode the first malformed entry raises (``PeriodFormatError`` for
    bad periods, ``marshmallow.ValidationError`` for bad values). Otherwise the
    entry is logged and skipped.
    """
    records: list[RawRecord] = []
    rejected = 0
    for index, entry in enumerate(entries):
        try:
            records.append(_RECORD_SCHEMA.load(entry))
        except (PeriodFormatError, ma.ValidationError) as exc:
            if strict:
                raise
            rejected += 1
            logger.warning(
                "records.rejected",
                metric_id=metric_id,
                index=index,
                period=_entry_period(entry),
                reason=str(exc),
            )
    if rejected:
        logger.info("records.parsed", metric_id=metric_id, accepted=len(records), rejected=rejected)
    return records


def parse_metric(payload: Mapping[str, Any], *, strict: bool = True) -> MetricDefinition:
    """Decode one KPI definition together with its chart records."""
    data = _METRIC_SCHEMA.load(payload)
    raw_records = data.pop("records")
    records = parse_records(raw_records, strict=strict, metric_id=data["id"])
    return MetricDefinition(**data, records=records)


def parse_project(payload: Mapping[str, Any], *, strict: bool = True) -> Project:
    """Decode a dashboard project and its KPI list."""
    data = _PROJECT_SCHEMA.load(payload)
    metrics = [parse_metric(item, strict=strict) for item in data.pop("metrics")]
    return Project(**data, metrics=metrics)


_KPI_ONLY_KEYS = frozenset(
    {"chartData", "timeWindow", "label", "unit", "target", "value", "aggregation", "direction"}
)
_PROJECT_ONLY_KEYS = frozenset({"kpis", "name", "category"})


def _is_bare_kpi(item: object) -> bool:
    """True when ``item`` carries KPI fields and none of a project's."""
    if not isinstance(item, Mapping):
        return False
    keys = set(item)
    return bool(keys & _KPI_ONLY_KEYS) and not keys & _PROJECT_ONLY_KEYS


def parse_projects(payload: Any, *, strict: bool = True) -> list[Project]:
    """Decode a record store document into projects.

    Accepts a list of projects, a ``{"projects": [...]}`` mapping, or a bare
    list of KPI definitions (wrapped into a single ``default`` project).
    """
    if isinstance(payload, Mapping):
        if "projects" in payload:
            payload = payload["projects"]
        elif "kpis" in payload:
            payload = [payload]
        else:
            raise ValueError("Record store document must hold 'projects' or 'kpis'.")
    if not isinstance(payload, list):
        raise ValueError("Record store document must be a list or a mapping.")
    if payload and all(_is_bare_kpi(item) for item in payload):
        metrics = [parse_metric(item, strict=strict) for item in payload]
        return [Project(id="default", name="Default", metrics=metrics)]
    return [parse_project(item, strict=strict) for item in payload]


def parse_records_csv(text: str, *, strict: bool = True) -> dict[str, list[RawRecord]]:
    """Parse ``metric_id,period,value`` rows grouped by metric id."""
    grouped: dict[str, list[dict[str, str]]] = {}
    for row in _read_csv(text):
        metric_id = row.get("metric_id") or row.get("metric") or ""
        if not metric_id:
            if strict:
                raise ValueError(f"CSV row is missing a metric id: {row!r}")
            logger.warning("records.rejected", reason="missing metric id", row=row)
            continue
        grouped.setdefault(metric_id, []).append(
            {"period": row.get("period") or row.get("month", ""), "value": row.get("value", "")}
        )
    return {
        metric_id: parse_records(entries, strict=strict, metric_id=metric_id)
        for metric_id, entries in grouped.items()
    }


__all__ = [
    "parse_metric",
    "parse_project",
    "parse_projects",
    "parse_records",
    "parse_records_csv",
]
