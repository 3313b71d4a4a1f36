"""Domain models for KPI metric definitions and their recorded values."""

import enum
import math
from collections.abc import Iterable
from typing import Any

import marshmallow as ma
from attrs import define, evolve, field

from ..periods import Granularity, PeriodKey, coerce_period


def _strip(value: str) -> str:
    """Trim surrounding whitespace from a field."""
    return str(value).strip()


def _to_float(value: Any) -> float:
    """Convert numeric payloads into finite floats."""
    if isinstance(value, bool):
        raise ValueError("Boolean values are not valid KPI observations.")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"KPI values must be finite, got {value!r}.")
    return number


def _optional_float(value: Any) -> float | None:
    """Like :func:`_to_float` but passing ``None`` through."""
    if value is None:
        return None
    return _to_float(value)


class Aggregation(enum.Enum):
    """How values falling into the same bucket are combined."""

    SUM = "sum"
    AVG = "avg"

    @classmethod
    def parse(cls, value: "str | Aggregation") -> "Aggregation":
        """Resolve a policy from its name, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown aggregation {value!r}. Choose one of: avg, sum.") from None


class Direction(enum.Enum):
    """Whether larger (``up``) or smaller (``down``) values are better."""

    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value: "str | Direction") -> "Direction":
        """Resolve a direction from its name, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown direction {value!r}. Choose one of: down, up.") from None

    def is_improvement(self, delta: float) -> bool:
        """Classify a change; a zero change always counts as improved."""
        if self is Direction.UP:
            return delta >= 0
        return delta <= 0


@define(slots=True, frozen=True)
class RawRecord:
    """One observed value of a metric at its native period."""

    period: PeriodKey = field(converter=coerce_period)
    value: float = field(converter=_to_float)

    @property
    def granularity(self) -> Granularity:
        """Native granularity of the record."""
        return self.period.granularity


@define(slots=True, frozen=True)
class MetricDefinition:
    """Static configuration of a tracked KPI together with its records."""

    id: str = field(converter=_strip)
    label: str = field(converter=_strip, default="", kw_only=True)
    unit: str = field(converter=_strip, default="", kw_only=True)
    target: float = field(converter=_to_float, default=0.0, kw_only=True)
    default_granularity: Granularity = field(
        converter=Granularity.parse, default=Granularity.MONTH, kw_only=True
    )
    aggregation: Aggregation = field(
        converter=Aggregation.parse, default=Aggregation.AVG, kw_only=True
    )
    direction: Direction = field(converter=Direction.parse, default=Direction.UP, kw_only=True)
    current_value: float | None = field(converter=_optional_float, default=None, kw_only=True)
    records: tuple[RawRecord, ...] = field(converter=tuple, factory=tuple, kw_only=True)

    def meets_target(self, value: float | None = None) -> bool:
        """Return True when ``value`` (default: the headline value) is on target."""
        observed = self.current_value if value is None else value
        if observed is None:
            return False
        if self.direction is Direction.UP:
            return observed >= self.target
        return observed <= self.target

    def with_records(self, records: Iterable[RawRecord]) -> "MetricDefinition":
        """Return a copy of the metric holding ``records`` instead of its own."""
        return evolve(self, records=tuple(records))

    def granularities(self) -> set[Granularity]:
        """Return the native granularities present among the records."""
        return {record.granularity for record in self.records}


@define(slots=True, frozen=True)
class Project:
    """Dashboard project grouping an ordered set of metrics."""

    id: str = field(converter=_strip)
    name: str = field(converter=_strip, default="")
    category: str = field(converter=_strip, default="")
    metrics: tuple[MetricDefinition, ...] = field(converter=tuple, factory=tuple)

    def metric(self, metric_id: str) -> MetricDefinition | None:
        """Return the metric with ``metric_id`` when it belongs to the project."""
        for metric in self.metrics:
            if metric.id == metric_id:
                return metric
        return None


@define(slots=True, frozen=True)
class AggregatedBucket:
    """One point of a displayed series at the display granularity."""

    label: str
    value: float
    sort_key: str
    count: int = 1


def _validate_choice(parser, value: str, name: str) -> None:
    """Translate enum parse failures into schema validation errors."""
    try:
        parser(value)
    except ValueError as exc:
        raise ma.ValidationError(str(exc), field_name=name) from exc


class RawRecordSchema(ma.Schema):
    """Marshmallow schema for :class:`RawRecord` entries (``{month, value}``)."""

    class Meta:
        unknown = ma.EXCLUDE

    period = ma.fields.Str(required=True, data_key="month")
    value = ma.fields.Float(required=True, allow_nan=False)

    @ma.pre_load
    def accept_period_alias(self, data: Any, **kwargs: object) -> Any:
        """Allow ``period`` as an alias for the dashboard's ``month`` key."""
        if isinstance(data, dict) and "month" not in data and "period" in data:
            data = {**data, "month": data["period"]}
            data.pop("period")
        return data

    @ma.post_load
    def make_record(self, data: dict[str, Any], **kwargs: object) -> RawRecord:
        """Instantiate :class:`RawRecord`; malformed periods raise ``PeriodFormatError``."""
        return RawRecord(period=data["period"], value=data["value"])

    @ma.pre_dump
    def flatten_period(self, record: RawRecord, **kwargs: object) -> dict[str, Any]:
        """Dump the period as its canonical label."""
        return {"period": record.period.label, "value": record.value}


class MetricDefinitionSchema(ma.Schema):
    """Marshmallow schema for metric definitions in the dashboard export shape.

    Records are kept as raw mappings so callers decide how malformed entries
    are handled; see :func:`kpi_rollup.data.parser.parse_metric`.
    """

    class Meta:
        unknown = ma.EXCLUDE

    id = ma.fields.Str(required=True)
    label = ma.fields.Str(load_default="")
    unit = ma.fields.Str(load_default="")
    target = ma.fields.Float(load_default=0.0, allow_nan=False)
    current_value = ma.fields.Float(
        data_key="value", load_default=None, allow_none=True, allow_nan=False
    )
    default_granularity = ma.fields.Str(data_key="timeWindow", load_default="Month")
    aggregation = ma.fields.Str(load_default="avg")
    direction = ma.fields.Str(load_default="up")
    records = ma.fields.List(ma.fields.Dict(), data_key="chartData", load_default=list)

    @ma.validates("default_granularity")
    def validate_granularity(self, value: str, **kwargs: object) -> None:
        """Reject unknown default windows."""
        _validate_choice(Granularity.parse, value, "timeWindow")

    @ma.validates("aggregation")
    def validate_aggregation(self, value: str, **kwargs: object) -> None:
        """Reject unknown aggregation policies."""
        _validate_choice(Aggregation.parse, value, "aggregation")

    @ma.validates("direction")
    def validate_direction(self, value: str, **kwargs: object) -> None:
        """Reject unknown directions."""
        _validate_choice(Direction.parse, value, "direction")

    @ma.pre_dump
    def flatten_metric(self, metric: MetricDefinition, **kwargs: object) -> dict[str, Any]:
        """Render enums and records back into the dashboard export shape."""
        return {
            "id": metric.id,
            "label": metric.label,
            "unit": metric.unit,
            "target": metric.target,
            "current_value": metric.current_value,
            "default_granularity": metric.default_granularity.value,
            "aggregation": metric.aggregation.value,
            "direction": metric.direction.value,
            "records": RawRecordSchema(many=True).dump(metric.records),
        }


class ProjectSchema(ma.Schema):
    """Marshmallow schema for dashboard projects holding KPI definitions."""

    class Meta:
        unknown = ma.EXCLUDE

    id = ma.fields.Str(required=True)
    name = ma.fields.Str(load_default="")
    category = ma.fields.Str(load_default="")
    metrics = ma.fields.List(ma.fields.Dict(), data_key="kpis", load_default=list)


class AggregatedBucketSchema(ma.Schema):
    """Marshmallow schema for serializing :class:`AggregatedBucket`."""

    label = ma.fields.Str(required=True)
    value = ma.fields.Float(required=True)
    sort_key = ma.fields.Str(required=True)
    count = ma.fields.Int(required=True)

    @ma.post_load
    def make_bucket(self, data: dict[str, Any], **kwargs: object) -> AggregatedBucket:
        """Instantiate :class:`AggregatedBucket` from validated payloads."""
        return AggregatedBucket(**data)


__all__ = [
    "Aggregation",
    "AggregatedBucket",
    "AggregatedBucketSchema",
    "Direction",
    "MetricDefinition",
    "MetricDefinitionSchema",
    "Project",
    "ProjectSchema",
    "RawRecord",
    "RawRecordSchema",
]
