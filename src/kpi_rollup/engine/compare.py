"""Pairwise period comparison with direction-aware classification."""

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import marshmallow as ma
from attrs import define

from ..data.models import AggregatedBucket, Direction


@define(slots=True, frozen=True)
class ComparisonPair:
    """Labels of the two buckets being compared (A against B)."""

    label_a: str
    label_b: str


@define(slots=True, frozen=True, kw_only=True)
class ComparisonResult:
    """Outcome of comparing bucket A with bucket B for one metric."""

    label_a: str
    label_b: str
    value_a: float
    value_b: float
    delta: float
    percent_change: float
    improved: bool
    a_present: bool = True
    b_present: bool = True

    @property
    def is_stale(self) -> bool:
        """True when either label is missing from the current bucket set."""
        return not (self.a_present and self.b_present)


def default_pair(buckets: Sequence[AggregatedBucket]) -> ComparisonPair | None:
    """Pick the most recent bucket as A and the one before it as B."""
    if not buckets:
        return None
    if len(buckets) == 1:
        return ComparisonPair(buckets[0].label, buckets[0].label)
    return ComparisonPair(buckets[-1].label, buckets[-2].label)


def compare(
    buckets: Sequence[AggregatedBucket],
    label_a: str,
    label_b: str,
    direction: Direction | str,
) -> ComparisonResult:
    """Compare two bucket labels; labels absent from ``buckets`` count as 0."""
    resolved = Direction.parse(direction)
    values = {bucket.label: bucket.value for bucket in buckets}
    value_a = values.get(label_a, 0.0)
    value_b = values.get(label_b, 0.0)
    delta = float(Decimal(str(value_a)) - Decimal(str(value_b)))
    percent_change = delta / value_b * 100 if value_b != 0 else 0.0
    return ComparisonResult(
        label_a=label_a,
        label_b=label_b,
        value_a=value_a,
        value_b=value_b,
        delta=delta,
        percent_change=percent_change,
        improved=resolved.is_improvement(delta),
        a_present=label_a in values,
        b_present=label_b in values,
    )


class ComparisonResultSchema(ma.Schema):
    """Marshmallow schema for serializing :class:`ComparisonResult`."""

    label_a = ma.fields.Str(required=True)
    label_b = ma.fields.Str(required=True)
    value_a = ma.fields.Float(required=True)
    value_b = ma.fields.Float(required=True)
    delta = ma.fields.Float(required=True)
    percent_change = ma.fields.Float(required=True)
    improved = ma.fields.Bool(required=True)
    a_present = ma.fields.Bool(load_default=True)
    b_present = ma.fields.Bool(load_default=True)

    @ma.post_load
    def make_result(self, data: dict[str, Any], **kwargs: object) -> ComparisonResult:
        """Instantiate :class:`ComparisonResult` from validated payloads."""
        return ComparisonResult(**data)


__all__ = [
    "ComparisonPair",
    "ComparisonResult",
    "ComparisonResultSchema",
    "compare",
    "default_pair",
]
