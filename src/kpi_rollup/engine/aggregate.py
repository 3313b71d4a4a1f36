"""Reduce bucketed KPI values to one displayed number per bucket."""

from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal

from ..data.models import AggregatedBucket, Aggregation, RawRecord
from ..periods import Granularity
from .rollup import bucket_records

_ONE_DECIMAL = Decimal("0.1")


def _decimal(value: float | Decimal) -> Decimal:
    """Convert via ``str`` so binary float noise does not leak into rounding."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: float | Decimal) -> float:
    """Round to one decimal place, ties away from zero."""
    return float(_decimal(value).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def reduce_values(values: Sequence[float], aggregation: Aggregation | str) -> float:
    """Sum or average ``values`` and round the result once."""
    if not values:
        raise ValueError("Cannot aggregate an empty bucket.")
    policy = Aggregation.parse(aggregation)
    total = sum((_decimal(value) for value in values), Decimal(0))
    if policy is Aggregation.SUM:
        return round_half_up(total)
    return round_half_up(total / len(values))


def aggregate(
    records: Iterable[RawRecord],
    granularity: Granularity | str,
    aggregation: Aggregation | str,
) -> list[AggregatedBucket]:
    """Roll records up to ``granularity`` and return chronologically sorted buckets."""
    policy = Aggregation.parse(aggregation)
    grouped = bucket_records(records, granularity)
    buckets = [
        AggregatedBucket(
            label=key.label,
            value=reduce_values(values, policy),
            sort_key=key.sort_key,
            count=len(values),
        )
        for key, values in grouped.items()
    ]
    buckets.sort(key=lambda bucket: bucket.sort_key)
    return buckets


__all__ = ["aggregate", "reduce_values", "round_half_up"]
