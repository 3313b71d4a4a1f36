"""Unit tests for the aggregation engine."""

import pytest

from kpi_rollup.data import AggregatedBucket, Aggregation
from kpi_rollup.engine import aggregate, reduce_values, round_half_up
from kpi_rollup.periods import Granularity
from tests.conftest import make_records


@pytest.mark.parametrize(
    "value, expected",
    [
        (80, 80.0),
        (0.05, 0.1),
        (1.15, 1.2),
        (2.25, 2.3),
        (-2.25, -2.3),
        (3.14159, 3.1),
        (-0.04, -0.0),
    ],
)
def test_round_half_up(value, expected):
    """Ties round away from zero at one decimal place."""
    assert round_half_up(value) == expected


def test_reduce_values_sum_and_avg():
    assert reduce_values([0.1, 0.2], Aggregation.SUM) == 0.3
    assert reduce_values([1.0, 1.1], "avg") == 1.1
    assert reduce_values([1, 2], Aggregation.AVG) == 1.5


def test_reduce_values_rounds_once_after_aggregating():
    # Rounding each value first would give 0.1 + 0.1 + 0.1 = 0.3.
    assert reduce_values([0.04, 0.04, 0.04], "sum") == 0.1


def test_reduce_values_rejects_empty_bucket():
    with pytest.raises(ValueError, match="empty bucket"):
        reduce_values([], "sum")


def test_reduce_values_rejects_unknown_policy():
    with pytest.raises(ValueError, match="Unknown aggregation"):
        reduce_values([1.0], "median")


def test_monthly_average_keeps_each_month():
    records = make_records([("2024-01", 80), ("2024-02", 82), ("2024-03", 78)])

    buckets = aggregate(records, Granularity.MONTH, Aggregation.AVG)

    assert [(bucket.label, bucket.value) for bucket in buckets] == [
        ("2024-01", 80.0),
        ("2024-02", 82.0),
        ("2024-03", 78.0),
    ]


def test_quarter_average_of_months():
    records = make_records([("2024-01", 80), ("2024-02", 82), ("2024-03", 78)])

    buckets = aggregate(records, Granularity.QUARTER, Aggregation.AVG)

    assert buckets == [AggregatedBucket(label="2024-Q1", value=80.0, sort_key="2024-Q1", count=3)]


def test_quarter_record_dropped_at_month_view():
    records = make_records([("2024-Q1", 80), ("2024-01", 82)])

    buckets = aggregate(records, Granularity.MONTH, Aggregation.AVG)

    assert [(bucket.label, bucket.value) for bucket in buckets] == [("2024-01", 82.0)]


@pytest.mark.parametrize("granularity", list(Granularity))
def test_empty_records_yield_no_buckets(granularity):
    assert aggregate([], granularity, Aggregation.SUM) == []


def test_buckets_sorted_chronologically_regardless_of_input_order():
    records = make_records([("2024-11", 1), ("2023-02", 2), ("2024-02", 3), ("2023-12", 4)])

    buckets = aggregate(records, Granularity.MONTH, Aggregation.SUM)

    assert [bucket.label for bucket in buckets] == ["2023-02", "2023-12", "2024-02", "2024-11"]
    sort_keys = [bucket.sort_key for bucket in buckets]
    assert sort_keys == sorted(sort_keys)


def test_half_year_sum_mixes_months_and_quarters():
    records = make_records([("2024-01", 10), ("2024-Q2", 20), ("2024-07", 5), ("2024-Q4", 5)])

    buckets = aggregate(records, Granularity.HALF_YEAR, Aggregation.SUM)

    assert [(bucket.label, bucket.value, bucket.count) for bucket in buckets] == [
        ("2024-H1", 30.0, 2),
        ("2024-H2", 10.0, 2),
    ]


def test_every_bucket_has_contributions():
    records = make_records([("2024-01", 1), ("2024-07", 2)])

    buckets = aggregate(records, Granularity.QUARTER, Aggregation.AVG)

    assert [bucket.label for bucket in buckets] == ["2024-Q1", "2024-Q3"]
    assert all(bucket.count >= 1 for bucket in buckets)


def test_differently_spelled_periods_share_a_bucket():
    records = make_records([("2024-3", 10), ("2024-03", 20)])

    buckets = aggregate(records, Granularity.MONTH, Aggregation.AVG)

    assert [(bucket.label, bucket.value) for bucket in buckets] == [("2024-03", 15.0)]
