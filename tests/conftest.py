"""Global test configuration and fixtures."""

import json

import pytest

from kpi_rollup.data import MetricDefinition, Project, RawRecord, RecordStore


def make_records(pairs):
    """Build raw records from ``(period, value)`` pairs."""
    return [RawRecord(period, value) for period, value in pairs]


def make_metric(metric_id="m1", pairs=(), **overrides):
    """Build a metric definition holding records for ``pairs``."""
    return MetricDefinition(metric_id, records=make_records(pairs), **overrides)


@pytest.fixture
def retention_metric():
    """Monthly retention rate spanning two quarters, higher is better."""
    return make_metric(
        "k1",
        [
            ("2024-01", 80),
            ("2024-02", 82),
            ("2024-03", 78),
            ("2024-04", 84),
            ("2024-05", 85),
            ("2024-06", 86),
        ],
        label="Core retention rate",
        unit="%",
        target=90,
        current_value=86,
    )


@pytest.fixture
def handle_time_metric():
    """Monthly average handle time, lower is better."""
    return make_metric(
        "k3",
        [("2024-04", 460), ("2024-05", 440), ("2024-06", 425)],
        label="Average handle time (AHT)",
        unit="s",
        target=420,
        direction="down",
        current_value=425,
    )


@pytest.fixture
def survey_metric():
    """Quarterly survey score stored alongside one yearly record."""
    return make_metric(
        "k1-2",
        [("2023-Q4", 35), ("2024-Q1", 38), ("2024-Q2", 42), ("2024", 40)],
        label="Employee satisfaction (eNPS)",
        unit="pts",
        target=50,
        default_granularity="Quarter",
    )


@pytest.fixture
def sample_store(retention_metric, handle_time_metric, survey_metric):
    """Two projects, the first holding two metrics."""
    return RecordStore(
        projects=[
            Project("p1", "Core staff retention", "Workforce", [retention_metric, survey_metric]),
            Project("p3", "Average handle time reduction", "Efficiency", [handle_time_metric]),
        ]
    )


@pytest.fixture
def store_document():
    """A record store payload in the dashboard export shape."""
    return [
        {
            "id": "p1",
            "name": "Core staff retention",
            "category": "Workforce",
            "kpis": [
                {
                    "id": "k1",
                    "label": "Core retention rate",
                    "value": 85,
                    "unit": "%",
                    "target": 90,
                    "timeWindow": "Month",
                    "aggregation": "avg",
                    "direction": "up",
                    "chartData": [
                        {"month": "2024-01", "value": 80},
                        {"month": "2024-02", "value": 82},
                        {"month": "2024-03", "value": 78},
                    ],
                }
            ],
        },
        {
            "id": "p3",
            "name": "Average handle time reduction",
            "kpis": [
                {
                    "id": "k3",
                    "label": "Average handle time (AHT)",
                    "unit": "s",
                    "target": 420,
                    "direction": "down",
                    "chartData": [
                        {"month": "2024-05", "value": 440},
                        {"month": "2024-06", "value": 425},
                    ],
                }
            ],
        },
    ]


@pytest.fixture
def store_file(tmp_path, store_document):
    """Write :func:`store_document` to disk and return its path."""
    path = tmp_path / "store.json"
    path.write_text(json.dumps(store_document))
    return path
