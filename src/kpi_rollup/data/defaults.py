"""Sample dashboard projects used when no record store is configured."""

from .store import RecordStore

_MONTHS = [
    "2023-07",
    "2023-08",
    "2023-09",
    "2023-10",
    "2023-11",
    "2023-12",
    "2024-01",
    "2024-02",
    "2024-03",
    "2024-04",
    "2024-05",
    "2024-06",
]


def _monthly(values: list[float]) -> list[dict[str, object]]:
    """Pair consecutive sample months with ``values``."""
    return [{"month": month, "value": value} for month, value in zip(_MONTHS, values, strict=True)]


DEFAULT_PROJECTS: list[dict[str, object]] = [
    {
        "id": "p1",
        "name": "Core staff retention",
        "category": "Workforce operations",
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
                "chartData": _monthly([82, 83, 81, 80, 78, 76, 85, 82, 78, 80, 83, 85]),
            },
            {
                "id": "k1-2",
                "label": "Employee satisfaction (eNPS)",
                "value": 42,
                "unit": "pts",
                "target": 50,
                "timeWindow": "Quarter",
                "aggregation": "avg",
                "direction": "up",
                "chartData": [
                    {"month": "2023-Q1", "value": 28},
                    {"month": "2023-Q2", "value": 29},
                    {"month": "2023-Q3", "value": 30},
                    {"month": "2023-Q4", "value": 35},
                    {"month": "2024-Q1", "value": 38},
                    {"month": "2024-Q2", "value": 42},
                ],
            },
        ],
    },
    {
        "id": "p2",
        "name": "Omnichannel customer experience (NPS)",
        "category": "Quality management",
        "kpis": [
            {
                "id": "k2",
                "label": "Customer satisfaction (CSAT)",
                "value": 4.6,
                "unit": "pts",
                "target": 4.8,
                "timeWindow": "Month",
                "aggregation": "avg",
                "direction": "up",
                "chartData": _monthly(
                    [4.0, 4.1, 4.1, 4.2, 4.2, 4.3, 4.2, 4.3, 4.1, 4.4, 4.5, 4.6]
                ),
            }
        ],
    },
    {
        "id": "p3",
        "name": "Average handle time reduction",
        "category": "Efficiency",
        "kpis": [
            {
                "id": "k3",
                "label": "Average handle time (AHT)",
                "value": 425,
                "unit": "s",
                "target": 420,
                "timeWindow": "Month",
                "aggregation": "avg",
                "direction": "down",
                "chartData": _monthly([495, 492, 488, 490, 485, 480, 490, 485, 480, 460, 440, 425]),
            }
        ],
    },
]


def default_store() -> RecordStore:
    """Return a store populated with the sample projects."""
    return RecordStore.from_document(DEFAULT_PROJECTS)


__all__ = ["DEFAULT_PROJECTS", "default_store"]
