"""Read-only asyncpg access to a PostgreSQL-hosted KPI record store."""

import re
from collections.abc import Iterable
from typing import Any

import asyncpg
import structlog
from attrs import define, field

from .models import MetricDefinition, Project
from .parser import parse_records
from .store import MetricNotFoundError, RecordStore

logger = structlog.get_logger(__name__)

_METRIC_COLUMNS = (
    "metric_id, project_id, label, unit, target, current_value, "
    "default_granularity, aggregation, direction"
)


def _validate_identifier(value: str) -> str:
    """Ensure the provided identifier is a valid unquoted SQL identifier."""
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", value):
        raise ValueError(f"Invalid SQL identifier: {value!r}")
    return value


@define(slots=True)
class KpiDatabaseReader:
    """Query KPI definitions and records; never writes back to the store."""

    dsn: str | None = None
    schema: str = field(default="public", converter=_validate_identifier)
    connection_kwargs: dict[str, Any] = field(factory=dict)
    strict: bool = True
    _connection: asyncpg.Connection | None = field(default=None, init=False, repr=False)

    async def connect(self, **overrides: Any) -> asyncpg.Connection:
        """Establish (or reuse) the async connection."""
        if self._connection is not None:
            return self._connection
        kwargs: dict[str, Any] = {**self.connection_kwargs, **overrides}
        if self.dsn:
            connection = await asyncpg.connect(self.dsn, **kwargs)
        else:
            connection = await asyncpg.connect(**kwargs)
        self._connection = connection
        return connection

    async def close(self) -> None:
        """Close the open connection, if any."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def fetch_metric(self, metric_id: str) -> MetricDefinition:
        """Return one metric definition with all of its records."""
        conn = await self.connect()
        row = await conn.fetchrow(
            f"SELECT {_METRIC_COLUMNS} FROM {self._qualified('kpi_metric')} "  # noqa: S608
            "WHERE metric_id = $1",
            metric_id,
        )
        if row is None:
            raise MetricNotFoundError(metric_id)
        records = await conn.fetch(
            f"SELECT metric_id, period, value FROM {self._qualified('kpi_record')} "  # noqa: S608
            "WHERE metric_id = $1",
            metric_id,
        )
        return self._build_metric(row, records)

    async def fetch_metrics(self) -> list[MetricDefinition]:
        """Return every metric definition with its records."""
        return [metric for _, metric in await self._fetch_owned_metrics()]

    async def fetch_store(self) -> RecordStore:
        """Assemble a :class:`RecordStore` grouping metrics by project."""
        conn = await self.connect()
        project_rows = await conn.fetch(
            "SELECT project_id, name, category "
            f"FROM {self._qualified('kpi_project')} "  # noqa: S608
            "ORDER BY project_id"
        )
        owned = await self._fetch_owned_metrics()
        projects = [
            Project(
                id=row["project_id"],
                name=row["name"] or "",
                category=row["category"] or "",
                metrics=[metric for owner, metric in owned if owner == row["project_id"]],
            )
            for row in project_rows
        ]
        logger.info("reader.store_fetched", projects=len(projects), metrics=len(owned))
        return RecordStore(projects=projects)

    async def _fetch_owned_metrics(self) -> list[tuple[str, MetricDefinition]]:
        """Return ``(project_id, metric)`` pairs for every stored metric."""
        conn = await self.connect()
        rows = await conn.fetch(
            f"SELECT {_METRIC_COLUMNS} FROM {self._qualified('kpi_metric')} "  # noqa: S608
            "ORDER BY project_id, metric_id"
        )
        record_rows = await conn.fetch(
            f"SELECT metric_id, period, value FROM {self._qualified('kpi_record')}"  # noqa: S608
        )
        by_metric: dict[str, list[Any]] = {}
        for record in record_rows:
            by_metric.setdefault(record["metric_id"], []).append(record)
        owned = [
            (row["project_id"], self._build_metric(row, by_metric.get(row["metric_id"], [])))
            for row in rows
        ]
        logger.debug("reader.metrics_fetched", count=len(owned), records=len(record_rows))
        return owned

    def _build_metric(self, row: Any, record_rows: Iterable[Any]) -> MetricDefinition:
        """Convert database rows into a :class:`MetricDefinition`."""
        records = parse_records(
            ({"period": rec["period"], "value": rec["value"]} for rec in record_rows),
            strict=self.strict,
            metric_id=row["metric_id"],
        )
        return MetricDefinition(
            row["metric_id"],
            label=row["label"] or "",
            unit=row["unit"] or "",
            target=row["target"] if row["target"] is not None else 0.0,
            current_value=row["current_value"],
            default_granularity=row["default_granularity"] or "Month",
            aggregation=row["aggregation"] or "avg",
            direction=row["direction"] or "up",
            records=records,
        )

    def _qualified(self, table: str) -> str:
        """Return a schema-qualified table name."""
        return f"{self.schema}.{table}"


__all__ = ["KpiDatabaseReader"]
