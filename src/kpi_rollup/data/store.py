"""Read-only, in-memory view of the KPI record store."""

import json
from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog
from attrs import define, field

from .models import MetricDefinition, Project, RawRecord
from .parser import parse_projects

logger = structlog.get_logger(__name__)


class MetricNotFoundError(KeyError):
    """Raised when a metric id is not present in the store."""


class ProjectNotFoundError(KeyError):
    """Raised when a project id is not present in the store."""


def _index_metrics(projects: tuple[Project, ...]) -> dict[str, MetricDefinition]:
    """Map metric ids to definitions; the first occurrence of an id wins."""
    index: dict[str, MetricDefinition] = {}
    for project in projects:
        for metric in project.metrics:
            if metric.id in index:
                logger.warning("store.duplicate_metric", metric_id=metric.id, project_id=project.id)
                continue
            index[metric.id] = metric
    return index


@define(slots=True, frozen=True)
class RecordStore:
    """Projects and metrics supplied by the content-management side.

    The store is immutable; :meth:`extended` returns a new store so consumers
    can detect record set changes by identity.
    """

    projects: tuple[Project, ...] = field(converter=tuple, factory=tuple)
    _metrics: dict[str, MetricDefinition] = field(init=False, repr=False, eq=False)

    def __attrs_post_init__(self) -> None:
        """Build the metric lookup table."""
        object.__setattr__(self, "_metrics", _index_metrics(self.projects))

    @classmethod
    def from_document(cls, payload: object, *, strict: bool = True) -> "RecordStore":
        """Build a store from a decoded JSON document."""
        return cls(projects=parse_projects(payload, strict=strict))

    @classmethod
    def from_json(cls, path: str | Path, *, strict: bool = True) -> "RecordStore":
        """Load a store from a JSON file in the dashboard export shape."""
        source = Path(path)
        log = logger.bind(path=str(source), strict=strict)
        log.debug("store.load_start")
        store = cls.from_document(json.loads(source.read_text(encoding="utf-8")), strict=strict)
        log.info("store.loaded", projects=len(store.projects), metrics=len(store._metrics))
        return store

    def project(self, project_id: str) -> Project:
        """Return the project with ``project_id``."""
        for project in self.projects:
            if project.id == project_id:
                return project
        raise ProjectNotFoundError(project_id)

    def metric(self, metric_id: str) -> MetricDefinition:
        """Return the metric definition with ``metric_id``."""
        try:
            return self._metrics[metric_id]
        except KeyError:
            raise MetricNotFoundError(metric_id) from None

    def records(self, metric_id: str) -> tuple[RawRecord, ...]:
        """Return the records of ``metric_id`` in store order."""
        return self.metric(metric_id).records

    def metrics(self) -> list[MetricDefinition]:
        """Return every metric across projects in project order."""
        return list(self._metrics.values())

    def project_of(self, metric_id: str) -> Project:
        """Return the project that owns ``metric_id``."""
        for project in self.projects:
            if project.metric(metric_id) is not None:
                return project
        raise MetricNotFoundError(metric_id)

    def extended(self, additions: Mapping[str, Iterable[RawRecord]]) -> "RecordStore":
        """Return a new store with ``additions`` appended to the named metrics."""
        unknown = set(additions) - set(self._metrics)
        if unknown:
            raise MetricNotFoundError(", ".join(sorted(unknown)))
        projects = []
        for project in self.projects:
            metrics = [
                metric.with_records(metric.records + tuple(additions[metric.id]))
                if metric.id in additions
                else metric
                for metric in project.metrics
            ]
            projects.append(Project(project.id, project.name, project.category, metrics))
        return RecordStore(projects=projects)

    def __len__(self) -> int:
        return len(self._metrics)


__all__ = ["MetricNotFoundError", "ProjectNotFoundError", "RecordStore"]
