"""Metric selection state and the recompute-on-change dashboard pipeline."""

from typing import Any

import marshmallow as ma
import structlog
from attrs import define, evolve, field

from ..data.models import AggregatedBucket, MetricDefinition
from ..data.store import RecordStore
from ..periods import Granularity
from .aggregate import aggregate
from .compare import ComparisonPair, ComparisonResult, compare, default_pair

logger = structlog.get_logger(__name__)


def _optional_granularity(value: Any) -> Granularity | None:
    """Parse a granularity, passing ``None`` through."""
    if value is None:
        return None
    return Granularity.parse(value)


@define(slots=True, frozen=True, kw_only=True)
class DashboardSelection:
    """The only state a presentation layer owns: what the user picked."""

    project_id: str | None = None
    metric_id: str | None = None
    granularity: Granularity | None = field(default=None, converter=_optional_granularity)
    label_a: str | None = None
    label_b: str | None = None

    @property
    def pair(self) -> ComparisonPair | None:
        """The selected comparison labels, when both are set."""
        if self.label_a is None or self.label_b is None:
            return None
        return ComparisonPair(self.label_a, self.label_b)


class DashboardSelectionSchema(ma.Schema):
    """Marshmallow schema for persisting :class:`DashboardSelection`."""

    project_id = ma.fields.Str(allow_none=True, load_default=None)
    metric_id = ma.fields.Str(allow_none=True, load_default=None)
    granularity = ma.fields.Method(
        "dump_granularity",
        deserialize="load_granularity",
        allow_none=True,
        load_default=None,
    )
    label_a = ma.fields.Str(allow_none=True, load_default=None)
    label_b = ma.fields.Str(allow_none=True, load_default=None)

    def dump_granularity(self, selection: DashboardSelection) -> str | None:
        """Render the granularity by name."""
        return selection.granularity.value if selection.granularity else None

    def load_granularity(self, value: str | None) -> Granularity | None:
        """Parse a granularity name."""
        try:
            return _optional_granularity(value)
        except ValueError as exc:
            raise ma.ValidationError(str(exc)) from exc

    @ma.post_load
    def make_selection(self, data: dict[str, Any], **kwargs: object) -> DashboardSelection:
        """Instantiate :class:`DashboardSelection` from validated payloads."""
        return DashboardSelection(**data)


def _merge_pair(
    current: ComparisonPair | None, label_a: str | None, label_b: str | None
) -> ComparisonPair | None:
    """Override either side of ``current``; None when there is nothing to compare."""
    if current is None:
        return None
    return ComparisonPair(
        label_a if label_a is not None else current.label_a,
        label_b if label_b is not None else current.label_b,
    )


def default_granularity(metric: MetricDefinition) -> Granularity:
    """Granularity shown when ``metric`` is first selected."""
    return metric.default_granularity


@define(slots=True, frozen=True, kw_only=True)
class MetricView:
    """Computed series and comparison for the current selection."""

    metric: MetricDefinition
    granularity: Granularity
    buckets: tuple[AggregatedBucket, ...] = field(converter=tuple)
    pair: ComparisonPair | None = None
    comparison: ComparisonResult | None = None

    @property
    def is_empty(self) -> bool:
        """True when no record maps into this granularity."""
        return not self.buckets

    @property
    def labels(self) -> list[str]:
        """Bucket labels in chronological order."""
        return [bucket.label for bucket in self.buckets]


def build_view(
    metric: MetricDefinition,
    granularity: Granularity | str | None = None,
    pair: ComparisonPair | None = None,
) -> MetricView:
    """Run the full pipeline for one metric.

    Without an explicit ``pair`` the default (latest against previous) is used.
    """
    resolved = Granularity.parse(granularity) if granularity else default_granularity(metric)
    buckets = aggregate(metric.records, resolved, metric.aggregation)
    chosen = pair if pair is not None else default_pair(buckets)
    comparison = None
    if chosen is not None and buckets:
        comparison = compare(buckets, chosen.label_a, chosen.label_b, metric.direction)
    return MetricView(
        metric=metric,
        granularity=resolved,
        buckets=buckets,
        pair=chosen if buckets else None,
        comparison=comparison,
    )


@define(slots=True)
class DashboardSession:
    """Hold the user's selection against a record store and keep the view current.

    The pipeline reruns when the metric, the granularity, or the record store
    changes. Each rerun that yields a different bucket set resets the
    comparison pair to its default; user overrides otherwise stick.
    """

    store: RecordStore
    _selection: DashboardSelection = field(factory=DashboardSelection, init=False)
    _view: MetricView | None = field(default=None, init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        """Open the first project, mirroring the dashboard's initial load."""
        if self.store.projects:
            self.select_project(self.store.projects[0].id)

    @property
    def selection(self) -> DashboardSelection:
        """Current serializable selection."""
        return self._selection

    @property
    def view(self) -> MetricView | None:
        """Current computed view, or None when no metric is selected."""
        return self._view

    def select_project(self, project_id: str) -> MetricView | None:
        """Open a project and select its first metric."""
        project = self.store.project(project_id)
        if not project.metrics:
            self._selection = DashboardSelection(project_id=project.id)
            self._view = None
            logger.info("session.project_empty", project_id=project.id)
            return None
        return self.select_metric(project.metrics[0].id)

    def select_metric(self, metric_id: str) -> MetricView:
        """Select a metric and switch to its default granularity."""
        metric = self.store.metric(metric_id)
        project = self.store.project_of(metric_id)
        return self._rerun(project.id, metric, default_granularity(metric))

    def set_granularity(self, granularity: Granularity | str) -> MetricView:
        """Switch the display granularity of the selected metric."""
        metric = self._require_metric()
        return self._rerun(self._selection.project_id, metric, Granularity.parse(granularity))

    def set_comparison(self, label_a: str | None = None, label_b: str | None = None) -> MetricView:
        """Override period A and/or period B independently."""
        view = self._require_view()
        if view.is_empty:
            logger.info(
                "session.comparison_ignored", metric_id=view.metric.id, reason="no buckets"
            )
            return view
        pair = _merge_pair(view.pair, label_a, label_b)
        comparison = compare(view.buckets, pair.label_a, pair.label_b, view.metric.direction)
        if comparison.is_stale:
            logger.warning(
                "session.stale_comparison",
                metric_id=view.metric.id,
                label_a=pair.label_a,
                label_b=pair.label_b,
            )
        self._view = evolve(view, pair=pair, comparison=comparison)
        self._selection = evolve(self._selection, label_a=pair.label_a, label_b=pair.label_b)
        return self._view

    def refresh(self, store: RecordStore | None = None) -> MetricView | None:
        """Recompute after the record store changed (or was replaced)."""
        if store is not None:
            self.store = store
        if self._selection.metric_id is None:
            return self._view
        metric = self.store.metric(self._selection.metric_id)
        return self._rerun(self._selection.project_id, metric, self._selection.granularity)

    def restore(self, selection: DashboardSelection) -> MetricView | None:
        """Re-apply a previously serialized selection, keeping its labels."""
        if selection.metric_id is None:
            if selection.project_id is not None:
                return self.select_project(selection.project_id)
            return None
        metric = self.store.metric(selection.metric_id)
        granularity = selection.granularity or default_granularity(metric)
        defaults = build_view(metric, granularity)
        view = build_view(
            metric, granularity, _merge_pair(defaults.pair, selection.label_a, selection.label_b)
        )
        self._view = view
        self._selection = DashboardSelection(
            project_id=selection.project_id or self.store.project_of(metric.id).id,
            metric_id=metric.id,
            granularity=granularity,
            label_a=view.pair.label_a if view.pair else None,
            label_b=view.pair.label_b if view.pair else None,
        )
        return view

    def _rerun(
        self,
        project_id: str | None,
        metric: MetricDefinition,
        granularity: Granularity | None,
    ) -> MetricView:
        """Recompute buckets and re-default the pair when the bucket set changed."""
        resolved = granularity or default_granularity(metric)
        previous = self._view
        fresh = build_view(metric, resolved)
        unchanged = (
            previous is not None
            and previous.metric.id == metric.id
            and previous.granularity is resolved
            and previous.buckets == fresh.buckets
        )
        if unchanged and previous.pair is not None:
            fresh = build_view(metric, resolved, previous.pair)
        self._view = fresh
        self._selection = DashboardSelection(
            project_id=project_id,
            metric_id=metric.id,
            granularity=resolved,
            label_a=fresh.pair.label_a if fresh.pair else None,
            label_b=fresh.pair.label_b if fresh.pair else None,
        )
        logger.debug(
            "session.recomputed",
            metric_id=metric.id,
            granularity=resolved.value,
            buckets=len(fresh.buckets),
            pair_reset=not unchanged,
        )
        return fresh

    def _require_metric(self) -> MetricDefinition:
        """Return the selected metric or fail when none is selected."""
        return self._require_view().metric

    def _require_view(self) -> MetricView:
        """Return the current view or fail when no metric is selected."""
        if self._view is None:
            raise RuntimeError("No metric is selected.")
        return self._view


__all__ = [
    "DashboardSelection",
    "DashboardSelectionSchema",
    "DashboardSession",
    "MetricView",
    "build_view",
    "default_granularity",
]
