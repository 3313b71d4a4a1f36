"""Command line entry point for the kpi-rollup application."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
import marshmallow as ma
import structlog

from kpi_rollup.data import (
    AggregatedBucketSchema,
    KpiDatabaseReader,
    MetricDefinition,
    MetricNotFoundError,
    RecordStore,
    default_store,
    parse_records_csv,
)
from kpi_rollup.engine import ComparisonPair, ComparisonResultSchema, MetricView, build_view
from kpi_rollup.logging import LOG_FORMATS, LOG_LEVELS, configure_logging
from kpi_rollup.output import TrendPlotConfig, generate_trend_plot
from kpi_rollup.output.utils import format_delta, format_percent, format_value
from kpi_rollup.periods import Granularity, PeriodFormatError

STORE_HELP = (
    "Record store JSON in the dashboard export shape. May also be set via the "
    "KPI_ROLLUP_STORE env var. Defaults to the bundled sample projects."
)
DSN_HELP = "PostgreSQL connection string. May also be set via the KPI_ROLLUP_DSN env var."
SCHEMA_HELP = (
    "Database schema holding the KPI tables. May also be set via the KPI_ROLLUP_SCHEMA env var."
)
RECORDS_HELP = "Extra metric_id,period,value CSV rows appended to the store before rollup."

GRANULARITY_CHOICES = tuple(granularity.value for granularity in Granularity)

logger = structlog.get_logger(__name__)


def _load_store(ctx: click.Context) -> RecordStore:
    """Resolve the record store from the database, a JSON file, or the samples."""
    ctx.ensure_object(dict)
    cached = ctx.obj.get("store")
    if cached is not None:
        return cached
    strict = ctx.obj.get("strict", True)
    load_log = logger.bind(scope="store-load", strict=strict)
    try:
        if ctx.obj.get("dsn"):
            store = asyncio.run(_fetch_store(ctx.obj["dsn"], ctx.obj["schema"], strict=strict))
            load_log.debug("store.source", source="database", schema=ctx.obj["schema"])
        elif ctx.obj.get("store_path"):
            store = RecordStore.from_json(ctx.obj["store_path"], strict=strict)
            load_log.debug("store.source", source="file", path=str(ctx.obj["store_path"]))
        else:
            store = default_store()
            load_log.debug("store.source", source="samples")
        records_path = ctx.obj.get("records_path")
        if records_path is not None:
            additions = parse_records_csv(records_path.read_text(encoding="utf-8"), strict=strict)
            store = store.extended(additions)
            load_log.info("store.extended", metrics=sorted(additions))
    except (PeriodFormatError, ma.ValidationError, ValueError) as exc:
        raise click.ClickException(f"Could not load the record store: {exc}") from exc
    except MetricNotFoundError as exc:
        raise click.ClickException(f"Records reference unknown metrics: {exc.args[0]}") from exc
    ctx.obj["store"] = store
    return store


async def _fetch_store(dsn: str, schema: str, *, strict: bool) -> RecordStore:
    """Read the whole record store through the asyncpg reader."""
    reader = KpiDatabaseReader(dsn=dsn, schema=schema, strict=strict)
    try:
        return await reader.fetch_store()
    finally:
        await reader.close()


def _require_metric(store: RecordStore, metric_id: str) -> MetricDefinition:
    """Look up a metric or report it as a bad ``--metric`` value."""
    try:
        return store.metric(metric_id)
    except MetricNotFoundError:
        raise click.BadParameter(f"Unknown metric {metric_id!r}.", param_hint="--metric") from None


def _build_view(
    ctx: click.Context,
    metric_id: str,
    granularity: str | None,
    label_a: str | None = None,
    label_b: str | None = None,
) -> MetricView:
    """Run the rollup pipeline for one metric, honoring explicit comparison labels."""
    metric = _require_metric(_load_store(ctx), metric_id)
    pair = None
    if label_a is not None or label_b is not None:
        defaults = build_view(metric, granularity).pair
        if defaults is None and (label_a is None or label_b is None):
            raise click.BadParameter(
                "Both --a and --b are required when the view has no buckets.",
                param_hint="--a/--b",
            )
        pair = ComparisonPair(
            label_a if label_a is not None else defaults.label_a,
            label_b if label_b is not None else defaults.label_b,
        )
    return build_view(metric, granularity, pair)


def _view_rows(view: MetricView) -> list[dict[str, object]]:
    """Flatten a view into export rows."""
    return [
        {
            "metric_id": view.metric.id,
            "granularity": view.granularity.value,
            "period": bucket.label,
            "value": bucket.value,
            "count": bucket.count,
        }
        for bucket in view.buckets
    ]


@click.group()
@click.option(
    "--store",
    "store_path",
    envvar="KPI_ROLLUP_STORE",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help=STORE_HELP,
)
@click.option("--dsn", envvar="KPI_ROLLUP_DSN", help=DSN_HELP, default=None)
@click.option(
    "--schema",
    envvar="KPI_ROLLUP_SCHEMA",
    default="public",
    show_default=True,
    help=SCHEMA_HELP,
)
@click.option(
    "--records",
    "records_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help=RECORDS_HELP,
)
@click.option(
    "--strict/--lenient",
    default=True,
    show_default=True,
    help="Fail on malformed records instead of logging and skipping them.",
)
@click.option(
    "--log-level",
    type=click.Choice(tuple(LOG_LEVELS), case_sensitive=False),
    envvar="KPI_ROLLUP_LOG_LEVEL",
    default="warning",
    show_default=True,
    help="Verbosity for structured logs.",
)
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMATS, case_sensitive=False),
    envvar="KPI_ROLLUP_LOG_FORMAT",
    default="console",
    show_default=True,
    help="Render logs as console-friendly text or JSON.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    store_path: Path | None,
    dsn: str | None,
    schema: str,
    records_path: Path | None,
    strict: bool,
    log_level: str,
    log_format: str,
) -> None:
    """Roll up, aggregate, and compare dashboard KPI series."""
    configure_logging(level=log_level, fmt=log_format)
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "store_path": store_path,
            "dsn": dsn,
            "schema": schema,
            "records_path": records_path,
            "strict": strict,
        }
    )
    logger.bind(command_group="kpi-rollup").debug(
        "cli.initialized",
        store=str(store_path) if store_path else None,
        dsn=bool(dsn),
        schema=schema,
        strict=strict,
        log_level=log_level.lower(),
        log_format=log_format.lower(),
    )


@cli.command("metrics")
@click.pass_context
def metrics(ctx: click.Context) -> None:
    """List the projects and metrics in the record store."""
    store = _load_store(ctx)
    for project in store.projects:
        category = f" [{project.category}]" if project.category else ""
        click.echo(f"{project.id}: {project.name}{category}")
        for metric in project.metrics:
            status = "on target" if metric.meets_target() else "off target"
            current = (
                format_value(metric.current_value, metric.unit)
                if metric.current_value is not None
                else "n/a"
            )
            click.echo(
                f"  {metric.id}  {metric.label}  "
                f"{current} / target {format_value(metric.target, metric.unit)} "
                f"({status}, {metric.default_granularity.value}, "
                f"{metric.aggregation.value}, {metric.direction.value})"
            )


def _metric_options(func):
    """Attach the shared ``--metric`` and ``--granularity`` options."""
    func = click.option(
        "--granularity",
        type=click.Choice(GRANULARITY_CHOICES, case_sensitive=False),
        default=None,
        help="Display granularity; defaults to the metric's own window.",
    )(func)
    return click.option("--metric", "metric_id", required=True, help="Metric id to roll up.")(
        func
    )


@cli.command("series")
@_metric_options
@click.pass_context
def series(ctx: click.Context, *, metric_id: str, granularity: str | None) -> None:
    """Print the aggregated bucket series of a metric as JSON."""
    view = _build_view(ctx, metric_id, granularity)
    payload = {
        "metric_id": view.metric.id,
        "granularity": view.granularity.value,
        "aggregation": view.metric.aggregation.value,
        "buckets": AggregatedBucketSchema(many=True).dump(view.buckets),
    }
    click.echo(json.dumps(payload, indent=2))
    logger.info("command.completed", command="series", buckets=len(view.buckets))


@cli.command("compare")
@_metric_options
@click.option("--a", "label_a", default=None, help="Label of period A (defaults to the latest).")
@click.option("--b", "label_b", default=None, help="Label of period B (defaults to the previous).")
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit the result as JSON.")
@click.pass_context
def compare_periods(
    ctx: click.Context,
    *,
    metric_id: str,
    granularity: str | None,
    label_a: str | None,
    label_b: str | None,
    as_json: bool,
) -> None:
    """Compare two periods of a metric at the chosen granularity."""
    view = _build_view(ctx, metric_id, granularity, label_a, label_b)
    result = view.comparison
    if result is None:
        raise click.ClickException(
            f"No data for {view.metric.id} at {view.granularity.value} granularity."
        )
    if result.is_stale:
        logger.warning(
            "compare.missing_label",
            metric_id=view.metric.id,
            label_a=result.label_a,
            label_b=result.label_b,
        )
    if as_json:
        click.echo(json.dumps(ComparisonResultSchema().dump(result), indent=2))
        return
    unit = view.metric.unit
    verdict = "improved" if result.improved else "worsened"
    click.echo(
        f"{view.metric.id} {result.label_a} vs {result.label_b}: "
        f"{format_value(result.value_a, unit)} vs {format_value(result.value_b, unit)}, "
        f"{format_delta(result.delta, unit)} ({format_percent(result.percent_change)}) {verdict}"
    )


@cli.command("chart")
@_metric_options
@click.option("--a", "label_a", default=None, help="Label of period A to highlight.")
@click.option("--b", "label_b", default=None, help="Label of period B to highlight.")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("out"),
    show_default=True,
    help="Directory for the rendered chart.",
)
@click.option("--title", default=None, help="Override the chart title.")
@click.option(
    "--show-target/--hide-target",
    default=True,
    show_default=True,
    help="Draw the metric target as a dashed line.",
)
@click.pass_context
def chart(
    ctx: click.Context,
    *,
    metric_id: str,
    granularity: str | None,
    label_a: str | None,
    label_b: str | None,
    output_dir: Path,
    title: str | None,
    show_target: bool,
) -> None:
    """Render the aggregated series of a metric as a trend chart."""
    view = _build_view(ctx, metric_id, granularity, label_a, label_b)
    filename = f"{view.metric.id}_{view.granularity.value.lower()}.png"
    report = generate_trend_plot(
        view,
        output_dir=output_dir,
        filename=filename,
        config=TrendPlotConfig(title=title, show_target=show_target),
    )
    click.echo(f"Chart written to {report.path} ({report.points} points)")
    logger.info("command.completed", command="chart", output=str(report.path))


@cli.command("export")
@click.option(
    "--metric",
    "metric_ids",
    multiple=True,
    help="Metric id to export; repeat for several. Defaults to every metric.",
)
@click.option(
    "--granularity",
    type=click.Choice(GRANULARITY_CHOICES, case_sensitive=False),
    default=None,
    help="Display granularity; defaults to each metric's own window.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Destination path ending in .csv or .parquet.",
)
@click.pass_context
def export(
    ctx: click.Context,
    *,
    metric_ids: tuple[str, ...],
    granularity: str | None,
    output: Path,
) -> None:
    """Export aggregated bucket series to CSV or parquet."""
    store = _load_store(ctx)
    selected = (
        [_require_metric(store, metric_id) for metric_id in metric_ids]
        if metric_ids
        else store.metrics()
    )
    rows: list[dict[str, object]] = []
    for metric in selected:
        rows.extend(_view_rows(build_view(metric, granularity)))
    if not rows:
        raise click.ClickException("No buckets were available for export.")
    output.parent.mkdir(parents=True, exist_ok=True)
    if output.suffix.lower() == ".csv":
        _write_csv(rows, output)
    elif output.suffix.lower() in {".parquet", ".pq"}:
        _write_parquet(rows, output)
    else:
        raise click.BadParameter(
            "Export path must end with .csv or .parquet", param_hint="--output"
        )
    click.echo(f"Series written to {output}")
    logger.info("command.completed", command="export", rows=len(rows), output=str(output))


def _write_csv(rows: list[dict[str, object]], path: Path) -> None:
    """Write series rows to CSV via pandas."""
    import pandas as pd  # type: ignore

    df = pd.DataFrame(rows)
    df.to_csv(path, index=False)


def _write_parquet(rows: list[dict[str, object]], path: Path) -> None:
    """Write series rows to parquet via pandas/pyarrow."""
    import pandas as pd  # type: ignore

    df = pd.DataFrame(rows)
    try:
        df.to_parquet(path, index=False)
    except (ImportError, ValueError) as exc:  # pragma: no cover - optional deps
        raise click.ClickException(
            "Writing parquet requires pandas with pyarrow or fastparquet installed."
        ) from exc


if __name__ == "__main__":
    cli()
