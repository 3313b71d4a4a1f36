"""Plotting tools for aggregated KPI series."""

from dataclasses import dataclass
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from ..engine.selector import MetricView
from .utils import ensure_directory, format_delta, format_percent, to_numpy


def _axis_limits(
    values: np.ndarray, *, target: float | None = None, padding: float = 0.1
) -> tuple[float, float]:
    """Return y-axis limits that frame the series and the target line."""
    if values.size == 0:
        return (0.0, 1.0)
    points = values if target is None else np.append(values, target)
    lower = float(points.min())
    upper = float(points.max())
    span = upper - lower
    if span <= 0:
        span = max(abs(lower), 1.0)
    margin = span * padding
    return lower - margin, upper + margin


@dataclass(frozen=True)
class TrendPlotConfig:
    """Styling options for KPI trend charts."""

    title: str | None = None
    xlabel: str = "Period"
    color: str = "#2563eb"
    fill_alpha: float = 0.15
    line_width: float = 2.0
    target_color: str = "#94a3b8"
    improved_color: str = "#16a34a"
    regressed_color: str = "#dc2626"
    show_target: bool = True


@dataclass(frozen=True)
class TrendPlotReport:
    """Metadata describing a saved trend chart."""

    path: Path
    points: int


def generate_trend_plot(
    view: MetricView,
    *,
    output_dir: str | Path = "out",
    filename: str = "trend.png",
    config: TrendPlotConfig | None = None,
) -> TrendPlotReport:
    """Render the bucket series of ``view`` as an area chart.

    The comparison buckets are highlighted in green when the change is an
    improvement for the metric and red otherwise.
    """
    config = config or TrendPlotConfig()
    out_dir = ensure_directory(output_dir)
    metric = view.metric

    labels = view.labels
    values = to_numpy(bucket.value for bucket in view.buckets)
    positions = np.arange(len(labels))

    fig, ax = plt.subplots(figsize=(11, 5))
    ax.set_title(config.title or f"{metric.label or metric.id} ({view.granularity.value})")
    ax.set_xlabel(config.xlabel)
    ax.set_ylabel(metric.unit or "Value")

    if view.is_empty:
        ax.text(0.5, 0.5, "No data in this view", ha="center", va="center", transform=ax.transAxes)
    else:
        ax.plot(positions, values, color=config.color, linewidth=config.line_width, marker="o")
        baseline = values.min()
        ax.fill_between(positions, values, baseline, color=config.color, alpha=config.fill_alpha)
        ax.set_xticks(positions)
        ax.set_xticklabels(labels, rotation=45, ha="right")
        target = metric.target if config.show_target else None
        if target is not None:
            ax.axhline(
                target, color=config.target_color, linestyle="--", linewidth=1.0, label="Target"
            )
        ax.set_ylim(*_axis_limits(values, target=target))
        comparison = view.comparison
        if comparison is not None:
            color = config.improved_color if comparison.improved else config.regressed_color
            for label in {comparison.label_a, comparison.label_b}:
                if label in labels:
                    index = labels.index(label)
                    ax.scatter([index], [values[index]], s=80, color=color, zorder=3)
            ax.legend(
                title=(
                    f"{comparison.label_a} vs {comparison.label_b}: "
                    f"{format_delta(comparison.delta, metric.unit)} "
                    f"({format_percent(comparison.percent_change)})"
                ),
                loc="upper left",
            )
    ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.6)
    fig.tight_layout()

    output_path = out_dir / filename
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    return TrendPlotReport(path=output_path, points=len(labels))
