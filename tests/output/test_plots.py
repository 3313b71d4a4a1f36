"""Unit tests for the plotting tools."""

import numpy as np
import pytest

from kpi_rollup.engine import ComparisonPair, build_view
from kpi_rollup.output.plots import TrendPlotConfig, _axis_limits, generate_trend_plot
from kpi_rollup.periods import Granularity


@pytest.fixture
def mock_plt(mocker):
    """Fixture for a mock matplotlib.pyplot."""
    fig_mock = mocker.MagicMock()
    ax_mock = mocker.MagicMock()
    subplots_mock = mocker.patch("matplotlib.pyplot.subplots", return_value=(fig_mock, ax_mock))
    close_mock = mocker.patch("matplotlib.pyplot.close")
    return subplots_mock, fig_mock, ax_mock, close_mock


def test_generate_trend_plot(mock_plt, tmp_path, handle_time_metric):
    """The series is drawn with a target line and a legend describing the comparison."""
    subplots_mock, fig_mock, ax_mock, close_mock = mock_plt
    view = build_view(handle_time_metric)

    report = generate_trend_plot(view, output_dir=tmp_path, filename="k3.png")

    assert report.path == tmp_path / "k3.png"
    assert report.points == 3
    ax_mock.set_title.assert_called_with("Average handle time (AHT) (Month)")
    ax_mock.set_ylabel.assert_called_with("s")
    ax_mock.plot.assert_called_once()
    ax_mock.axhline.assert_called_once()
    assert ax_mock.axhline.call_args.args == (420.0,)
    legend_title = ax_mock.legend.call_args.kwargs["title"]
    assert legend_title == "2024-06 vs 2024-05: -15.0 s (-3.4%)"
    # An improvement for a lower-is-better metric is highlighted in green.
    for call in ax_mock.scatter.call_args_list:
        assert call.kwargs["color"] == TrendPlotConfig.improved_color
    assert ax_mock.scatter.call_count == 2
    fig_mock.savefig.assert_called_once_with(tmp_path / "k3.png", dpi=150)
    close_mock.assert_called_once_with(fig_mock)


def test_generate_trend_plot_regression_and_hidden_target(mock_plt, tmp_path, retention_metric):
    _, _, ax_mock, _ = mock_plt
    view = build_view(retention_metric, "Month", ComparisonPair("2024-03", "2024-02"))
    config = TrendPlotConfig(title="Retention", show_target=False)

    generate_trend_plot(view, output_dir=tmp_path, config=config)

    ax_mock.set_title.assert_called_with("Retention")
    ax_mock.axhline.assert_not_called()
    colors = {call.kwargs["color"] for call in ax_mock.scatter.call_args_list}
    assert colors == {TrendPlotConfig.regressed_color}


def test_generate_trend_plot_same_label_highlighted_once(mock_plt, tmp_path, survey_metric):
    _, _, ax_mock, _ = mock_plt
    view = build_view(survey_metric, Granularity.QUARTER, ComparisonPair("2024-Q1", "2024-Q1"))

    generate_trend_plot(view, output_dir=tmp_path)

    assert ax_mock.scatter.call_count == 1


def test_generate_trend_plot_empty_view(mock_plt, tmp_path, survey_metric):
    """An empty view renders a placeholder instead of a series."""
    _, fig_mock, ax_mock, _ = mock_plt
    view = build_view(survey_metric, Granularity.MONTH)

    report = generate_trend_plot(view, output_dir=tmp_path)

    assert report.points == 0
    assert report.path == tmp_path / "trend.png"
    ax_mock.text.assert_called_once()
    assert "No data" in ax_mock.text.call_args.args[2]
    ax_mock.plot.assert_not_called()
    fig_mock.savefig.assert_called_once()


def test_axis_limits():
    """Test that the axis limits are calculated correctly."""
    values = np.array([80.0, 82.0, 78.0])
    lower, upper = _axis_limits(values)
    assert lower < 78.0
    assert upper > 82.0

    lower_t, upper_t = _axis_limits(values, target=90.0)
    assert upper_t > 90.0

    flat_lower, flat_upper = _axis_limits(np.array([5.0, 5.0]))
    assert flat_lower < 5.0 < flat_upper

    assert _axis_limits(np.array([])) == (0.0, 1.0)
