"""Visualization utilities for KPI series."""

from .plots import TrendPlotConfig, TrendPlotReport, generate_trend_plot

__all__ = ["TrendPlotConfig", "TrendPlotReport", "generate_trend_plot"]
