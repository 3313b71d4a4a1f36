"""Shared helpers for rendering KPI series."""

from collections.abc import Iterable
from pathlib import Path

import numpy as np


def to_numpy(values: Iterable[float]) -> np.ndarray:
    """Return the input values as a 1D NumPy float array."""
    if isinstance(values, np.ndarray):
        return values
    return np.asarray(list(values), dtype=float)


def ensure_directory(path: str | Path) -> Path:
    """Create the directory at ``path`` if needed and return its Path."""
    directory = Path(path)
    if not directory.exists():
        directory.mkdir(parents=True, exist_ok=True)
    return directory


def format_value(value: float, unit: str = "") -> str:
    """Format a bucket value with one decimal and an optional unit."""
    text = f"{value:.1f}"
    return f"{text} {unit}".strip() if unit else text


def format_delta(delta: float, unit: str = "") -> str:
    """Format a signed change, prefixing positive deltas with ``+``."""
    sign = "+" if delta > 0 else ""
    return f"{sign}{format_value(delta, unit)}"


def format_percent(value: float) -> str:
    """Format a value already expressed in percent."""
    return f"{value:.1f}%"
