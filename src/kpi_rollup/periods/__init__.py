"""Calendar period keys for KPI records."""

from .keys import Granularity, PeriodFormatError, PeriodKey, coerce_period, parse_period

__all__ = ["Granularity", "PeriodFormatError", "PeriodKey", "coerce_period", "parse_period"]
