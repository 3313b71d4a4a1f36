"""Parsing, formatting, and ordering of KPI period strings."""

import enum
import re

from attrs import define, field


class PeriodFormatError(ValueError):
    """Raised when a period string cannot be parsed into a year and subunit."""


class Granularity(enum.Enum):
    """Calendar resolution of a period, ordered from finest to coarsest."""

    MONTH = "Month"
    QUARTER = "Quarter"
    HALF_YEAR = "HalfYear"
    YEAR = "Year"

    @property
    def rank(self) -> int:
        """Return the ordinal position, Month being the finest."""
        return _RANKS[self]

    def is_coarser_than(self, other: "Granularity") -> bool:
        """Return True when this granularity cannot be split into ``other``."""
        return self.rank > other.rank

    @classmethod
    def parse(cls, value: "str | Granularity") -> "Granularity":
        """Resolve a granularity from its name, case-insensitively."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().replace("-", "").replace("_", "").lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        valid = ", ".join(member.value for member in cls)
        raise ValueError(f"Unknown granularity {value!r}. Choose one of: {valid}.")


_RANKS = {
    Granularity.MONTH: 0,
    Granularity.QUARTER: 1,
    Granularity.HALF_YEAR: 2,
    Granularity.YEAR: 3,
}

# Upper bound of the subunit for each granularity; Year has none.
_SUBUNIT_LIMITS = {
    Granularity.MONTH: 12,
    Granularity.QUARTER: 4,
    Granularity.HALF_YEAR: 2,
}

_SUBUNIT_LETTERS = {Granularity.QUARTER: "Q", Granularity.HALF_YEAR: "H"}

_PERIOD_PATTERN = re.compile(r"^(?P<year>\d{1,4})(?:-(?P<letter>[QH])?(?P<sub>\d{1,2}))?$", re.I)


def _validate_subunit(instance: "PeriodKey", attribute: object, value: int) -> None:
    """Reject subunits outside the calendar range of the granularity."""
    limit = _SUBUNIT_LIMITS.get(instance.granularity)
    if limit is None:
        if value != 0:
            raise PeriodFormatError(f"Year periods carry no subunit, got {value}.")
        return
    if not 1 <= value <= limit:
        raise PeriodFormatError(
            f"{instance.granularity.value} subunit must lie in 1..{limit}, got {value}."
        )


def _validate_year(instance: "PeriodKey", attribute: object, value: int) -> None:
    """Keep years within four digits so sort keys stay fixed width."""
    if not 0 <= value <= 9999:
        raise PeriodFormatError(f"Year must lie in 0..9999, got {value}.")


@define(slots=True, frozen=True, order=False)
class PeriodKey:
    """Structured period value at one of the four calendar granularities."""

    year: int = field(validator=_validate_year)
    subunit: int = field(validator=_validate_subunit)
    granularity: Granularity

    @classmethod
    def from_parts(
        cls,
        year: int,
        granularity: Granularity | str,
        subunit: int | str | None = None,
    ) -> "PeriodKey":
        """Build a key from an entry form style year, granularity, and subunit.

        ``subunit`` may be a bare number or carry its letter (``"Q3"``, ``"H1"``).
        """
        resolved = Granularity.parse(granularity)
        try:
            year_number = int(year)
        except (TypeError, ValueError) as exc:
            raise PeriodFormatError(f"Cannot parse year from {year!r}.") from exc
        if resolved is Granularity.YEAR:
            return cls(year=year_number, subunit=0, granularity=resolved)
        if subunit is None:
            raise PeriodFormatError(f"{resolved.value} periods require a subunit.")
        text = str(subunit).strip().upper()
        letter = _SUBUNIT_LETTERS.get(resolved, "")
        if text[:1].isalpha():
            if text[:1] != letter:
                raise PeriodFormatError(
                    f"Subunit {subunit!r} does not match {resolved.value} granularity."
                )
            text = text[1:]
        try:
            number = int(text)
        except ValueError as exc:
            raise PeriodFormatError(f"Cannot parse subunit from {subunit!r}.") from exc
        return cls(year=year_number, subunit=number, granularity=resolved)

    @property
    def sort_key(self) -> str:
        """Fixed-width string whose lexicographic order is chronological."""
        year = f"{self.year:04d}"
        if self.granularity is Granularity.QUARTER:
            return f"{year}-Q{self.subunit}"
        if self.granularity is Granularity.HALF_YEAR:
            return f"{year}-H{self.subunit}"
        if self.granularity is Granularity.MONTH:
            return f"{year}-{self.subunit:02d}"
        return year

    @property
    def label(self) -> str:
        """Canonical display string of the period."""
        return self.sort_key

    def rollup(self, target: Granularity) -> "PeriodKey | None":
        """Return the enclosing period at ``target``, or None if this key is coarser."""
        if self.granularity.is_coarser_than(target):
            return None
        if self.granularity is target:
            return self
        if target is Granularity.YEAR:
            return PeriodKey(year=self.year, subunit=0, granularity=target)
        month = self._first_month()
        if target is Granularity.QUARTER:
            return PeriodKey(year=self.year, subunit=(month - 1) // 3 + 1, granularity=target)
        return PeriodKey(year=self.year, subunit=1 if month <= 6 else 2, granularity=target)

    def _first_month(self) -> int:
        """Return the first calendar month covered by this period."""
        if self.granularity is Granularity.MONTH:
            return self.subunit
        if self.granularity is Granularity.QUARTER:
            return (self.subunit - 1) * 3 + 1
        if self.granularity is Granularity.HALF_YEAR:
            return (self.subunit - 1) * 6 + 1
        return 1

    def __str__(self) -> str:
        return self.label


def parse_period(text: str) -> PeriodKey:
    """Parse ``YYYY-MM``, ``YYYY-QN``, ``YYYY-HN`` or ``YYYY`` into a :class:`PeriodKey`."""
    if not isinstance(text, str):
        raise PeriodFormatError(f"Period must be a string, got {type(text).__name__}.")
    match = _PERIOD_PATTERN.match(text.strip())
    if match is None:
        raise PeriodFormatError(f"Cannot parse period from {text!r}.")
    year = int(match["year"])
    sub = match["sub"]
    if sub is None:
        return PeriodKey(year=year, subunit=0, granularity=Granularity.YEAR)
    letter = (match["letter"] or "").upper()
    if letter == "Q":
        granularity = Granularity.QUARTER
    elif letter == "H":
        granularity = Granularity.HALF_YEAR
    else:
        granularity = Granularity.MONTH
    return PeriodKey(year=year, subunit=int(sub), granularity=granularity)


def coerce_period(value: "str | PeriodKey") -> PeriodKey:
    """Return ``value`` as a :class:`PeriodKey`, parsing strings."""
    if isinstance(value, PeriodKey):
        return value
    return parse_period(value)


__all__ = [
    "Granularity",
    "PeriodFormatError",
    "PeriodKey",
    "coerce_period",
    "parse_period",
]
