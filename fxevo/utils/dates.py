"""
Calendar helpers for the simulator.

Generation lengths may be given as a duration spec such as ``"1 Y 6 M"``.
Month and year steps follow the calendar (variable month lengths, leap
years), so the number of generations in a date range is found by stepping
through it rather than by dividing day counts.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Union

import pandas as pd

from ..core.exceptions import ValidationError

DateLike = Union[str, date, datetime, pd.Timestamp]

_UNITS = {"Y": "years", "M": "months", "W": "weeks", "D": "days"}
_UNIT_NAMES = (("years", "year"), ("months", "month"), ("weeks", "week"), ("days", "day"))


@dataclass(frozen=True)
class GenerationDuration:
    """Length of one generation, kept in the units it was written in."""
    years: int = 0
    months: int = 0
    weeks: int = 0
    days: int = 0

    def is_empty(self) -> bool:
        return not (self.years or self.months or self.weeks or self.days)

    def offset(self) -> pd.DateOffset:
        return pd.DateOffset(
            years=self.years,
            months=self.months,
            days=self.weeks * 7 + self.days
        )


def parse_generation_duration(spec: str) -> GenerationDuration:
    """
    Parse a generation duration spec.

    The duration is a sequence of ``<integer> <unit>`` pairs where unit is one of
    Y, M, W or D. Each unit may appear once: ``"1 Y 6 M"`` is valid,
    ``"1 Y 2 Y"`` is not.

    Args:
        spec: Duration spec string

    Returns:
        Parsed GenerationDuration

    Raises:
        ValidationError: If the duration is malformed
    """
    parts = spec.split()
    if not parts or len(parts) % 2 != 0:
        raise ValidationError("invalid input format", details=spec)

    values = {}
    for i in range(0, len(parts), 2):
        raw_value, unit = parts[i], parts[i + 1]
        try:
            value = int(raw_value)
        except ValueError:
            raise ValidationError(f"error parsing number: {raw_value!r}", details=spec)
        if unit not in _UNITS:
            raise ValidationError(f"unknown unit: {unit}", details=spec)
        field_name = _UNITS[unit]
        if field_name in values:
            raise ValidationError(f"unit {unit} is repeated", details=spec)
        values[field_name] = value

    return GenerationDuration(**values)


def format_generation_duration(duration: GenerationDuration) -> str:
    """Render a duration as ``"1 year 2 months"``."""
    words = []
    for attr, singular in _UNIT_NAMES:
        value = getattr(duration, attr)
        if value:
            words.append(f"{value} {singular if value == 1 else attr}")
    return " ".join(words)


def to_date(value: DateLike) -> date:
    """
    Coerce an ISO string, datetime or Timestamp to a ``date``.

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"invalid date: {value!r}, expected YYYY-MM-DD")


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def add_duration(day: date, duration: GenerationDuration) -> date:
    """Return ``day`` advanced by one generation."""
    return (pd.Timestamp(day) + duration.offset()).date()


def count_generations(dt_start: date, dt_stop: date, duration: GenerationDuration) -> int:
    """
    Number of generations needed to cover ``dt_start`` .. ``dt_stop``.

    The last generation may be cut short by ``dt_stop``.
    """
    if duration.is_empty():
        raise ValidationError("generation duration must be non-zero")
    count = 0
    current = dt_start
    while current < dt_stop:
        following = add_duration(current, duration)
        if following <= current:
            raise ValidationError("generation duration must move forward in time",
                                  details=format_generation_duration(duration))
        current = following
        count += 1
    return max(count, 1)


def days_between(dt_start: date, dt_stop: date) -> int:
    return (dt_stop - dt_start).days
