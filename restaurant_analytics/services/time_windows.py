"""Canonical time boundaries used to filter records before aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from restaurant_analytics.config.analytics_settings import ANALYTICS_TIMEZONE
from restaurant_analytics.services.errors import ValidationError

DateInput = Union[date, datetime]


@dataclass(frozen=True)
class TimeWindow:
    """Interval ``[start, end)`` (``[start, end]`` when ``include_end``).

    A missing bound means the window is unbounded on that side.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    include_end: bool = False

    def contains(self, instant: datetime) -> bool:
        instant = as_aware(instant)
        if self.start is not None and instant < self.start:
            return False
        if self.end is None:
            return True
        if self.include_end:
            return instant <= self.end
        return instant < self.end

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None


def as_aware(value: datetime) -> datetime:
    """Naive timestamps coming out of the store are UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone '{name}'.") from exc


class TimeWindowResolver:
    """Computes window boundaries relative to an explicit reference instant."""

    def __init__(self, reference: datetime, timezone_name: str = ANALYTICS_TIMEZONE) -> None:
        self.tz = resolve_timezone(timezone_name)
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=self.tz)
        self.reference = reference.astimezone(self.tz)

    def start_of_day(self) -> datetime:
        return self._midnight(self.reference.date())

    def days_back(self, days: int) -> datetime:
        if days < 0:
            raise ValidationError("The number of days must be positive.")
        return self.reference - timedelta(days=days)

    def start_of_year(self) -> datetime:
        return self._midnight(date(self.reference.year, 1, 1))

    def today(self) -> TimeWindow:
        return TimeWindow(start=self.start_of_day())

    def last_days(self, days: int) -> TimeWindow:
        return TimeWindow(start=self.days_back(days))

    def year_to_date(self) -> TimeWindow:
        return TimeWindow(start=self.start_of_year())

    def specific_day(self, day: DateInput) -> TimeWindow:
        if isinstance(day, datetime):
            day = as_aware(day).astimezone(self.tz).date()
        return TimeWindow(start=self._midnight(day), end=self._midnight(day + timedelta(days=1)))

    def custom(self, date_from: Optional[DateInput] = None, date_to: Optional[DateInput] = None) -> TimeWindow:
        """Build a window from optional bounds.

        A calendar date given as ``date_to`` covers that whole day; an instant
        is an inclusive upper bound.
        """

        start = self._lower_bound(date_from) if date_from is not None else None
        end: Optional[datetime] = None
        include_end = False
        if date_to is not None:
            if isinstance(date_to, datetime):
                end = self._localize(date_to)
                include_end = True
            else:
                end = self._midnight(date_to + timedelta(days=1))
        if start is not None and end is not None:
            if start > end or (start == end and not include_end):
                raise ValidationError("date_from must be before date_to.")
        return TimeWindow(start=start, end=end, include_end=include_end)

    def _lower_bound(self, value: DateInput) -> datetime:
        if isinstance(value, datetime):
            return self._localize(value)
        return self._midnight(value)

    def _localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def _midnight(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz)


def parse_date_input(value: Optional[str], *, field: str) -> Optional[DateInput]:
    """Parse a ``YYYY-MM-DD`` day or an ISO-8601 instant from a query parameter."""

    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        if len(candidate) == 10:
            return date.fromisoformat(candidate)
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        return datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationError(f"Invalid date for '{field}': {value!r}.") from exc


__all__ = [
    "DateInput",
    "TimeWindow",
    "TimeWindowResolver",
    "as_aware",
    "parse_date_input",
    "resolve_timezone",
]
