"""
Release week calendar

Releases are bucketed into weeks that run from Saturday through the following
Friday, matching the Friday release cycle of the streaming catalog. Week
numbering is not ISO-8601:

- Week 1 of a year starts on the Saturday on or before January 1st, so the
  week containing New Year's Day is always week 1.
- When January 1st is not a Saturday, the partial week holding it is merged
  with the following full Saturday-Friday week. Week 1 then spans 14 days and
  week 2 starts on the second Saturday on or after January 1st.
- Every other week spans 7 days.
- A year owns every date from the start of its week 1 up to the day before
  week 1 of the next year starts. Late-December dates can therefore belong to
  week 1 of the following year.

A year has 51 or 52 weeks. Supported years run from FIRST_YEAR to LAST_YEAR;
the date range is bounded by whole release weeks of those years, and dates
outside it raise ValueError. This module is the only place where week numbers
are computed; everything else asks it.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, List, Optional, Tuple

SATURDAY = 5
FRIDAY = 4

# years 1 and 9999 lack a complete week 1 or a following year
FIRST_YEAR = 2
LAST_YEAR = 9998

Clock = Callable[[], date]


def saturday_on_or_before(day: date) -> date:
    """Return the Saturday that starts the Saturday-Friday week containing day"""
    offset = (day.weekday() - SATURDAY) % 7
    return day - timedelta(days=offset)


def _jan1_is_saturday(year: int) -> bool:
    return date(year, 1, 1).weekday() == SATURDAY


def week_one_start(year: int) -> date:
    """First day (a Saturday) of week 1 of the given year"""
    return saturday_on_or_before(date(year, 1, 1))


def _check_year(year: int) -> None:
    if year < FIRST_YEAR or year > LAST_YEAR:
        raise ValueError(f"Year out of range: {year} (supported {FIRST_YEAR}-{LAST_YEAR})")


def supported_range() -> Tuple[date, date]:
    """First and last day that belong to a supported release week"""
    return week_one_start(FIRST_YEAR), week_one_start(LAST_YEAR + 1) - timedelta(days=1)


def _owning_year(day: date) -> int:
    first, last = supported_range()
    if day < first or day > last:
        raise ValueError(
            f"Date out of range: {day.isoformat()} (supported {first.isoformat()} - {last.isoformat()})"
        )
    if day >= week_one_start(day.year + 1):
        return day.year + 1
    return day.year


def weeks_in_year(year: int) -> int:
    """
    Number of release weeks in a year

    Args:
        year: Calendar year that owns the weeks

    Returns:
        51 or 52
    """
    _check_year(year)
    slots = (week_one_start(year + 1) - week_one_start(year)).days // 7
    if _jan1_is_saturday(year):
        return slots
    return slots - 1


def week_of(day: date) -> Tuple[int, int]:
    """
    Map a date to its (year, week) coordinate

    Args:
        day: Date inside supported_range()

    Returns:
        Tuple of (owning year, week number starting at 1)

    Raises:
        ValueError: If the date lies outside the supported range
    """
    year = _owning_year(day)
    start = week_one_start(year)
    offset = (saturday_on_or_before(day) - start).days // 7

    if _jan1_is_saturday(year):
        return year, offset + 1
    return year, max(1, offset)


def range_of(year: int, week: int) -> Tuple[date, date]:
    """
    Date range covered by a release week

    Args:
        year: Owning year
        week: Week number, 1 through weeks_in_year(year)

    Returns:
        Tuple of (first day, last day), both inclusive

    Raises:
        ValueError: If the year is unsupported or the week does not exist in it
    """
    total = weeks_in_year(year)
    if week < 1 or week > total:
        raise ValueError(f"Week {week} does not exist in {year} (1-{total})")

    start = week_one_start(year)

    if _jan1_is_saturday(year):
        first = start + timedelta(days=7 * (week - 1))
        return first, first + timedelta(days=6)

    if week == 1:
        return start, start + timedelta(days=13)

    first = start + timedelta(days=7 * week)
    return first, first + timedelta(days=6)


def current_week(clock: Optional[Clock] = None) -> Tuple[int, int]:
    """(year, week) for today, using an injectable clock"""
    today = clock() if clock else date.today()
    return week_of(today)


@dataclass(frozen=True)
class ReleaseWeek:
    """A single release week with its inclusive date range"""
    year: int
    week: int
    start: date
    end: date

    @classmethod
    def of(cls, year: int, week: int) -> 'ReleaseWeek':
        start, end = range_of(year, week)
        return cls(year=year, week=week, start=start, end=end)

    @classmethod
    def containing(cls, day: date) -> 'ReleaseWeek':
        year, week = week_of(day)
        return cls.of(year, week)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def previous(self) -> 'ReleaseWeek':
        """The release week immediately before this one"""
        return ReleaseWeek.containing(self.start - timedelta(days=1))

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    @property
    def label(self) -> str:
        return f"{self.week}/{self.year}"

    def __str__(self) -> str:
        return f"Week {self.week}/{self.year} ({self.start.isoformat()} - {self.end.isoformat()})"


def release_week(day: date) -> ReleaseWeek:
    """Release week containing the given date"""
    return ReleaseWeek.containing(day)


def weeks_back(anchor: date, previous_weeks: int) -> List[ReleaseWeek]:
    """
    Week containing anchor followed by the given number of earlier weeks

    Args:
        anchor: Date inside the most recent week
        previous_weeks: How many earlier weeks to include (0 for just one week)

    Returns:
        List of ReleaseWeek, most recent first
    """
    if previous_weeks < 0:
        raise ValueError("previous_weeks cannot be negative")

    weeks = [ReleaseWeek.containing(anchor)]
    for _ in range(previous_weeks):
        weeks.append(weeks[-1].previous())
    return weeks


def parse_date_or_today(value: Optional[str], clock: Optional[Clock] = None) -> date:
    """
    Parse a YYYY-MM-DD string, falling back to today

    Args:
        value: Date string or None
        clock: Optional callable returning today's date

    Returns:
        Parsed date, or today when value is missing, invalid or unsupported
    """
    if value:
        try:
            parsed = datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError:
            parsed = None
        first, last = supported_range()
        if parsed is not None and first <= parsed <= last:
            return parsed
    return clock() if clock else date.today()
