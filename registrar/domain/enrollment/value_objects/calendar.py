"""
School Calendar Value Objects

Academic year boundaries, grading periods, holidays and break periods.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID, uuid4

from .enums import DaysOfWeek


@dataclass(frozen=True)
class GradingPeriod:
    """
    A grading period (quarter, semester, ...) inside an academic year.

    Dates are inclusive on both ends.
    """

    academic_year: str
    name: str
    start_date: date
    end_date: date
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        if not self.academic_year:
            raise ValueError("Grading period requires an academic year")
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")

    def contains(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def overlaps(self, other: GradingPeriod) -> bool:
        return self.start_date <= other.end_date and other.start_date <= self.end_date

    @property
    def length_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def __str__(self) -> str:
        return f"{self.name} ({self.start_date.isoformat()} - {self.end_date.isoformat()})"


@dataclass(frozen=True)
class BreakPeriod:
    """A named run of non-instructional days, e.g. winter break."""

    name: str
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValueError("Break end date must not be before start date")

    def contains(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date


@dataclass(frozen=True)
class SchoolCalendar:
    """
    The school calendar of one academic year.

    Instruction happens on ``instructional_days`` weekdays inside the year,
    except on holidays and during break periods.
    """

    academic_year: str
    start_date: date
    end_date: date
    holidays: dict[date, str] = field(default_factory=dict)
    breaks: tuple[BreakPeriod, ...] = field(default_factory=tuple)
    instructional_days: DaysOfWeek = DaysOfWeek.WEEKDAYS

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValueError("Academic year end date must not be before start date")
        object.__setattr__(self, "breaks", tuple(self.breaks))

    def contains(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def is_holiday(self, check_date: date) -> bool:
        return check_date in self.holidays

    def break_on(self, check_date: date) -> BreakPeriod | None:
        return next((b for b in self.breaks if b.contains(check_date)), None)

    def is_school_day(self, check_date: date) -> bool:
        """Check if students attend class on the given date."""
        if not self.contains(check_date):
            return False
        if not self.instructional_days & DaysOfWeek.for_weekday(check_date.weekday()):
            return False
        return not self.is_holiday(check_date) and self.break_on(check_date) is None

    def count_school_days(self, start: date, end: date) -> int:
        """Count instructional days in the inclusive range [start, end]."""
        if end < start:
            return 0
        total = 0
        current = start
        while current <= end:
            if self.is_school_day(current):
                total += 1
            current += timedelta(days=1)
        return total

    def events_on(self, check_date: date) -> list[str]:
        """Names of holidays and breaks falling on the date."""
        events = []
        if check_date in self.holidays:
            events.append(self.holidays[check_date])
        events.extend(b.name for b in self.breaks if b.contains(check_date))
        return events

    def with_holiday(self, holiday_date: date, name: str) -> SchoolCalendar:
        if not self.contains(holiday_date):
            raise ValueError(
                f"Holiday {holiday_date.isoformat()} is outside academic year {self.academic_year}"
            )
        holidays = dict(self.holidays)
        holidays[holiday_date] = name
        return SchoolCalendar(
            academic_year=self.academic_year,
            start_date=self.start_date,
            end_date=self.end_date,
            holidays=holidays,
            breaks=self.breaks,
            instructional_days=self.instructional_days,
        )

    def with_break(self, break_period: BreakPeriod) -> SchoolCalendar:
        if not (
            self.contains(break_period.start_date) and self.contains(break_period.end_date)
        ):
            raise ValueError(
                f"Break '{break_period.name}' is outside academic year {self.academic_year}"
            )
        return SchoolCalendar(
            academic_year=self.academic_year,
            start_date=self.start_date,
            end_date=self.end_date,
            holidays=dict(self.holidays),
            breaks=self.breaks + (break_period,),
            instructional_days=self.instructional_days,
        )
