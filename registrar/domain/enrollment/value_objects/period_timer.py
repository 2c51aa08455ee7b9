"""
Period Timer Value Objects

Recurring daily class periods from the bell schedule, and the meeting pattern
of a section built from them. All intervals are half-open: [start, end).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from uuid import UUID

from .enums import DaysOfWeek


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class PeriodTimer:
    """
    A recurring daily time window for a class period.

    Immutable value object; ``start_time`` must be strictly before ``end_time``
    and the period must meet on at least one day.
    """

    period_number: int
    start_time: time
    end_time: time
    days: DaysOfWeek = DaysOfWeek.WEEKDAYS
    attendance_window_minutes: int = 10
    name: str | None = None

    def __post_init__(self):
        if self.period_number < 0:
            raise ValueError(
                f"Period number cannot be negative, got {self.period_number}"
            )
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        if not self.days:
            raise ValueError("Period must meet on at least one day of the week")
        if self.attendance_window_minutes < 0:
            raise ValueError("Attendance window cannot be negative")
        if self.name is None:
            object.__setattr__(self, "name", f"Period {self.period_number}")

    @classmethod
    def create(
        cls,
        period_number: int,
        start: str,
        end: str,
        days: str = "MON,TUE,WED,THU,FRI",
        attendance_window_minutes: int = 10,
        name: str | None = None,
    ) -> PeriodTimer:
        """
        Factory from bell-schedule strings such as ``"09:00"`` and ``"MON,WED"``.
        """
        return cls(
            period_number=period_number,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            days=DaysOfWeek.parse(days),
            attendance_window_minutes=attendance_window_minutes,
            name=name,
        )

    @property
    def start_minutes(self) -> int:
        return _minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return _minutes(self.end_time)

    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def meets_on(self, weekday: int) -> bool:
        """Check if the period meets on ``date.weekday()``."""
        return bool(self.days & DaysOfWeek.for_weekday(weekday))

    def contains(self, check_time: time) -> bool:
        return self.start_time <= check_time < self.end_time

    def time_overlaps(self, other: PeriodTimer) -> bool:
        """Half-open time-of-day overlap, ignoring days of week."""
        return self.start_time < other.end_time and other.start_time < self.end_time

    def overlaps(self, other: PeriodTimer) -> bool:
        """
        Check if two periods collide.

        Args:
            other: Period to compare against

        Returns:
            True if they share a day of the week and their time windows overlap
        """
        return self.days.shares_day_with(other.days) and self.time_overlaps(other)

    def is_within_attendance_window(self, check_time: time) -> bool:
        """True while attendance may still be taken at the start of the period."""
        window_end = min(
            self.start_minutes + self.attendance_window_minutes, self.end_minutes
        )
        return self.start_minutes <= _minutes(check_time) < window_end

    def __str__(self) -> str:
        return (
            f"{self.name} {self.days.to_string()} "
            f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"
        )


@dataclass(frozen=True)
class SectionSchedule:
    """When a section meets: its period timers for the grading period."""

    section_id: UUID
    course_id: UUID
    meetings: tuple[PeriodTimer, ...] = field(default_factory=tuple)
    course_code: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "meetings", tuple(self.meetings))

    def conflicting_meetings(
        self, other: SectionSchedule
    ) -> list[tuple[PeriodTimer, PeriodTimer]]:
        """All (mine, theirs) meeting pairs that overlap."""
        return [
            (mine, theirs)
            for mine in self.meetings
            for theirs in other.meetings
            if mine.overlaps(theirs)
        ]

    def overlaps(self, other: SectionSchedule) -> bool:
        return any(
            mine.overlaps(theirs) for mine in self.meetings for theirs in other.meetings
        )

    @property
    def label(self) -> str:
        return self.course_code or str(self.section_id)
