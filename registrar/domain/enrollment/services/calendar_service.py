"""
Calendar Service

Owns academic years, grading periods, the bell schedule of period timers and
the meeting pattern of each section, and answers time-overlap queries.
"""

import threading
from collections.abc import Iterable
from datetime import date, time
from itertools import combinations
from uuid import UUID

from ....core.observability import get_logger
from ...shared.base import DomainService
from ...shared.exceptions import SectionNotFoundError, ValidationError
from ..value_objects.calendar import BreakPeriod, GradingPeriod, SchoolCalendar
from ..value_objects.period_timer import PeriodTimer, SectionSchedule

logger = get_logger(__name__)


class CalendarService(DomainService):
    """
    Calendar and bell-schedule registry.

    Writes are serialized; readers get immutable value objects, so overlap
    queries may run concurrently with allocation.
    """

    def __init__(self) -> None:
        self._calendars: dict[str, SchoolCalendar] = {}
        self._grading_periods: dict[str, list[GradingPeriod]] = {}
        self._bell_schedule: dict[int, PeriodTimer] = {}
        self._section_schedules: dict[UUID, SectionSchedule] = {}
        self._lock = threading.RLock()

    # Academic years

    def register_academic_year(self, calendar: SchoolCalendar) -> SchoolCalendar:
        """
        Register or replace the calendar of an academic year.

        Raises:
            ValidationError: If already registered grading periods fall outside it
        """
        with self._lock:
            for period in self._grading_periods.get(calendar.academic_year, []):
                self._check_inside_year(period, calendar)
            self._calendars[calendar.academic_year] = calendar
        logger.info(
            "Academic year registered",
            academic_year=calendar.academic_year,
            start_date=calendar.start_date.isoformat(),
            end_date=calendar.end_date.isoformat(),
        )
        return calendar

    def calendar_for(self, academic_year: str) -> SchoolCalendar | None:
        with self._lock:
            return self._calendars.get(academic_year)

    def calendar_on(self, check_date: date) -> SchoolCalendar | None:
        """The academic year containing a date, if any."""
        with self._lock:
            return next(
                (c for c in self._calendars.values() if c.contains(check_date)), None
            )

    def add_holiday(self, academic_year: str, holiday_date: date, name: str) -> SchoolCalendar:
        with self._lock:
            calendar = self._require_calendar(academic_year)
            try:
                updated = calendar.with_holiday(holiday_date, name)
            except ValueError as e:
                raise ValidationError("holiday_date", holiday_date.isoformat(), str(e)) from e
            self._calendars[academic_year] = updated
        return updated

    def add_break(self, academic_year: str, break_period: BreakPeriod) -> SchoolCalendar:
        with self._lock:
            calendar = self._require_calendar(academic_year)
            try:
                updated = calendar.with_break(break_period)
            except ValueError as e:
                raise ValidationError("break_period", break_period.name, str(e)) from e
            self._calendars[academic_year] = updated
        return updated

    def is_school_day(self, check_date: date) -> bool:
        calendar = self.calendar_on(check_date)
        return calendar is not None and calendar.is_school_day(check_date)

    def instructional_days(
        self, academic_year: str, start: date | None = None, end: date | None = None
    ) -> int:
        """Count school days of an academic year, optionally within [start, end]."""
        calendar = self._require_calendar(academic_year)
        return calendar.count_school_days(
            max(start or calendar.start_date, calendar.start_date),
            min(end or calendar.end_date, calendar.end_date),
        )

    def events_on(self, check_date: date) -> list[str]:
        calendar = self.calendar_on(check_date)
        return calendar.events_on(check_date) if calendar else []

    # Grading periods

    def register_grading_period(self, period: GradingPeriod) -> GradingPeriod:
        """
        Add a grading period to its academic year.

        Periods of one year are kept ordered by start date and must not
        overlap. When the year's calendar is registered the period must also
        lie inside it.

        Raises:
            ValidationError: If the period overlaps a sibling or leaves the year
        """
        with self._lock:
            calendar = self._calendars.get(period.academic_year)
            if calendar is not None:
                self._check_inside_year(period, calendar)

            siblings = self._grading_periods.setdefault(period.academic_year, [])
            for existing in siblings:
                if existing.overlaps(period):
                    raise ValidationError(
                        "start_date",
                        period.start_date.isoformat(),
                        f"Grading period '{period.name}' overlaps '{existing.name}'",
                        error_code="GRADING_PERIOD_OVERLAP",
                    )
            siblings.append(period)
            siblings.sort(key=lambda p: p.start_date)

        logger.info(
            "Grading period registered",
            academic_year=period.academic_year,
            grading_period=period.name,
            grading_period_id=str(period.id),
        )
        return period

    def grading_periods(self, academic_year: str) -> list[GradingPeriod]:
        with self._lock:
            return list(self._grading_periods.get(academic_year, []))

    def get_grading_period(self, grading_period_id: UUID) -> GradingPeriod | None:
        with self._lock:
            for periods in self._grading_periods.values():
                for period in periods:
                    if period.id == grading_period_id:
                        return period
        return None

    def grading_period_for(
        self, check_date: date, academic_year: str | None = None
    ) -> GradingPeriod | None:
        """The grading period containing a date."""
        with self._lock:
            if academic_year is not None:
                candidates = self._grading_periods.get(academic_year, [])
            else:
                candidates = [p for ps in self._grading_periods.values() for p in ps]
            return next((p for p in candidates if p.contains(check_date)), None)

    # Bell schedule

    def register_period(self, timer: PeriodTimer) -> PeriodTimer:
        """Add or replace the bell-schedule entry for ``timer.period_number``."""
        with self._lock:
            self._bell_schedule[timer.period_number] = timer
        logger.debug("Period registered", period=str(timer))
        return timer

    def period(self, period_number: int) -> PeriodTimer | None:
        with self._lock:
            return self._bell_schedule.get(period_number)

    def bell_schedule(self) -> list[PeriodTimer]:
        with self._lock:
            return sorted(self._bell_schedule.values(), key=lambda p: p.start_time)

    def current_period(self, check_time: time, weekday: int) -> PeriodTimer | None:
        """Bell-schedule period in session at a time of day on ``date.weekday()``."""
        return next(
            (
                p
                for p in self.bell_schedule()
                if p.meets_on(weekday) and p.contains(check_time)
            ),
            None,
        )

    # Section meeting patterns

    def assign_section_periods(
        self,
        section_id: UUID,
        course_id: UUID,
        periods: Iterable[PeriodTimer | int],
        course_code: str | None = None,
    ) -> SectionSchedule:
        """
        Set when a section meets.

        Args:
            section_id: Section to schedule
            course_id: Course the section belongs to
            periods: Period timers, or bell-schedule period numbers
            course_code: Display code such as ``MATH-101``

        Raises:
            ValidationError: If a period number is not on the bell schedule, or
                two meetings overlap
        """
        with self._lock:
            meetings = tuple(self._resolve_period(p) for p in periods)
            for first, second in combinations(meetings, 2):
                if first.overlaps(second):
                    raise ValidationError(
                        "periods",
                        str(second),
                        f"Meeting {second} overlaps {first}",
                        error_code="SECTION_MEETING_OVERLAP",
                    )
            schedule = SectionSchedule(
                section_id=section_id,
                course_id=course_id,
                meetings=meetings,
                course_code=course_code,
            )
            self._section_schedules[section_id] = schedule
        logger.debug(
            "Section periods assigned",
            section_id=str(section_id),
            meetings=[str(m) for m in meetings],
        )
        return schedule

    def section_schedule(self, section_id: UUID) -> SectionSchedule:
        """
        Raises:
            SectionNotFoundError: If the section has no meeting pattern
        """
        with self._lock:
            schedule = self._section_schedules.get(section_id)
        if schedule is None:
            raise SectionNotFoundError(section_id)
        return schedule

    def has_section(self, section_id: UUID) -> bool:
        with self._lock:
            return section_id in self._section_schedules

    def schedules_for(self, section_ids: Iterable[UUID]) -> list[SectionSchedule]:
        """Meeting patterns of the given sections; sections without one are skipped."""
        with self._lock:
            return [
                self._section_schedules[section_id]
                for section_id in section_ids
                if section_id in self._section_schedules
            ]

    # Overlap queries

    @staticmethod
    def overlaps(a: PeriodTimer, b: PeriodTimer) -> bool:
        """Shared day of week and half-open time overlap."""
        return a.overlaps(b)

    def sections_overlap(self, first_section_id: UUID, second_section_id: UUID) -> bool:
        return self.section_schedule(first_section_id).overlaps(
            self.section_schedule(second_section_id)
        )

    def _resolve_period(self, period: PeriodTimer | int) -> PeriodTimer:
        if isinstance(period, PeriodTimer):
            return period
        timer = self._bell_schedule.get(period)
        if timer is None:
            raise ValidationError(
                "period_number", period, f"Period {period} is not on the bell schedule"
            )
        return timer

    def _require_calendar(self, academic_year: str) -> SchoolCalendar:
        calendar = self.calendar_for(academic_year)
        if calendar is None:
            raise ValidationError(
                "academic_year", academic_year, "Academic year is not registered"
            )
        return calendar

    @staticmethod
    def _check_inside_year(period: GradingPeriod, calendar: SchoolCalendar) -> None:
        if not (calendar.contains(period.start_date) and calendar.contains(period.end_date)):
            raise ValidationError(
                "end_date",
                period.end_date.isoformat(),
                f"Grading period '{period.name}' is outside academic year "
                f"{calendar.academic_year}",
                error_code="GRADING_PERIOD_OUTSIDE_YEAR",
            )
