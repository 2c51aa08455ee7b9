"""
Unit Tests for CalendarService

Academic years, grading periods, the bell schedule and section meeting
patterns.
"""

from datetime import date, time
from uuid import uuid4

import pytest

from registrar.domain.enrollment.services import CalendarService
from registrar.domain.enrollment.value_objects import (
    BreakPeriod,
    GradingPeriod,
    PeriodTimer,
    SchoolCalendar,
)
from registrar.domain.shared.exceptions import SectionNotFoundError, ValidationError

YEAR = "2024-2025"


@pytest.fixture
def calendar_service():
    service = CalendarService()
    service.register_academic_year(
        SchoolCalendar(
            academic_year=YEAR,
            start_date=date(2024, 8, 26),
            end_date=date(2025, 6, 13),
        )
    )
    return service


@pytest.fixture
def bell_schedule(calendar_service):
    periods = [
        PeriodTimer.create(1, "08:00", "08:50", "MON,WED,FRI"),
        PeriodTimer.create(2, "09:00", "09:50", "MON,WED,FRI"),
        PeriodTimer.create(3, "09:00", "10:15", "TUE,THU"),
    ]
    for period in periods:
        calendar_service.register_period(period)
    return periods


class TestAcademicYear:
    def test_calendar_lookup_by_date(self, calendar_service):
        assert calendar_service.calendar_on(date(2024, 10, 1)).academic_year == YEAR
        assert calendar_service.calendar_on(date(2025, 7, 1)) is None

    def test_holidays_and_breaks_affect_school_days(self, calendar_service):
        calendar_service.add_holiday(YEAR, date(2024, 9, 2), "Labor Day")
        calendar_service.add_break(
            YEAR, BreakPeriod("Fall Break", date(2024, 10, 14), date(2024, 10, 18))
        )

        assert not calendar_service.is_school_day(date(2024, 9, 2))
        assert not calendar_service.is_school_day(date(2024, 10, 16))
        assert calendar_service.is_school_day(date(2024, 10, 21))
        assert calendar_service.events_on(date(2024, 10, 16)) == ["Fall Break"]

    def test_instructional_days_clamped_to_year(self, calendar_service):
        # First week: Mon 26 Aug to Fri 30 Aug
        assert calendar_service.instructional_days(YEAR, end=date(2024, 8, 30)) == 5
        assert (
            calendar_service.instructional_days(
                YEAR, start=date(2024, 8, 1), end=date(2024, 8, 27)
            )
            == 2
        )

    def test_unknown_year_rejected(self, calendar_service):
        with pytest.raises(ValidationError) as exc_info:
            calendar_service.add_holiday("1999-2000", date(1999, 9, 6), "Labor Day")

        assert exc_info.value.field_name == "academic_year"

    def test_holiday_outside_year_is_validation_error(self, calendar_service):
        with pytest.raises(ValidationError, match="outside academic year"):
            calendar_service.add_holiday(YEAR, date(2025, 7, 4), "Independence Day")


class TestGradingPeriods:
    def test_periods_kept_in_start_order(self, calendar_service):
        q2 = GradingPeriod(YEAR, "Q2", date(2024, 11, 4), date(2025, 1, 17))
        q1 = GradingPeriod(YEAR, "Q1", date(2024, 8, 26), date(2024, 11, 1))

        calendar_service.register_grading_period(q2)
        calendar_service.register_grading_period(q1)

        assert [p.name for p in calendar_service.grading_periods(YEAR)] == ["Q1", "Q2"]
        assert calendar_service.get_grading_period(q2.id) == q2
        assert calendar_service.grading_period_for(date(2024, 12, 2)) == q2
        assert calendar_service.grading_period_for(date(2024, 11, 2), YEAR) is None

    def test_overlapping_period_rejected(self, calendar_service):
        calendar_service.register_grading_period(
            GradingPeriod(YEAR, "Q1", date(2024, 8, 26), date(2024, 11, 1))
        )

        with pytest.raises(ValidationError) as exc_info:
            calendar_service.register_grading_period(
                GradingPeriod(YEAR, "S1", date(2024, 10, 1), date(2025, 1, 17))
            )

        assert exc_info.value.error_code == "GRADING_PERIOD_OVERLAP"

    def test_period_outside_year_rejected(self, calendar_service):
        with pytest.raises(ValidationError) as exc_info:
            calendar_service.register_grading_period(
                GradingPeriod(YEAR, "Summer", date(2025, 6, 16), date(2025, 8, 1))
            )

        assert exc_info.value.error_code == "GRADING_PERIOD_OUTSIDE_YEAR"


class TestBellSchedule:
    def test_bell_schedule_sorted_by_start(self, calendar_service, bell_schedule):
        numbers = [p.period_number for p in calendar_service.bell_schedule()]

        assert numbers[0] == 1
        assert set(numbers) == {1, 2, 3}

    def test_current_period_respects_weekday(self, calendar_service, bell_schedule):
        # Monday
        assert calendar_service.current_period(time(9, 15), 0).period_number == 2
        # Tuesday
        assert calendar_service.current_period(time(9, 15), 1).period_number == 3
        assert calendar_service.current_period(time(12, 0), 0) is None


class TestSectionSchedules:
    def test_assign_by_period_number(self, calendar_service, bell_schedule):
        section_id = uuid4()

        schedule = calendar_service.assign_section_periods(
            section_id, uuid4(), [2, 3], course_code="CHEM-201"
        )

        assert schedule.meetings == (bell_schedule[1], bell_schedule[2])
        assert calendar_service.section_schedule(section_id).label == "CHEM-201"

    def test_assign_unknown_period_number_rejected(self, calendar_service):
        with pytest.raises(ValidationError):
            calendar_service.assign_section_periods(uuid4(), uuid4(), [9])

    def test_overlapping_meetings_of_one_section_rejected(
        self, calendar_service, bell_schedule
    ):
        section_id = uuid4()
        lab = PeriodTimer.create(8, "09:30", "10:20", "WED")

        with pytest.raises(ValidationError) as exc_info:
            calendar_service.assign_section_periods(section_id, uuid4(), [2, lab])

        assert exc_info.value.error_code == "SECTION_MEETING_OVERLAP"
        assert not calendar_service.has_section(section_id)

    def test_missing_section_schedule(self, calendar_service):
        section_id = uuid4()

        assert not calendar_service.has_section(section_id)
        with pytest.raises(SectionNotFoundError):
            calendar_service.section_schedule(section_id)
        assert calendar_service.schedules_for([section_id]) == []

    def test_sections_overlap(self, calendar_service, bell_schedule):
        first, second, third = uuid4(), uuid4(), uuid4()
        calendar_service.assign_section_periods(first, uuid4(), [2])
        calendar_service.assign_section_periods(
            second, uuid4(), [PeriodTimer.create(7, "09:30", "10:20", "MON")]
        )
        calendar_service.assign_section_periods(third, uuid4(), [3])

        assert calendar_service.sections_overlap(first, second)
        assert calendar_service.sections_overlap(second, first)
        assert not calendar_service.sections_overlap(first, third)
