"""Value objects for the enrollment domain."""

from .calendar import BreakPeriod, GradingPeriod, SchoolCalendar
from .enums import (
    ChangeRequestStatus,
    ChangeRequestType,
    DaysOfWeek,
    EnrollmentStatus,
    ReservationOutcome,
)
from .period_timer import PeriodTimer, SectionSchedule
from .reservation import SeatReservation, SectionSnapshot, WaitlistAnalysis

__all__ = [
    # Calendar
    "BreakPeriod",
    "GradingPeriod",
    "SchoolCalendar",
    "PeriodTimer",
    "SectionSchedule",
    # Enums
    "ChangeRequestStatus",
    "ChangeRequestType",
    "DaysOfWeek",
    "EnrollmentStatus",
    "ReservationOutcome",
    # Seats
    "SeatReservation",
    "SectionSnapshot",
    "WaitlistAnalysis",
]
