from .domain_events import (
    EnrollmentStatusChanged,
    ScheduleChangeEscalated,
    ScheduleChangeOverdue,
    ScheduleChangeStatusChanged,
    ScheduleChangeSubmitted,
    SectionCapacityChanged,
    WaitlistPositionChanged,
    WaitlistPromoted,
)

__all__ = [
    "EnrollmentStatusChanged",
    "ScheduleChangeEscalated",
    "ScheduleChangeOverdue",
    "ScheduleChangeStatusChanged",
    "ScheduleChangeSubmitted",
    "SectionCapacityChanged",
    "WaitlistPositionChanged",
    "WaitlistPromoted",
]
