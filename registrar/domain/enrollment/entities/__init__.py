from .enrollment_request import EnrollmentRequest, StatusChange
from .schedule_change_request import ScheduleChangeRequest
from .section import Section

__all__ = [
    "EnrollmentRequest",
    "ScheduleChangeRequest",
    "Section",
    "StatusChange",
]
