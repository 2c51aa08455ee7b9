from .enrollment_request_repository import EnrollmentRequestRepository
from .schedule_change_repository import ScheduleChangeRequestRepository

__all__ = ["EnrollmentRequestRepository", "ScheduleChangeRequestRepository"]
