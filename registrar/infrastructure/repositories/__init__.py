from .memory import (
    InMemoryEnrollmentRequestRepository,
    InMemoryScheduleChangeRequestRepository,
)

__all__ = [
    "InMemoryEnrollmentRequestRepository",
    "InMemoryScheduleChangeRequestRepository",
]
