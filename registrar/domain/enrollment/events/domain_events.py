"""
Domain Events

Events raised by seat allocation and the schedule-change workflow. Notification
delivery subscribes to these through the event bus.
"""

from datetime import datetime
from uuid import UUID

from ...shared.base import DomainEvent
from ..value_objects.enums import (
    ChangeRequestStatus,
    ChangeRequestType,
    EnrollmentStatus,
)


class EnrollmentStatusChanged(DomainEvent):
    """Event raised when an enrollment request changes status."""

    request_id: UUID
    student_id: UUID
    course_id: UUID
    section_id: UUID | None
    old_status: EnrollmentStatus
    new_status: EnrollmentStatus
    waitlist_position: int | None = None
    reason: str | None = None


class WaitlistPositionChanged(DomainEvent):
    """Event raised when a waitlisted request moves up the waitlist."""

    request_id: UUID
    student_id: UUID
    section_id: UUID
    old_position: int
    new_position: int


class WaitlistPromoted(DomainEvent):
    """Event raised when a freed seat is handed to the waitlist head."""

    request_id: UUID
    student_id: UUID
    section_id: UUID


class SectionCapacityChanged(DomainEvent):
    """Event raised when a section's seat count is changed."""

    section_id: UUID
    old_capacity: int
    new_capacity: int
    promoted_request_ids: list[UUID] = []


class ScheduleChangeSubmitted(DomainEvent):
    """Event raised when a schedule change request enters the workflow."""

    request_id: UUID
    student_id: UUID
    request_type: ChangeRequestType
    priority_level: int
    due_at: datetime
    can_auto_approve: bool


class ScheduleChangeStatusChanged(DomainEvent):
    """Event raised when a schedule change request changes status."""

    request_id: UUID
    student_id: UUID
    request_type: ChangeRequestType
    old_status: ChangeRequestStatus
    new_status: ChangeRequestStatus
    reviewed_by_id: UUID | None = None
    reason: str | None = None


class ScheduleChangeOverdue(DomainEvent):
    """Event raised once when a pending request misses its due date."""

    request_id: UUID
    student_id: UUID
    due_at: datetime
    hours_overdue: float


class ScheduleChangeEscalated(DomainEvent):
    """Event raised once when an overdue request is forwarded for attention."""

    request_id: UUID
    student_id: UUID
    escalated_to: str
    due_at: datetime
