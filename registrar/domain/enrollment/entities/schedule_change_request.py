"""
Schedule Change Request Entity

Add, drop and swap requests reviewed through the schedule-change workflow.
"""

from datetime import datetime, timedelta
from uuid import UUID

import pydantic
from pydantic import Field

from ...shared.base import Entity, utc_now
from ...shared.exceptions import (
    DataIntegrityError,
    InvalidStatusTransitionError,
    MultipleValidationError,
    ValidationError,
)
from ..value_objects.enums import ChangeRequestStatus, ChangeRequestType
from .enrollment_request import StatusChange, validation_error_from_pydantic


class ScheduleChangeRequest(Entity):
    """
    A student's request to add, drop or swap a section.

    ``created_at`` is the submission time. ``due_at`` is fixed at submission
    from the SLA window for the priority level; a request still PENDING after
    it is flagged overdue but never decided automatically.
    """

    student_id: UUID
    request_type: ChangeRequestType
    reason: str = Field(min_length=1)
    status: ChangeRequestStatus = ChangeRequestStatus.PENDING
    priority_level: int = Field(default=0, ge=0)

    current_course_id: UUID | None = None
    current_section_id: UUID | None = None
    current_course_code: str | None = None
    requested_course_id: UUID | None = None
    requested_section_id: UUID | None = None
    requested_course_code: str | None = None

    academic_year: str | None = None
    grading_period_id: UUID | None = None

    # Review metadata
    reviewed_by_id: UUID | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    denial_reason: str | None = None
    status_reason: str | None = None
    completed_at: datetime | None = None

    # SLA / escalation
    due_at: datetime
    is_overdue: bool = False
    overdue_at: datetime | None = None
    escalated_to: str | None = None
    escalated_at: datetime | None = None
    can_auto_approve: bool = False

    history: tuple[StatusChange, ...] = ()

    @classmethod
    def submit(
        cls,
        student_id: UUID,
        request_type: ChangeRequestType | str,
        reason: str,
        sla_hours: int,
        submitted_at: datetime | None = None,
        **fields,
    ) -> "ScheduleChangeRequest":
        """
        Create a PENDING request whose due date is ``submitted_at + sla_hours``.

        Raises:
            ValidationError: If required references for the request type are
                missing or the request is otherwise malformed
        """
        submitted_at = submitted_at or utc_now()
        try:
            request = cls(
                student_id=student_id,
                request_type=request_type,
                reason=(reason or "").strip(),
                created_at=submitted_at,
                due_at=submitted_at + timedelta(hours=sla_hours),
                **fields,
            )
        except pydantic.ValidationError as e:
            raise validation_error_from_pydantic(e) from e

        errors = request.reference_errors()
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise MultipleValidationError(errors)
        return request

    def reference_errors(self) -> list[ValidationError]:
        """Course and section references the request type requires."""
        errors = []
        if self.request_type.drops_section:
            errors.extend(self._missing("current", self.current_course_id, self.current_section_id))
        if self.request_type.adds_section:
            errors.extend(
                self._missing("requested", self.requested_course_id, self.requested_section_id)
            )
        if (
            self.request_type == ChangeRequestType.SWAP
            and self.current_section_id is not None
            and self.current_section_id == self.requested_section_id
        ):
            errors.append(
                ValidationError(
                    "requested_section_id",
                    str(self.requested_section_id),
                    "Swap must move to a different section",
                    error_code="SAME_SECTION_SWAP",
                )
            )
        return errors

    def _missing(
        self, prefix: str, course_id: UUID | None, section_id: UUID | None
    ) -> list[ValidationError]:
        kind = self.request_type.value.upper()
        errors = []
        if course_id is None:
            errors.append(
                ValidationError(
                    f"{prefix}_course_id", None, f"{kind} requests require a {prefix} course"
                )
            )
        if section_id is None:
            errors.append(
                ValidationError(
                    f"{prefix}_section_id", None, f"{kind} requests require a {prefix} section"
                )
            )
        return errors

    def is_valid(self) -> bool:
        """Approval needs a reviewer and timestamp; denial needs a reason."""
        if self.status in {ChangeRequestStatus.APPROVED, ChangeRequestStatus.COMPLETED}:
            if self.reviewed_by_id is None or self.reviewed_at is None:
                return False
        if self.status == ChangeRequestStatus.DENIED:
            return bool(self.denial_reason and self.denial_reason.strip())
        return True

    @property
    def submitted_at(self) -> datetime:
        return self.created_at

    @property
    def is_pending(self) -> bool:
        return self.status == ChangeRequestStatus.PENDING

    @property
    def is_escalated(self) -> bool:
        return self.escalated_at is not None

    @property
    def request_summary(self) -> str:
        """Short human-readable description, e.g. ``SWAP: MATH-101 -> MATH-102``."""
        current = self.current_course_code or _short(self.current_course_id)
        requested = self.requested_course_code or _short(self.requested_course_id)
        kind = self.request_type.value.upper()
        if self.request_type == ChangeRequestType.ADD:
            return f"{kind}: {requested}"
        if self.request_type == ChangeRequestType.DROP:
            return f"{kind}: {current}"
        return f"{kind}: {current} -> {requested}"

    def days_since_request(self, now: datetime) -> int:
        return max((now - self.created_at).days, 0)

    def is_past_due(self, now: datetime) -> bool:
        return self.is_pending and now > self.due_at

    def conflicts_with(self, other: "ScheduleChangeRequest") -> bool:
        """Same student, same kind of change, same courses, both still pending."""
        return (
            self.id != other.id
            and self.is_pending
            and other.is_pending
            and self.student_id == other.student_id
            and self.request_type == other.request_type
            and self.current_course_id == other.current_course_id
            and self.requested_course_id == other.requested_course_id
        )

    # State transitions

    def approve(
        self, reviewer_id: UUID, at: datetime, notes: str | None = None
    ) -> "ScheduleChangeRequest":
        return self._transition(
            ChangeRequestStatus.APPROVED,
            at,
            notes or "Approved",
            reviewed_by_id=reviewer_id,
            reviewed_at=at,
            review_notes=notes,
        )

    def deny(
        self,
        reason: str,
        at: datetime,
        reviewer_id: UUID | None = None,
        notes: str | None = None,
    ) -> "ScheduleChangeRequest":
        if not reason or not reason.strip():
            raise ValidationError("denial_reason", reason, "Denial requires a reason")
        return self._transition(
            ChangeRequestStatus.DENIED,
            at,
            reason,
            denial_reason=reason,
            reviewed_by_id=reviewer_id,
            reviewed_at=at,
            review_notes=notes,
        )

    def complete(self, at: datetime) -> "ScheduleChangeRequest":
        return self._transition(
            ChangeRequestStatus.COMPLETED, at, "Schedule updated", completed_at=at
        )

    def cancel(self, at: datetime, reason: str = "Withdrawn by student") -> "ScheduleChangeRequest":
        return self._transition(ChangeRequestStatus.CANCELLED, at, reason)

    def mark_overdue(self, at: datetime) -> "ScheduleChangeRequest":
        """Flag a missed due date. Status is untouched."""
        if self.is_overdue:
            return self
        return self._checked(
            self.model_copy(update={"is_overdue": True, "overdue_at": at, "updated_at": at})
        )

    def escalate(self, target: str, at: datetime) -> "ScheduleChangeRequest":
        if self.is_escalated:
            return self
        return self._checked(
            self.model_copy(
                update={"escalated_to": target, "escalated_at": at, "updated_at": at}
            )
        )

    def _transition(
        self, new_status: ChangeRequestStatus, at: datetime, reason: str, **updates
    ) -> "ScheduleChangeRequest":
        if not self.status.can_transition_to(new_status):
            raise InvalidStatusTransitionError(
                "ScheduleChangeRequest", self.id, self.status.value, new_status.value
            )
        entry = StatusChange(
            from_status=self.status.value,
            to_status=new_status.value,
            changed_at=at,
            reason=reason,
        )
        updated = self.model_copy(
            update={
                **updates,
                "status": new_status,
                "status_reason": reason,
                "updated_at": at,
                "history": self.history + (entry,),
            }
        )
        return self._checked(updated)

    @staticmethod
    def _checked(request: "ScheduleChangeRequest") -> "ScheduleChangeRequest":
        if not request.is_valid():
            raise DataIntegrityError(
                f"Schedule change request {request.id} violates its invariants "
                f"(status={request.status.value})"
            )
        return request


def _short(value: UUID | None) -> str:
    return str(value)[:8] if value else "?"
