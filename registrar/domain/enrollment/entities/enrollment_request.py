"""Enrollment request snapshots competing for section seats."""

from datetime import datetime
from uuid import UUID

import pydantic
from pydantic import Field, field_validator

from ...shared.base import Entity, ValueObject, utc_now
from ...shared.exceptions import (
    DataIntegrityError,
    InvalidStatusTransitionError,
    MultipleValidationError,
    ValidationError,
)
from ..value_objects.enums import EnrollmentStatus


class StatusChange(ValueObject):
    """One append-only entry of a request's audit trail."""

    from_status: str
    to_status: str
    changed_at: datetime
    reason: str | None = None


def validation_error_from_pydantic(exc: pydantic.ValidationError) -> ValidationError:
    """Translate pydantic's error list into the domain validation error type."""
    errors = [
        ValidationError(
            ".".join(str(part) for part in error["loc"]) or "request",
            str(error.get("input")) if error.get("input") is not None else None,
            error["msg"],
            error_code=error["type"].upper(),
        )
        for error in exc.errors()
    ]
    if len(errors) == 1:
        return errors[0]
    return MultipleValidationError(errors)


class EnrollmentRequest(Entity):
    """
    A student's request for a seat in one of several sections of a course.

    Sections are listed most preferred first, so the preference rank of a
    section is its 1-based index in ``section_preferences``. Instances are
    immutable; each transition method returns the next snapshot and appends to
    ``history``.
    """

    student_id: UUID
    course_id: UUID
    section_preferences: tuple[UUID, ...] = Field(min_length=1)
    priority_score: float = 0.0
    status: EnrollmentStatus = EnrollmentStatus.PENDING

    # Section holding the seat or the waitlist entry
    section_id: UUID | None = None
    # None until the request is waitlisted
    waitlist_position: int | None = None
    processed_at: datetime | None = None
    status_reason: str | None = None
    history: tuple[StatusChange, ...] = ()

    @field_validator("section_preferences")
    @classmethod
    def preferences_are_unique(cls, v: tuple[UUID, ...]) -> tuple[UUID, ...]:
        if len(set(v)) != len(v):
            raise ValueError("Each section may appear only once in the preference list")
        return v

    @classmethod
    def submit(
        cls,
        student_id: UUID,
        course_id: UUID,
        section_preferences: list[UUID] | tuple[UUID, ...],
        priority_score: float = 0.0,
        created_at: datetime | None = None,
        request_id: UUID | None = None,
    ) -> "EnrollmentRequest":
        """
        Create a PENDING request.

        Raises:
            ValidationError: If ids are missing or the preference list is malformed
        """
        data: dict = {
            "student_id": student_id,
            "course_id": course_id,
            "section_preferences": tuple(section_preferences or ()),
            "priority_score": priority_score,
            "created_at": created_at or utc_now(),
        }
        if request_id is not None:
            data["id"] = request_id
        try:
            return cls(**data)
        except pydantic.ValidationError as e:
            raise validation_error_from_pydantic(e) from e

    def is_valid(self) -> bool:
        """Waitlist position is set exactly when waitlisted, and is 1-based."""
        if (self.status == EnrollmentStatus.WAITLISTED) != (
            self.waitlist_position is not None
        ):
            return False
        if self.waitlist_position is not None and self.waitlist_position < 1:
            return False
        if self.status in {EnrollmentStatus.APPROVED, EnrollmentStatus.WAITLISTED}:
            return self.section_id in self.section_preferences
        return True

    @property
    def request_status(self) -> EnrollmentStatus:
        return self.status

    @property
    def is_waitlist(self) -> bool:
        return self.status == EnrollmentStatus.WAITLISTED

    @property
    def is_pending(self) -> bool:
        return self.status == EnrollmentStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def preference_rank(self) -> int | None:
        """Rank of the assigned section, or None while unassigned."""
        if self.section_id is None:
            return None
        return self.rank_of(self.section_id)

    def rank_of(self, section_id: UUID) -> int:
        """1-based preference rank of a candidate section."""
        try:
            return self.section_preferences.index(section_id) + 1
        except ValueError:
            raise ValueError(
                f"Section {section_id} is not a candidate of request {self.id}"
            ) from None

    # State transitions

    def approve(
        self, section_id: UUID, at: datetime, reason: str | None = None
    ) -> "EnrollmentRequest":
        rank = self.rank_of(section_id)
        return self._transition(
            EnrollmentStatus.APPROVED,
            at,
            reason or f"Seat reserved in preference #{rank}",
            section_id=section_id,
            waitlist_position=None,
        )

    def waitlist(
        self, section_id: UUID, position: int, at: datetime
    ) -> "EnrollmentRequest":
        rank = self.rank_of(section_id)
        return self._transition(
            EnrollmentStatus.WAITLISTED,
            at,
            f"All preferred sections full; waitlisted at position {position} "
            f"for preference #{rank}",
            section_id=section_id,
            waitlist_position=position,
        )

    def promote(self, at: datetime) -> "EnrollmentRequest":
        """Move a waitlisted request into the seat that opened in its section."""
        return self._transition(
            EnrollmentStatus.APPROVED,
            at,
            "Promoted from waitlist",
            waitlist_position=None,
        )

    def deny(self, reason: str, at: datetime) -> "EnrollmentRequest":
        if not reason or not reason.strip():
            raise ValidationError("status_reason", reason, "Denial requires a reason")
        return self._transition(EnrollmentStatus.DENIED, at, reason)

    def cancel(self, reason: str, at: datetime) -> "EnrollmentRequest":
        return self._transition(
            EnrollmentStatus.CANCELLED, at, reason, waitlist_position=None
        )

    def with_waitlist_position(self, position: int) -> "EnrollmentRequest":
        """Reflect a waitlist shift; not a status transition."""
        if self.status != EnrollmentStatus.WAITLISTED:
            raise InvalidStatusTransitionError(
                "EnrollmentRequest", self.id, self.status.value, "waitlist_shift"
            )
        if position == self.waitlist_position:
            return self
        return self._checked(self.model_copy(update={"waitlist_position": position}))

    def _transition(
        self, new_status: EnrollmentStatus, at: datetime, reason: str, **updates
    ) -> "EnrollmentRequest":
        if not self.status.can_transition_to(new_status):
            raise InvalidStatusTransitionError(
                "EnrollmentRequest", self.id, self.status.value, new_status.value
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
                "processed_at": at,
                "updated_at": at,
                "history": self.history + (entry,),
            }
        )
        return self._checked(updated)

    @staticmethod
    def _checked(request: "EnrollmentRequest") -> "EnrollmentRequest":
        if not request.is_valid():
            raise DataIntegrityError(
                f"Enrollment request {request.id} violates its invariants "
                f"(status={request.status.value}, position={request.waitlist_position})"
            )
        return request
