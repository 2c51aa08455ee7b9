"""
Schedule Change Workflow

Approval state machine for add, drop and swap requests:

    PENDING -> APPROVED -> COMPLETED
    PENDING -> DENIED
    PENDING -> CANCELLED

Approval checks for time conflicts and capacity, then commits by reserving the
added seat before the dropped seat is released. A reservation lost to a
concurrent request denies the change instead of half-applying it.
"""

import threading
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from ....core.config import Settings, settings as default_settings
from ....core.observability import (
    ESCALATIONS,
    PENDING_CHANGE_REQUESTS,
    SCHEDULE_CHANGE_DECISIONS,
    SLA_BREACHES,
    get_logger,
    set_correlation_id,
)
from ...shared.base import DomainEvent, DomainService, utc_now
from ...shared.exceptions import (
    BusinessRuleError,
    DuplicateRequestError,
    InvalidStatusTransitionError,
    RequestNotFoundError,
    ValidationError,
)
from ..entities.schedule_change_request import ScheduleChangeRequest
from ..events.domain_events import (
    ScheduleChangeEscalated,
    ScheduleChangeOverdue,
    ScheduleChangeStatusChanged,
    ScheduleChangeSubmitted,
)
from ..repositories.schedule_change_repository import ScheduleChangeRequestRepository
from ..value_objects.enums import ChangeRequestStatus, ChangeRequestType
from .calendar_service import CalendarService
from .capacity_tracker import SectionCapacityTracker
from .conflict_detector import SCHEDULE_CONFLICT, ConflictDetector
from .enrollment_allocator import EnrollmentAllocator

logger = get_logger(__name__)

CAPACITY_RACE_REASON = "capacity exhausted between validation and commit"
SECTION_FULL_REASON = "Requested section is full"
NOT_ENROLLED_REASON = "Student is not enrolled in the section being dropped"
ALREADY_ENROLLED_REASON = "Student is already enrolled in the requested section"

EventPublisher = Callable[[DomainEvent], None]


class ScheduleChangeWorkflow(DomainService):
    """
    Service running schedule change requests from submission to completion.

    Decisions take the student's lock, then the request's lock, then any
    section lock. The request lock keeps two reviewers from deciding the same
    request twice. The student lock keeps two approvals for one student from
    passing the conflict check before either commits.
    """

    def __init__(
        self,
        allocator: EnrollmentAllocator,
        tracker: SectionCapacityTracker,
        conflict_detector: ConflictDetector,
        calendar_service: CalendarService,
        repository: ScheduleChangeRequestRepository,
        config: Settings | None = None,
        publish: EventPublisher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._allocator = allocator
        self._tracker = tracker
        self._conflicts = conflict_detector
        self._calendar = calendar_service
        self._repository = repository
        self._config = config or default_settings
        self._publish_event = publish
        self._clock = clock

        self._request_locks: dict[UUID, threading.Lock] = {}
        self._student_locks: dict[UUID, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._submission_lock = threading.Lock()

    # Submission

    def submit(
        self,
        student_id: UUID,
        request_type: ChangeRequestType | str,
        reason: str,
        *,
        current_course_id: UUID | None = None,
        current_section_id: UUID | None = None,
        requested_course_id: UUID | None = None,
        requested_section_id: UUID | None = None,
        priority_level: int = 0,
        academic_year: str | None = None,
        grading_period_id: UUID | None = None,
        submitted_at: datetime | None = None,
    ) -> ScheduleChangeRequest:
        """
        Validate and enqueue a schedule change request.

        The due date is the submission time plus the SLA hours configured
        for the priority level.

        Raises:
            ValidationError: If the request is malformed or references unknown
                sections or grading periods
            DuplicateRequestError: If the student already has an equivalent
                request pending
        """
        request = ScheduleChangeRequest.submit(
            student_id=student_id,
            request_type=request_type,
            reason=reason,
            sla_hours=self._config.sla_hours_for(priority_level),
            submitted_at=submitted_at or self._clock(),
            current_course_id=current_course_id,
            current_section_id=current_section_id,
            current_course_code=self._course_code(current_section_id),
            requested_course_id=requested_course_id,
            requested_section_id=requested_section_id,
            requested_course_code=self._course_code(requested_section_id),
            priority_level=priority_level,
            academic_year=academic_year,
            grading_period_id=grading_period_id,
            can_auto_approve=(
                self._config.AUTO_APPROVE_ENABLED
                and priority_level < self._config.AUTO_APPROVE_THRESHOLD
            ),
        )
        self._validate_references(request)

        with self._submission_lock:
            for existing in self._repository.find_by_student(student_id):
                if existing.conflicts_with(request):
                    raise DuplicateRequestError(
                        f"Student {student_id} already has a pending "
                        f"{request.request_type.value} request for these courses",
                        existing.id,
                    )
            self._repository.save(request)

        PENDING_CHANGE_REQUESTS.inc()
        logger.info(
            "Schedule change submitted",
            request_id=str(request.id),
            student_id=str(student_id),
            request_type=request.request_type.value,
            priority_level=priority_level,
            due_at=request.due_at.isoformat(),
            can_auto_approve=request.can_auto_approve,
        )
        self._publish(
            ScheduleChangeSubmitted(
                aggregate_id=request.id,
                request_id=request.id,
                student_id=student_id,
                request_type=request.request_type,
                priority_level=priority_level,
                due_at=request.due_at,
                can_auto_approve=request.can_auto_approve,
            )
        )
        return request

    def _validate_references(self, request: ScheduleChangeRequest) -> None:
        pairs = (
            ("current", request.current_course_id, request.current_section_id),
            ("requested", request.requested_course_id, request.requested_section_id),
        )
        for prefix, course_id, section_id in pairs:
            if section_id is None:
                continue
            if not self._tracker.has_section(section_id):
                raise ValidationError(
                    f"{prefix}_section_id",
                    str(section_id),
                    "Unknown section",
                    error_code="UNKNOWN_SECTION",
                )
            if course_id is not None and self._tracker.course_of(section_id) != course_id:
                raise ValidationError(
                    f"{prefix}_section_id",
                    str(section_id),
                    f"Section does not belong to course {course_id}",
                    error_code="SECTION_COURSE_MISMATCH",
                )

        if request.grading_period_id is not None:
            period = self._calendar.get_grading_period(request.grading_period_id)
            if period is None:
                raise ValidationError(
                    "grading_period_id",
                    str(request.grading_period_id),
                    "Unknown grading period",
                )
            if request.academic_year and period.academic_year != request.academic_year:
                raise ValidationError(
                    "grading_period_id",
                    str(request.grading_period_id),
                    f"Grading period belongs to {period.academic_year}, "
                    f"not {request.academic_year}",
                    error_code="GRADING_PERIOD_YEAR_MISMATCH",
                )

    # Decisions

    def approve(
        self, request_id: UUID, reviewer_id: UUID, notes: str | None = None
    ) -> ScheduleChangeRequest:
        """
        Review a pending request and commit it if the schedule allows.

        A time conflict, a full section, or a missing seat to drop denies the
        request with the matching reason instead.

        Returns:
            The APPROVED or DENIED snapshot
        """
        student_id = self.get(request_id).student_id
        with self._student_lock(student_id), self._request_lock(request_id):
            request = self._require_pending(request_id)
            return self._decide(request, reviewer_id, notes)

    def auto_approve(self, request_id: UUID) -> ScheduleChangeRequest:
        """
        Apply the auto-approval policy to one request.

        Requests that are not eligible stay PENDING for explicit review. An
        eligible request is decided as a reviewer approval would decide it, so
        a conflict or a full section denies it with that reason.
        """
        student_id = self.get(request_id).student_id
        with self._student_lock(student_id), self._request_lock(request_id):
            request = self.get(request_id)
            if not (
                request.is_pending
                and request.can_auto_approve
                and self._config.AUTO_APPROVE_ENABLED
            ):
                return request
            return self._decide(request, self._config.AUTO_APPROVER_ID, "Auto-approved")

    def deny(
        self,
        request_id: UUID,
        reason: str,
        reviewer_id: UUID | None = None,
        notes: str | None = None,
    ) -> ScheduleChangeRequest:
        """
        Reject a pending request.

        Raises:
            ValidationError: If no reason is given
        """
        if not reason or not reason.strip():
            raise ValidationError("denial_reason", reason, "Denial requires a reason")
        with self._request_lock(request_id):
            request = self._require_pending(request_id)
            return self._deny(request, reason.strip(), reviewer_id, notes)

    def complete(self, request_id: UUID) -> ScheduleChangeRequest:
        """Close an APPROVED request once the new schedule is in effect."""
        with self._request_lock(request_id):
            request = self.get(request_id)
            return self._record(request, request.complete(self._clock()))

    def cancel(
        self, request_id: UUID, student_id: UUID, reason: str = "Withdrawn by student"
    ) -> ScheduleChangeRequest:
        """
        Withdraw a pending request.

        Raises:
            BusinessRuleError: If the caller is not the submitting student
            InvalidStatusTransitionError: If the request is no longer PENDING
        """
        with self._request_lock(request_id):
            request = self.get(request_id)
            if request.student_id != student_id:
                raise BusinessRuleError(
                    "Only the student who submitted the request can cancel it",
                    {"request_id": str(request_id), "student_id": str(student_id)},
                )
            return self._record(request, request.cancel(self._clock(), reason))

    def _decide(
        self, request: ScheduleChangeRequest, reviewer_id: UUID, notes: str | None
    ) -> ScheduleChangeRequest:
        blocker = self._find_blocker(request)
        if blocker is not None:
            reason, detail = blocker
            return self._deny(request, reason, reviewer_id, detail)
        return self._commit(request, reviewer_id, notes)

    def _find_blocker(self, request: ScheduleChangeRequest) -> tuple[str, str | None] | None:
        """First reason the request cannot be approved now, with a detail note."""
        student_id = request.student_id
        request_type = request.request_type

        if request_type.drops_section and (
            self._tracker.holder_for_student(request.current_section_id, student_id)
            is None
        ):
            return NOT_ENROLLED_REASON, None

        if not request_type.adds_section:
            return None

        section_id = request.requested_section_id
        if self._tracker.holder_for_student(section_id, student_id) is not None:
            return ALREADY_ENROLLED_REASON, None

        dropping = (
            request.current_section_id if request_type == ChangeRequestType.SWAP else None
        )
        conflicts = self._conflicts.find_section_conflicts(
            self._tracker.sections_for_student(student_id), section_id, dropping
        )
        if conflicts:
            return SCHEDULE_CONFLICT, "; ".join(c.describe() for c in conflicts)

        if not self._tracker.has_free_seat(section_id):
            return SECTION_FULL_REASON, None
        return None

    def _commit(
        self, request: ScheduleChangeRequest, reviewer_id: UUID, notes: str | None
    ) -> ScheduleChangeRequest:
        request_type = request.request_type
        approved = request.approve(reviewer_id, self._clock(), notes)

        if request_type.adds_section:
            reservation = self._tracker.reserve_seat(
                request.requested_section_id,
                request.id,
                request.student_id,
                allow_waitlist=False,
            )
            if not reservation.is_reserved:
                logger.warning(
                    "Seat taken between validation and commit",
                    request_id=str(request.id),
                    section_id=str(request.requested_section_id),
                )
                return self._deny(request, CAPACITY_RACE_REASON, reviewer_id, notes)

        if request_type.drops_section:
            try:
                self._allocator.drop_section(
                    request.student_id,
                    request.current_section_id,
                    f"Dropped by schedule change: {request.request_summary}",
                )
            except Exception:
                if request_type.adds_section:
                    self._allocator.release_seat(request.requested_section_id, request.id)
                raise

        return self._record(request, approved)

    def _deny(
        self,
        request: ScheduleChangeRequest,
        reason: str,
        reviewer_id: UUID | None,
        notes: str | None,
    ) -> ScheduleChangeRequest:
        return self._record(request, request.deny(reason, self._clock(), reviewer_id, notes))

    # Batch processing and SLA

    def process_pending(self, now: datetime | None = None) -> list[ScheduleChangeRequest]:
        """
        Batch pass over pending requests: auto-approve eligible ones, then
        run the SLA check.

        Returns:
            Requests decided by this pass
        """
        set_correlation_id()
        decided = []
        for request in self._repository.find_pending():
            if not request.can_auto_approve:
                continue
            updated = self.auto_approve(request.id)
            if updated.status != ChangeRequestStatus.PENDING:
                decided.append(updated)
        self.check_sla(now)
        return decided

    def check_sla(self, now: datetime | None = None) -> list[ScheduleChangeRequest]:
        """
        Flag pending requests past their due date.

        Each request is flagged, and escalated when enabled, at most once.
        Nothing is approved or denied here.

        Returns:
            Requests flagged or escalated by this call
        """
        now = now or self._clock()
        flagged = []
        for pending in self._repository.find_pending():
            if not pending.is_past_due(now):
                continue
            with self._request_lock(pending.id):
                request = self.get(pending.id)
                if not request.is_pending:
                    continue
                updated = self._flag_overdue(request, now)
                if self._config.ESCALATION_ENABLED:
                    updated = self._escalate(updated, now)
                if updated is not request:
                    flagged.append(updated)
        return flagged

    def _flag_overdue(self, request: ScheduleChangeRequest, now: datetime) -> ScheduleChangeRequest:
        if request.is_overdue:
            return request
        updated = self._repository.save(request.mark_overdue(now))
        SLA_BREACHES.inc()
        hours_overdue = (now - request.due_at).total_seconds() / 3600
        logger.warning(
            "Schedule change overdue",
            request_id=str(request.id),
            due_at=request.due_at.isoformat(),
            hours_overdue=round(hours_overdue, 2),
        )
        self._publish(
            ScheduleChangeOverdue(
                aggregate_id=request.id,
                request_id=request.id,
                student_id=request.student_id,
                due_at=request.due_at,
                hours_overdue=hours_overdue,
            )
        )
        return updated

    def _escalate(self, request: ScheduleChangeRequest, now: datetime) -> ScheduleChangeRequest:
        if request.is_escalated:
            return request
        target = self._config.ESCALATION_TARGET
        updated = self._repository.save(request.escalate(target, now))
        ESCALATIONS.labels(target=target).inc()
        logger.warning(
            "Schedule change escalated", request_id=str(request.id), escalated_to=target
        )
        self._publish(
            ScheduleChangeEscalated(
                aggregate_id=request.id,
                request_id=request.id,
                student_id=request.student_id,
                escalated_to=target,
                due_at=request.due_at,
            )
        )
        return updated

    # Queries

    def get(self, request_id: UUID) -> ScheduleChangeRequest:
        request = self._repository.get_by_id(request_id)
        if request is None:
            raise RequestNotFoundError("ScheduleChangeRequest", request_id)
        return request

    def requests_for_student(self, student_id: UUID) -> list[ScheduleChangeRequest]:
        """All of a student's requests, newest first."""
        return self._repository.find_by_student(student_id)

    def pending_for_student(self, student_id: UUID) -> list[ScheduleChangeRequest]:
        return [r for r in self._repository.find_by_student(student_id) if r.is_pending]

    def pending_requests(self) -> list[ScheduleChangeRequest]:
        return self._repository.find_pending()

    def overdue_requests(self, now: datetime | None = None) -> list[ScheduleChangeRequest]:
        return self._repository.find_overdue(now or self._clock())

    # Internals

    def _require_pending(self, request_id: UUID) -> ScheduleChangeRequest:
        request = self.get(request_id)
        if not request.is_pending:
            raise InvalidStatusTransitionError(
                "ScheduleChangeRequest", request.id, request.status.value, "decided"
            )
        return request

    def _record(
        self, previous: ScheduleChangeRequest, updated: ScheduleChangeRequest
    ) -> ScheduleChangeRequest:
        self._repository.save(updated)
        if previous.is_pending and not updated.is_pending:
            PENDING_CHANGE_REQUESTS.dec()
        SCHEDULE_CHANGE_DECISIONS.labels(
            request_type=updated.request_type.value, status=updated.status.value
        ).inc()
        logger.info(
            "Schedule change transitioned",
            request_id=str(updated.id),
            student_id=str(updated.student_id),
            summary=updated.request_summary,
            old_status=previous.status.value,
            new_status=updated.status.value,
            reviewed_by_id=str(updated.reviewed_by_id) if updated.reviewed_by_id else None,
            reason=updated.status_reason,
        )
        self._publish(
            ScheduleChangeStatusChanged(
                aggregate_id=updated.id,
                request_id=updated.id,
                student_id=updated.student_id,
                request_type=updated.request_type,
                old_status=previous.status,
                new_status=updated.status,
                reviewed_by_id=updated.reviewed_by_id,
                reason=updated.status_reason,
            )
        )
        return updated

    def _course_code(self, section_id: UUID | None) -> str | None:
        if section_id is None or not self._tracker.has_section(section_id):
            return None
        return self._tracker.course_code_of(section_id)

    def _publish(self, event: DomainEvent) -> None:
        if self._publish_event is not None:
            self._publish_event(event)

    def _request_lock(self, request_id: UUID) -> threading.Lock:
        return self._keyed_lock(self._request_locks, request_id)

    def _student_lock(self, student_id: UUID) -> threading.Lock:
        return self._keyed_lock(self._student_locks, student_id)

    def _keyed_lock(self, locks: dict[UUID, threading.Lock], key: UUID) -> threading.Lock:
        with self._locks_guard:
            lock = locks.get(key)
            if lock is None:
                lock = locks[key] = threading.Lock()
            return lock
