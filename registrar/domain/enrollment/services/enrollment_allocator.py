"""
Enrollment Allocator

Turns pending enrollment requests into seats, waitlist entries or denials, and
moves waitlisted requests into seats as they free up.
"""

import contextvars
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from uuid import UUID

from ....core.observability import (
    ALLOCATION_DURATION,
    ENROLLMENT_DECISIONS,
    WAITLIST_PROMOTIONS,
    get_logger,
    set_correlation_id,
)
from ...shared.base import DomainEvent, DomainService, utc_now
from ...shared.exceptions import (
    InvalidStatusTransitionError,
    RequestNotFoundError,
    StudentNotEnrolledError,
    ValidationError,
    WaitlistIntegrityError,
)
from ..entities.enrollment_request import EnrollmentRequest
from ..events.domain_events import (
    EnrollmentStatusChanged,
    SectionCapacityChanged,
    WaitlistPositionChanged,
    WaitlistPromoted,
)
from ..repositories.enrollment_request_repository import EnrollmentRequestRepository
from ..value_objects.enums import EnrollmentStatus
from ..value_objects.reservation import WaitlistAnalysis
from .capacity_tracker import SectionCapacityTracker
from .priority_scorer import PriorityScorer

logger = get_logger(__name__)

NO_SEAT_REASON = (
    "All preferred sections are full and no waitlist could accept the request"
)

EventPublisher = Callable[[DomainEvent], None]

# (request as submitted, section tried, new snapshot or None when rejected)
_Outcome = tuple[EnrollmentRequest, UUID, EnrollmentRequest | None]


class EnrollmentAllocator(DomainService):
    """
    Service allocating section seats to enrollment requests.

    Each request goes to its most preferred section that has a free seat or
    an open waitlist, taking a seat or joining the waitlist there. Within a
    section, requests are served in ``PriorityScorer`` order. A request
    rejected by a capped waitlist moves on to its next preference, and is
    denied once no preferred section can take it.

    Waitlist bookkeeping of a section (tracker order and stored positions) is
    kept consistent under a per-section lock taken before the tracker's own.
    """

    def __init__(
        self,
        tracker: SectionCapacityTracker,
        scorer: PriorityScorer,
        repository: EnrollmentRequestRepository,
        publish: EventPublisher | None = None,
        max_workers: int = 1,
        critical_percent: float = 90.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the allocator.

        Args:
            tracker: Owner of seat counts and waitlists
            scorer: Admission ordering within a section
            repository: Enrollment request snapshots
            publish: Receives domain events, e.g. ``InMemoryEventBus.publish``
            max_workers: Sections processed in parallel per allocation round
            critical_percent: Waitlist utilization reported as critical
            clock: Source of transition timestamps
        """
        self._tracker = tracker
        self._scorer = scorer
        self._repository = repository
        self._publish_event = publish
        self._max_workers = max(1, max_workers)
        self._critical_percent = critical_percent
        self._clock = clock

        self._section_locks: dict[UUID, threading.RLock] = {}
        self._section_locks_guard = threading.Lock()

    # Queries

    def get(self, request_id: UUID) -> EnrollmentRequest:
        request = self._repository.get_by_id(request_id)
        if request is None:
            raise RequestNotFoundError("EnrollmentRequest", request_id)
        return request

    def requests_for_student(self, student_id: UUID) -> list[EnrollmentRequest]:
        return sorted(
            self._repository.find_by_student(student_id),
            key=lambda r: r.created_at,
            reverse=True,
        )

    def validate(self, request: EnrollmentRequest) -> None:
        """
        Check that every preferred section exists and belongs to the course.

        Raises:
            ValidationError: On the first unknown or mismatched section
        """
        for section_id in request.section_preferences:
            if not self._tracker.has_section(section_id):
                raise ValidationError(
                    "section_preferences",
                    str(section_id),
                    "Unknown section",
                    error_code="UNKNOWN_SECTION",
                )
            if self._tracker.course_of(section_id) != request.course_id:
                raise ValidationError(
                    "section_preferences",
                    str(section_id),
                    f"Section does not belong to course {request.course_id}",
                    error_code="SECTION_COURSE_MISMATCH",
                )

    # Allocation

    def allocate(self, requests: Iterable[EnrollmentRequest]) -> list[EnrollmentRequest]:
        """
        Allocate seats to a batch of requests.

        Requests already past PENDING, in the repository or as given, are
        returned unchanged. The whole batch is validated before any seat is
        touched.

        Args:
            requests: Enrollment requests, typically PENDING

        Returns:
            The latest snapshot of each request, in input order

        Raises:
            ValidationError: If a pending request references an unknown section
        """
        requests = list(requests)
        set_correlation_id()

        current: dict[UUID, EnrollmentRequest] = {}
        pending: list[EnrollmentRequest] = []
        for request in requests:
            if request.id in current:
                continue
            stored = self._repository.get_by_id(request.id)
            snapshot = stored or request
            current[request.id] = snapshot
            if snapshot.is_pending:
                pending.append(snapshot)

        for request in pending:
            self.validate(request)

        with ALLOCATION_DURATION.time():
            for request in pending:
                self._repository.save(request)
            for updated in self._allocate_pending(pending):
                current[updated.id] = updated

        results = [current[request.id] for request in requests]
        logger.info(
            "Allocation batch finished",
            batch_size=len(requests),
            allocated=len(pending),
            approved=sum(1 for r in results if r.status == EnrollmentStatus.APPROVED),
            waitlisted=sum(1 for r in results if r.status == EnrollmentStatus.WAITLISTED),
            denied=sum(1 for r in results if r.status == EnrollmentStatus.DENIED),
        )
        return results

    def _allocate_pending(
        self, pending: list[EnrollmentRequest]
    ) -> list[EnrollmentRequest]:
        decided: list[EnrollmentRequest] = []

        # A rejected reservation retries the request's next preferred section
        tried: dict[UUID, set[UUID]] = defaultdict(set)
        remaining = pending
        while remaining:
            groups: dict[UUID, list[EnrollmentRequest]] = defaultdict(list)
            for request in remaining:
                target = self._first_open_section(request, tried[request.id])
                if target is None:
                    decided.append(
                        self._record(request, request.deny(NO_SEAT_REASON, self._clock()))
                    )
                else:
                    groups[target].append(request)
            remaining = []
            for request, section_id, updated in self._process_groups(groups):
                if updated is None:
                    tried[request.id].add(section_id)
                    remaining.append(request)
                else:
                    decided.append(updated)

        return decided

    def _process_groups(self, groups: dict[UUID, list[EnrollmentRequest]]) -> list[_Outcome]:
        ordered = sorted(groups.items(), key=lambda item: str(item[0]))
        if self._max_workers == 1 or len(ordered) < 2:
            batches = [
                self._process_section(section_id, requests)
                for section_id, requests in ordered
            ]
        else:
            # Sections are independent; each worker carries the batch context
            with ThreadPoolExecutor(
                max_workers=min(self._max_workers, len(ordered))
            ) as pool:
                futures = [
                    pool.submit(
                        contextvars.copy_context().run,
                        self._process_section,
                        section_id,
                        requests,
                    )
                    for section_id, requests in ordered
                ]
                batches = [future.result() for future in futures]
        return [outcome for batch in batches for outcome in batch]

    def _process_section(
        self, section_id: UUID, requests: list[EnrollmentRequest]
    ) -> list[_Outcome]:
        outcomes: list[_Outcome] = []
        with self._section_lock(section_id):
            for request in self._scorer.order(requests, section_id):
                reservation = self._tracker.reserve_seat(
                    section_id, request.id, request.student_id
                )
                now = self._clock()
                if reservation.is_reserved:
                    updated = self._record(request, request.approve(section_id, now))
                elif reservation.is_waitlisted:
                    updated = self._record(
                        request,
                        request.waitlist(section_id, reservation.waitlist_position, now),
                    )
                else:
                    updated = None
                outcomes.append((request, section_id, updated))
        return outcomes

    def _first_open_section(
        self, request: EnrollmentRequest, tried: set[UUID]
    ) -> UUID | None:
        """Most preferred untried section with a free seat or an open waitlist."""
        return next(
            (
                section_id
                for section_id in request.section_preferences
                if section_id not in tried
                and (
                    self._tracker.has_free_seat(section_id)
                    or self._tracker.waitlist_open(section_id)
                )
            ),
            None,
        )

    # Promotion and waitlist maintenance

    def handle_promotion(self, section_id: UUID, request_id: UUID) -> EnrollmentRequest:
        """
        Move a request the tracker promoted from WAITLISTED to APPROVED.

        Raises:
            WaitlistIntegrityError: If the promoted id is unknown, not
                waitlisted, or waitlisted for another section
        """
        with self._section_lock(section_id):
            request = self._repository.get_by_id(request_id)
            if request is None:
                raise WaitlistIntegrityError(
                    section_id, request_id, "no such enrollment request"
                )
            if not request.is_waitlist or request.section_id != section_id:
                raise WaitlistIntegrityError(
                    section_id,
                    request_id,
                    f"request is {request.status.value} for section {request.section_id}",
                )
            promoted = self._record(request, request.promote(self._clock()))

        WAITLIST_PROMOTIONS.inc()
        self._publish(
            WaitlistPromoted(
                aggregate_id=request.id,
                request_id=request.id,
                student_id=request.student_id,
                section_id=section_id,
            )
        )
        return promoted

    def refresh_waitlist_positions(self, section_id: UUID) -> list[EnrollmentRequest]:
        """
        Store the tracker's current waitlist order on the request snapshots.

        Returns:
            Requests whose position changed

        Raises:
            WaitlistIntegrityError: If a waitlist entry has no waitlisted request
        """
        changed = []
        with self._section_lock(section_id):
            snapshot = self._tracker.snapshot(section_id)
            for position, request_id in enumerate(snapshot.waitlist, start=1):
                request = self._repository.get_by_id(request_id)
                if request is None or not request.is_waitlist:
                    raise WaitlistIntegrityError(
                        section_id, request_id, "waitlist entry has no waitlisted request"
                    )
                if request.waitlist_position == position:
                    continue
                updated = self._repository.save(request.with_waitlist_position(position))
                self._publish(
                    WaitlistPositionChanged(
                        aggregate_id=request.id,
                        request_id=request.id,
                        student_id=request.student_id,
                        section_id=section_id,
                        old_position=request.waitlist_position,
                        new_position=position,
                    )
                )
                changed.append(updated)
        return changed

    def release_seat(self, section_id: UUID, request_id: UUID) -> EnrollmentRequest | None:
        """
        Free a seat through the tracker and promote the waitlist head into it.

        Returns:
            The promoted request's new snapshot, or None if nobody was waiting
        """
        with self._section_lock(section_id):
            promoted_id = self._tracker.release_seat(section_id, request_id)
            promoted = (
                self.handle_promotion(section_id, promoted_id) if promoted_id else None
            )
            self.refresh_waitlist_positions(section_id)
        return promoted

    def drop(self, request_id: UUID, reason: str = "Dropped by student") -> EnrollmentRequest:
        """Cancel an APPROVED request and give its seat to the waitlist."""
        request = self.get(request_id)
        if request.status != EnrollmentStatus.APPROVED:
            raise InvalidStatusTransitionError(
                "EnrollmentRequest", request.id, request.status.value, "dropped"
            )
        with self._section_lock(request.section_id):
            cancelled = request.cancel(reason, self._clock())
            self.release_seat(request.section_id, request.id)
            return self._record(request, cancelled)

    def withdraw(
        self, request_id: UUID, reason: str = "Withdrawn from waitlist"
    ) -> EnrollmentRequest:
        """Take a WAITLISTED request off its waitlist; later entries move up."""
        request = self.get(request_id)
        if not request.is_waitlist:
            raise InvalidStatusTransitionError(
                "EnrollmentRequest", request.id, request.status.value, "withdrawn"
            )
        section_id = request.section_id
        with self._section_lock(section_id):
            cancelled = request.cancel(reason, self._clock())
            if not self._tracker.withdraw_from_waitlist(section_id, request.id):
                raise WaitlistIntegrityError(
                    section_id, request.id, "request is not on the waitlist"
                )
            cancelled = self._record(request, cancelled)
            self.refresh_waitlist_positions(section_id)
        return cancelled

    def cancel(self, request_id: UUID, reason: str = "Cancelled by student") -> EnrollmentRequest:
        """Cancel a request in any non-terminal state, releasing what it holds."""
        request = self.get(request_id)
        if request.status == EnrollmentStatus.APPROVED:
            return self.drop(request_id, reason)
        if request.status == EnrollmentStatus.WAITLISTED:
            return self.withdraw(request_id, reason)
        return self._record(request, request.cancel(reason, self._clock()))

    def drop_section(
        self, student_id: UUID, section_id: UUID, reason: str
    ) -> EnrollmentRequest | None:
        """
        Give up the seat a student holds in a section, whatever request took it.

        Returns:
            The request promoted into the freed seat, if any

        Raises:
            StudentNotEnrolledError: If the student holds no seat there
        """
        with self._section_lock(section_id):
            holder = self._tracker.holder_for_student(section_id, student_id)
            if holder is None:
                raise StudentNotEnrolledError(section_id, student_id)
            enrollment = self._repository.get_by_id(holder)
            cancelled = enrollment.cancel(reason, self._clock()) if enrollment else None
            promoted = self.release_seat(section_id, holder)
            if enrollment is not None:
                self._record(enrollment, cancelled)
        return promoted

    def set_capacity(self, section_id: UUID, capacity: int) -> list[EnrollmentRequest]:
        """
        Change a section's capacity; added seats go to the waitlist in order.

        Raises:
            CapacityReductionError: If capacity would fall below enrolled count
        """
        with self._section_lock(section_id):
            old_capacity = self._tracker.snapshot(section_id).capacity
            promoted_ids = self._tracker.set_capacity(section_id, capacity)
            promoted = [self.handle_promotion(section_id, rid) for rid in promoted_ids]
            self.refresh_waitlist_positions(section_id)

        self._publish(
            SectionCapacityChanged(
                aggregate_id=section_id,
                section_id=section_id,
                old_capacity=old_capacity,
                new_capacity=capacity,
                promoted_request_ids=promoted_ids,
            )
        )
        return promoted

    def waitlist_report(self) -> list[WaitlistAnalysis]:
        """Sections with a non-empty waitlist, longest waitlist first."""
        report = []
        for snapshot in self._tracker.snapshots():
            if not snapshot.waitlist:
                continue
            scores = [
                request.priority_score
                for request in map(self._repository.get_by_id, snapshot.waitlist)
                if request is not None
            ]
            utilization = None
            if snapshot.waitlist_max_length:
                utilization = round(
                    100.0 * snapshot.waitlist_length / snapshot.waitlist_max_length, 1
                )
            report.append(
                WaitlistAnalysis(
                    section_id=snapshot.section_id,
                    course_id=snapshot.course_id,
                    course_code=self._tracker.course_code_of(snapshot.section_id),
                    capacity=snapshot.capacity,
                    enrolled=snapshot.enrolled_count,
                    waitlist_length=snapshot.waitlist_length,
                    waitlist_max_length=snapshot.waitlist_max_length,
                    average_priority_score=sum(scores) / len(scores) if scores else 0.0,
                    utilization_percent=utilization,
                    is_critical=utilization is not None
                    and utilization >= self._critical_percent,
                )
            )
        return sorted(report, key=lambda a: (-a.waitlist_length, str(a.section_id)))

    # Internals

    def _record(
        self, previous: EnrollmentRequest, updated: EnrollmentRequest
    ) -> EnrollmentRequest:
        self._repository.save(updated)
        ENROLLMENT_DECISIONS.labels(status=updated.status.value).inc()
        logger.info(
            "Enrollment request transitioned",
            request_id=str(updated.id),
            student_id=str(updated.student_id),
            section_id=str(updated.section_id) if updated.section_id else None,
            old_status=previous.status.value,
            new_status=updated.status.value,
            waitlist_position=updated.waitlist_position,
            reason=updated.status_reason,
        )
        self._publish(
            EnrollmentStatusChanged(
                aggregate_id=updated.id,
                request_id=updated.id,
                student_id=updated.student_id,
                course_id=updated.course_id,
                section_id=updated.section_id,
                old_status=previous.status,
                new_status=updated.status,
                waitlist_position=updated.waitlist_position,
                reason=updated.status_reason,
            )
        )
        return updated

    def _publish(self, event: DomainEvent) -> None:
        if self._publish_event is not None:
            self._publish_event(event)

    def _section_lock(self, section_id: UUID) -> threading.RLock:
        with self._section_locks_guard:
            lock = self._section_locks.get(section_id)
            if lock is None:
                lock = self._section_locks[section_id] = threading.RLock()
            return lock
