"""
Section Capacity Tracker

The single owner of seat counts and waitlist order. Every operation on a
section runs under that section's lock; different sections never contend.
"""

import threading
from uuid import UUID

from ....core.observability import SEAT_RESERVATIONS, get_logger
from ...shared.base import DomainService
from ...shared.exceptions import SectionNotFoundError, ValidationError
from ..entities.section import Section
from ..value_objects.reservation import SeatReservation, SectionSnapshot

logger = get_logger(__name__)


class SectionCapacityTracker(DomainService):
    """
    Service guarding section capacity.

    ``reserve_seat`` is the atomic arbiter of capacity: a caller that checked
    for a free seat earlier must still accept a REJECTED or WAITLISTED outcome.
    """

    def __init__(self, default_waitlist_max_length: int | None = None) -> None:
        """
        Initialize the tracker.

        Args:
            default_waitlist_max_length: Waitlist cap for sections registered
                without one; None leaves waitlists unbounded
        """
        self._default_waitlist_max_length = default_waitlist_max_length
        self._sections: dict[UUID, Section] = {}
        self._locks: dict[UUID, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def register_section(
        self,
        section_id: UUID,
        course_id: UUID,
        capacity: int,
        waitlist_max_length: int | None = None,
        course_code: str | None = None,
    ) -> SectionSnapshot:
        """
        Start tracking a section.

        Raises:
            ValidationError: If the section is already tracked or capacity is negative
        """
        if waitlist_max_length is None:
            waitlist_max_length = self._default_waitlist_max_length
        try:
            section = Section(
                section_id, course_id, capacity, waitlist_max_length, course_code
            )
        except ValueError as e:
            raise ValidationError("capacity", capacity, str(e)) from e

        with self._registry_lock:
            if section_id in self._sections:
                raise ValidationError(
                    "section_id", str(section_id), "Section is already registered"
                )
            self._sections[section_id] = section
            self._locks[section_id] = threading.Lock()

        logger.info(
            "Section registered",
            section_id=str(section_id),
            course_id=str(course_id),
            capacity=capacity,
            waitlist_max_length=waitlist_max_length,
        )
        return section.snapshot()

    def has_section(self, section_id: UUID) -> bool:
        with self._registry_lock:
            return section_id in self._sections

    def section_ids(self) -> list[UUID]:
        with self._registry_lock:
            return list(self._sections)

    def course_of(self, section_id: UUID) -> UUID:
        section, _ = self._get(section_id)
        return section.course_id

    def course_code_of(self, section_id: UUID) -> str | None:
        section, _ = self._get(section_id)
        return section.course_code

    def reserve_seat(
        self,
        section_id: UUID,
        request_id: UUID,
        student_id: UUID,
        allow_waitlist: bool = True,
    ) -> SeatReservation:
        """
        Atomically take a seat, or append to the waitlist when the section is full.

        Args:
            section_id: Section to reserve in
            request_id: Request the seat is reserved for
            student_id: Student behind the request
            allow_waitlist: When False a full section yields REJECTED

        Returns:
            RESERVED, WAITLISTED with its 1-based position, or REJECTED when
            the section is full and the waitlist is capped or not allowed
        """
        section, lock = self._get(section_id)
        with lock:
            reservation = section.reserve(request_id, student_id, allow_waitlist)
            enrolled, capacity = section.enrolled_count, section.capacity

        SEAT_RESERVATIONS.labels(outcome=reservation.outcome.value).inc()
        logger.debug(
            "Seat reservation",
            section_id=str(section_id),
            request_id=str(request_id),
            outcome=reservation.outcome.value,
            waitlist_position=reservation.waitlist_position,
            enrolled=enrolled,
            capacity=capacity,
        )
        return reservation

    def release_seat(self, section_id: UUID, request_id: UUID) -> UUID | None:
        """
        Free a seat and hand it to the waitlist head.

        Returns:
            The promoted request id, or None if nobody was waiting

        Raises:
            SeatNotHeldError: If the request holds no seat in the section
        """
        section, lock = self._get(section_id)
        with lock:
            promoted = section.release(request_id)

        logger.info(
            "Seat released",
            section_id=str(section_id),
            request_id=str(request_id),
            promoted_request_id=str(promoted) if promoted else None,
        )
        return promoted

    def withdraw_from_waitlist(self, section_id: UUID, request_id: UUID) -> bool:
        section, lock = self._get(section_id)
        with lock:
            return section.withdraw(request_id)

    def set_capacity(self, section_id: UUID, capacity: int) -> list[UUID]:
        """
        Change a section's seat count.

        Returns:
            Request ids promoted from the waitlist into new seats, in order

        Raises:
            CapacityReductionError: If capacity would fall below enrolled count
        """
        section, lock = self._get(section_id)
        with lock:
            old_capacity = section.capacity
            promoted = section.set_capacity(capacity)

        logger.info(
            "Section capacity changed",
            section_id=str(section_id),
            old_capacity=old_capacity,
            new_capacity=capacity,
            promoted=len(promoted),
        )
        return promoted

    def snapshot(self, section_id: UUID) -> SectionSnapshot:
        section, lock = self._get(section_id)
        with lock:
            return section.snapshot()

    def snapshots(self) -> list[SectionSnapshot]:
        return [self.snapshot(section_id) for section_id in self.section_ids()]

    def has_free_seat(self, section_id: UUID) -> bool:
        section, lock = self._get(section_id)
        with lock:
            return section.has_free_seat

    def waitlist_open(self, section_id: UUID) -> bool:
        section, lock = self._get(section_id)
        with lock:
            return section.waitlist_open

    def holder_for_student(self, section_id: UUID, student_id: UUID) -> UUID | None:
        """Request id through which the student holds a seat in the section."""
        section, lock = self._get(section_id)
        with lock:
            return section.holder_for_student(student_id)

    def sections_for_student(self, student_id: UUID) -> list[UUID]:
        """Sections in which the student currently holds a seat."""
        return [
            section_id
            for section_id in self.section_ids()
            if self.holder_for_student(section_id, student_id) is not None
        ]

    def _get(self, section_id: UUID) -> tuple[Section, threading.Lock]:
        with self._registry_lock:
            section = self._sections.get(section_id)
            if section is None:
                raise SectionNotFoundError(section_id)
            return section, self._locks[section_id]
