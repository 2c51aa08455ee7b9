"""
Section Entity

Seat ledger of one course section. Only ``SectionCapacityTracker`` touches a
Section, always while holding that section's lock, so nothing here locks.
"""

from collections import OrderedDict
from uuid import UUID

from ...shared.exceptions import CapacityReductionError, SeatNotHeldError
from ..value_objects.enums import ReservationOutcome
from ..value_objects.reservation import SeatReservation, SectionSnapshot


class Section:
    """
    Capacity, enrolled roster and waitlist of a section.

    Both rosters map request id to student id. The waitlist is a single
    insertion-ordered map, so a request's position is its 1-based index and
    lookups by id need no second structure. Position lookups are linear in the
    waitlist length, which stays at class size.
    """

    def __init__(
        self,
        section_id: UUID,
        course_id: UUID,
        capacity: int,
        waitlist_max_length: int | None = None,
        course_code: str | None = None,
    ) -> None:
        if capacity < 0:
            raise ValueError(f"Capacity cannot be negative, got {capacity}")
        if waitlist_max_length is not None and waitlist_max_length < 0:
            raise ValueError("Waitlist max length cannot be negative")
        self.id = section_id
        self.course_id = course_id
        self.course_code = course_code
        self.capacity = capacity
        self.waitlist_max_length = waitlist_max_length
        self._enrolled: OrderedDict[UUID, UUID] = OrderedDict()
        self._waitlist: OrderedDict[UUID, UUID] = OrderedDict()

    @property
    def enrolled_count(self) -> int:
        return len(self._enrolled)

    @property
    def waitlist_length(self) -> int:
        return len(self._waitlist)

    @property
    def has_free_seat(self) -> bool:
        return self.enrolled_count < self.capacity

    @property
    def waitlist_open(self) -> bool:
        return (
            self.waitlist_max_length is None
            or self.waitlist_length < self.waitlist_max_length
        )

    def is_enrolled(self, request_id: UUID) -> bool:
        return request_id in self._enrolled

    def is_waitlisted(self, request_id: UUID) -> bool:
        return request_id in self._waitlist

    def waitlist_positions(self) -> dict[UUID, int]:
        return {rid: pos for pos, rid in enumerate(self._waitlist, start=1)}

    def waitlist_position(self, request_id: UUID) -> int | None:
        return self.waitlist_positions().get(request_id)

    def holder_for_student(self, student_id: UUID) -> UUID | None:
        """Request id through which the student holds a seat, if any."""
        for request_id, holder in self._enrolled.items():
            if holder == student_id:
                return request_id
        return None

    def reserve(
        self, request_id: UUID, student_id: UUID, allow_waitlist: bool = True
    ) -> SeatReservation:
        """
        Take a free seat, or join the waitlist tail.

        Re-reserving a request that already holds a seat or a waitlist entry
        returns its current standing unchanged.
        """
        if request_id in self._enrolled:
            return SeatReservation(self.id, request_id, ReservationOutcome.RESERVED)
        if request_id in self._waitlist:
            return SeatReservation(
                self.id,
                request_id,
                ReservationOutcome.WAITLISTED,
                self.waitlist_position(request_id),
            )

        if self.has_free_seat:
            self._enrolled[request_id] = student_id
            return SeatReservation(self.id, request_id, ReservationOutcome.RESERVED)

        if allow_waitlist and self.waitlist_open:
            self._waitlist[request_id] = student_id
            return SeatReservation(
                self.id,
                request_id,
                ReservationOutcome.WAITLISTED,
                self.waitlist_length,
            )

        return SeatReservation(self.id, request_id, ReservationOutcome.REJECTED)

    def release(self, request_id: UUID) -> UUID | None:
        """
        Free the request's seat and promote the waitlist head into it.

        Returns:
            The promoted request id, or None if the waitlist was empty

        Raises:
            SeatNotHeldError: If the request holds no seat here
        """
        if request_id not in self._enrolled:
            raise SeatNotHeldError(self.id, request_id)
        del self._enrolled[request_id]
        promoted = self._promote()
        return promoted[0] if promoted else None

    def withdraw(self, request_id: UUID) -> bool:
        """Remove a waitlist entry; later entries move up one position."""
        if request_id not in self._waitlist:
            return False
        del self._waitlist[request_id]
        return True

    def set_capacity(self, capacity: int) -> list[UUID]:
        """
        Change the seat count, promoting waitlisted requests into new seats.

        Raises:
            CapacityReductionError: If capacity would fall below enrolled count
        """
        if capacity < self.enrolled_count:
            raise CapacityReductionError(self.id, self.enrolled_count, capacity)
        self.capacity = capacity
        return self._promote()

    def _promote(self) -> list[UUID]:
        promoted = []
        while self._waitlist and self.has_free_seat:
            request_id, student_id = self._waitlist.popitem(last=False)
            self._enrolled[request_id] = student_id
            promoted.append(request_id)
        return promoted

    def snapshot(self) -> SectionSnapshot:
        return SectionSnapshot(
            section_id=self.id,
            course_id=self.course_id,
            capacity=self.capacity,
            enrolled=tuple(self._enrolled),
            waitlist=tuple(self._waitlist),
            waitlist_max_length=self.waitlist_max_length,
        )

    def __repr__(self) -> str:
        return (
            f"Section(id={self.id}, enrolled={self.enrolled_count}/{self.capacity}, "
            f"waitlist={self.waitlist_length})"
        )
