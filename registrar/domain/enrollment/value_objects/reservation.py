"""Seat reservation results and section capacity snapshots."""

from dataclasses import dataclass
from uuid import UUID

from .enums import ReservationOutcome


@dataclass(frozen=True)
class SeatReservation:
    """Outcome of ``SectionCapacityTracker.reserve_seat``."""

    section_id: UUID
    request_id: UUID
    outcome: ReservationOutcome
    waitlist_position: int | None = None

    def __post_init__(self):
        if (self.outcome == ReservationOutcome.WAITLISTED) != (
            self.waitlist_position is not None
        ):
            raise ValueError("Waitlist position is set exactly when waitlisted")
        if self.waitlist_position is not None and self.waitlist_position < 1:
            raise ValueError("Waitlist positions are 1-based")

    @property
    def is_reserved(self) -> bool:
        return self.outcome == ReservationOutcome.RESERVED

    @property
    def is_waitlisted(self) -> bool:
        return self.outcome == ReservationOutcome.WAITLISTED

    @property
    def is_rejected(self) -> bool:
        return self.outcome == ReservationOutcome.REJECTED


@dataclass(frozen=True)
class SectionSnapshot:
    """Point-in-time view of a section's seats, safe to hand out of the tracker."""

    section_id: UUID
    course_id: UUID
    capacity: int
    enrolled: tuple[UUID, ...]
    waitlist: tuple[UUID, ...]
    waitlist_max_length: int | None = None

    @property
    def enrolled_count(self) -> int:
        return len(self.enrolled)

    @property
    def available_seats(self) -> int:
        return self.capacity - self.enrolled_count

    @property
    def waitlist_length(self) -> int:
        return len(self.waitlist)

    @property
    def is_full(self) -> bool:
        return self.enrolled_count >= self.capacity

    @property
    def waitlist_open(self) -> bool:
        return (
            self.waitlist_max_length is None
            or self.waitlist_length < self.waitlist_max_length
        )

    def waitlist_position(self, request_id: UUID) -> int | None:
        try:
            return self.waitlist.index(request_id) + 1
        except ValueError:
            return None


@dataclass(frozen=True)
class WaitlistAnalysis:
    """Waitlist pressure of one section."""

    section_id: UUID
    course_id: UUID
    course_code: str | None
    capacity: int
    enrolled: int
    waitlist_length: int
    waitlist_max_length: int | None
    average_priority_score: float
    # None when the waitlist is uncapped
    utilization_percent: float | None
    is_critical: bool
