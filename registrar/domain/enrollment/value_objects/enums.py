"""Domain enums for enrollment and schedule changes."""

from enum import Enum, IntFlag


class EnrollmentStatus(str, Enum):
    """Enrollment request status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Terminal statuses never re-enter allocation."""
        return self in {
            EnrollmentStatus.APPROVED,
            EnrollmentStatus.DENIED,
            EnrollmentStatus.CANCELLED,
        }

    def can_transition_to(self, target_status: "EnrollmentStatus") -> bool:
        """Check if a request can move from this status to target status."""
        valid_transitions = {
            EnrollmentStatus.PENDING: {
                EnrollmentStatus.APPROVED,
                EnrollmentStatus.DENIED,
                EnrollmentStatus.WAITLISTED,
                EnrollmentStatus.CANCELLED,
            },
            EnrollmentStatus.WAITLISTED: {
                EnrollmentStatus.APPROVED,
                EnrollmentStatus.CANCELLED,
            },
            # Dropping an enrolled course
            EnrollmentStatus.APPROVED: {EnrollmentStatus.CANCELLED},
            EnrollmentStatus.DENIED: set(),
            EnrollmentStatus.CANCELLED: set(),
        }
        return target_status in valid_transitions.get(self, set())


class ChangeRequestType(str, Enum):
    """Kind of schedule change a student asks for."""

    ADD = "add"
    DROP = "drop"
    SWAP = "swap"

    @property
    def adds_section(self) -> bool:
        return self in {ChangeRequestType.ADD, ChangeRequestType.SWAP}

    @property
    def drops_section(self) -> bool:
        return self in {ChangeRequestType.DROP, ChangeRequestType.SWAP}


class ChangeRequestStatus(str, Enum):
    """Schedule change request status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {
            ChangeRequestStatus.DENIED,
            ChangeRequestStatus.COMPLETED,
            ChangeRequestStatus.CANCELLED,
        }

    def can_transition_to(self, target_status: "ChangeRequestStatus") -> bool:
        valid_transitions = {
            ChangeRequestStatus.PENDING: {
                ChangeRequestStatus.APPROVED,
                ChangeRequestStatus.DENIED,
                ChangeRequestStatus.CANCELLED,
            },
            ChangeRequestStatus.APPROVED: {ChangeRequestStatus.COMPLETED},
            ChangeRequestStatus.DENIED: set(),
            ChangeRequestStatus.COMPLETED: set(),
            ChangeRequestStatus.CANCELLED: set(),
        }
        return target_status in valid_transitions.get(self, set())


class ReservationOutcome(str, Enum):
    """Result of a seat reservation attempt."""

    RESERVED = "reserved"
    WAITLISTED = "waitlisted"
    # Section full and the waitlist was closed, capped, or not allowed
    REJECTED = "rejected"


class DaysOfWeek(IntFlag):
    """Day-of-week bitmask; bit n is ``date.weekday() == n``."""

    NONE = 0
    MON = 1
    TUE = 2
    WED = 4
    THU = 8
    FRI = 16
    SAT = 32
    SUN = 64

    WEEKDAYS = MON | TUE | WED | THU | FRI
    WEEKEND = SAT | SUN

    @classmethod
    def for_weekday(cls, weekday: int) -> "DaysOfWeek":
        """Map ``date.weekday()`` (0=Monday) to its flag."""
        if not 0 <= weekday <= 6:
            raise ValueError(f"Invalid weekday: {weekday}. Must be 0-6 (Monday=0)")
        return cls(1 << weekday)

    @classmethod
    def parse(cls, value: str) -> "DaysOfWeek":
        """
        Parse a day list such as ``"MON,WED,FRI"`` or ``"Mon/Wed"``.

        Raises:
            ValueError: If a token is not a recognised day abbreviation
        """
        result = cls.NONE
        for token in value.replace("/", ",").split(","):
            token = token.strip().upper()[:3]
            if not token:
                continue
            try:
                result |= cls[token]
            except KeyError:
                raise ValueError(f"Unknown day of week: {token!r}") from None
        return result

    def shares_day_with(self, other: "DaysOfWeek") -> bool:
        return bool(self & other)

    def to_string(self) -> str:
        names = [day.name for day in _SINGLE_DAYS if day & self]
        return ",".join(names)


_SINGLE_DAYS = (
    DaysOfWeek.MON,
    DaysOfWeek.TUE,
    DaysOfWeek.WED,
    DaysOfWeek.THU,
    DaysOfWeek.FRI,
    DaysOfWeek.SAT,
    DaysOfWeek.SUN,
)
