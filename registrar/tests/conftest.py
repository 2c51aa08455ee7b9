from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from registrar.core.config import Settings
from registrar.domain.enrollment.entities import EnrollmentRequest
from registrar.domain.enrollment.value_objects import PeriodTimer
from registrar.infrastructure.service_dependencies import (
    RegistrarServices,
    create_services,
)

T0 = datetime(2024, 8, 26, 8, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock shared by every service under test."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        SLA_HOURS_NORMAL=120,
        SLA_HOURS_URGENT=24,
        URGENT_PRIORITY_LEVEL=2,
        AUTO_APPROVE_ENABLED=True,
        AUTO_APPROVE_THRESHOLD=1,
        ESCALATION_ENABLED=True,
        ESCALATION_TARGET="registrar-office",
        WAITLIST_MAX_LENGTH=None,
    )


@pytest.fixture
def services(test_settings: Settings, clock: FakeClock) -> RegistrarServices:
    return create_services(test_settings, configure_logging=False, clock=clock)


@pytest.fixture
def course_id() -> UUID:
    return uuid4()


@pytest.fixture
def add_section(services: RegistrarServices) -> Callable[..., UUID]:
    """Register a section with the tracker and, optionally, its meeting pattern."""

    def _add(
        course_id: UUID | None = None,
        capacity: int = 2,
        meetings: list[PeriodTimer] | None = None,
        waitlist_max_length: int | None = None,
        course_code: str | None = None,
    ) -> UUID:
        section_id = uuid4()
        course_id = course_id or uuid4()
        services.tracker.register_section(
            section_id,
            course_id,
            capacity,
            waitlist_max_length=waitlist_max_length,
            course_code=course_code,
        )
        if meetings is not None:
            services.calendar.assign_section_periods(
                section_id, course_id, meetings, course_code=course_code
            )
        return section_id

    return _add


@pytest.fixture
def make_request(clock: FakeClock) -> Callable[..., EnrollmentRequest]:
    """Build a pending enrollment request, one second after the previous one."""
    counter = {"n": 0}

    def _make(
        course_id: UUID,
        sections: list[UUID],
        priority_score: float = 0.0,
        student_id: UUID | None = None,
        created_at: datetime | None = None,
    ) -> EnrollmentRequest:
        counter["n"] += 1
        return EnrollmentRequest.submit(
            student_id=student_id or uuid4(),
            course_id=course_id,
            section_preferences=sections,
            priority_score=priority_score,
            created_at=created_at or clock.now + timedelta(seconds=counter["n"]),
        )

    return _make
