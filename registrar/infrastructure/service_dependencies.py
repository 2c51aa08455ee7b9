"""
Service Dependencies for Domain Service Injection.

Builds the enrollment services around one capacity tracker, one event bus and
the in-memory repositories, wired from configuration.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ..core.config import Settings, settings as default_settings
from ..core.observability import setup_structured_logging
from ..domain.enrollment.repositories import (
    EnrollmentRequestRepository,
    ScheduleChangeRequestRepository,
)
from ..domain.enrollment.services import (
    CalendarService,
    ConflictDetector,
    EnrollmentAllocator,
    PriorityScorer,
    ScheduleChangeWorkflow,
    SectionCapacityTracker,
)
from ..domain.shared.base import utc_now
from .events import InMemoryEventBus
from .repositories import (
    InMemoryEnrollmentRequestRepository,
    InMemoryScheduleChangeRequestRepository,
)


@dataclass
class RegistrarServices:
    """Wired service graph; every service shares the same tracker and bus."""

    config: Settings
    event_bus: InMemoryEventBus
    calendar: CalendarService
    tracker: SectionCapacityTracker
    scorer: PriorityScorer
    conflict_detector: ConflictDetector
    allocator: EnrollmentAllocator
    workflow: ScheduleChangeWorkflow
    enrollment_requests: EnrollmentRequestRepository
    change_requests: ScheduleChangeRequestRepository


def create_services(
    config: Settings | None = None,
    event_bus: InMemoryEventBus | None = None,
    enrollment_requests: EnrollmentRequestRepository | None = None,
    change_requests: ScheduleChangeRequestRepository | None = None,
    configure_logging: bool = True,
    clock: Callable[[], datetime] = utc_now,
) -> RegistrarServices:
    """
    Build the enrollment service graph.

    Args:
        config: Settings to wire from; defaults to the module-level settings
        event_bus: Bus receiving every domain event
        enrollment_requests: Enrollment request storage
        change_requests: Schedule change request storage
        configure_logging: Install the structlog configuration for ``config``
        clock: Source of transition and SLA timestamps
    """
    config = config or default_settings
    if configure_logging:
        setup_structured_logging(config)

    event_bus = event_bus or InMemoryEventBus()
    enrollment_requests = enrollment_requests or InMemoryEnrollmentRequestRepository()
    change_requests = change_requests or InMemoryScheduleChangeRequestRepository()

    calendar = CalendarService()
    tracker = SectionCapacityTracker(
        default_waitlist_max_length=config.WAITLIST_MAX_LENGTH
    )
    scorer = PriorityScorer(
        rank_weight=config.PREFERENCE_RANK_WEIGHT,
        priority_weight=config.PRIORITY_SCORE_WEIGHT,
    )
    conflict_detector = ConflictDetector(calendar)
    allocator = EnrollmentAllocator(
        tracker=tracker,
        scorer=scorer,
        repository=enrollment_requests,
        publish=event_bus.publish,
        max_workers=config.ALLOCATION_MAX_WORKERS,
        critical_percent=config.WAITLIST_CRITICAL_PERCENT,
        clock=clock,
    )
    workflow = ScheduleChangeWorkflow(
        allocator=allocator,
        tracker=tracker,
        conflict_detector=conflict_detector,
        calendar_service=calendar,
        repository=change_requests,
        config=config,
        publish=event_bus.publish,
        clock=clock,
    )

    return RegistrarServices(
        config=config,
        event_bus=event_bus,
        calendar=calendar,
        tracker=tracker,
        scorer=scorer,
        conflict_detector=conflict_detector,
        allocator=allocator,
        workflow=workflow,
        enrollment_requests=enrollment_requests,
        change_requests=change_requests,
    )
