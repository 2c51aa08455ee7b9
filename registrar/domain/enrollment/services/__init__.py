from .calendar_service import CalendarService
from .capacity_tracker import SectionCapacityTracker
from .conflict_detector import SCHEDULE_CONFLICT, ConflictDetector, ScheduleConflict
from .enrollment_allocator import NO_SEAT_REASON, EnrollmentAllocator
from .priority_scorer import PriorityScorer
from .schedule_change_workflow import CAPACITY_RACE_REASON, ScheduleChangeWorkflow

__all__ = [
    "CAPACITY_RACE_REASON",
    "CalendarService",
    "ConflictDetector",
    "EnrollmentAllocator",
    "NO_SEAT_REASON",
    "PriorityScorer",
    "SCHEDULE_CONFLICT",
    "ScheduleChangeWorkflow",
    "ScheduleConflict",
    "SectionCapacityTracker",
]
