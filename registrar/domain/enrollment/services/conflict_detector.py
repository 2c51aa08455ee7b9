"""
Conflict Detector

Read-only time-overlap checks between a student's schedule and a candidate
section.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from ...shared.base import DomainService
from ..value_objects.period_timer import PeriodTimer, SectionSchedule
from .calendar_service import CalendarService

SCHEDULE_CONFLICT = "SCHEDULE_CONFLICT"


@dataclass(frozen=True)
class ScheduleConflict:
    """A meeting of the candidate colliding with a section already on the schedule."""

    section_id: UUID
    candidate_section_id: UUID
    existing: PeriodTimer
    candidate: PeriodTimer

    def describe(self) -> str:
        return f"{self.candidate} overlaps {self.existing}"


class ConflictDetector(DomainService):
    """
    Detects overlapping period timers.

    Stateless apart from the calendar it reads, so it may be shared across
    threads without synchronization.
    """

    def __init__(self, calendar_service: CalendarService) -> None:
        self._calendar = calendar_service

    def has_conflict(
        self,
        student_schedule: Iterable[SectionSchedule],
        candidate: SectionSchedule,
        dropping_section_id: UUID | None = None,
    ) -> bool:
        """
        Check if a candidate section collides with the student's schedule.

        Args:
            student_schedule: Sections the student currently attends
            candidate: Section being added
            dropping_section_id: Section a SWAP gives up; never reported

        Returns:
            True if any pair of meetings shares a day and overlaps in time
        """
        conflicts = self._conflicts(student_schedule, candidate, dropping_section_id)
        return next(conflicts, None) is not None

    def find_conflicts(
        self,
        student_schedule: Iterable[SectionSchedule],
        candidate: SectionSchedule,
        dropping_section_id: UUID | None = None,
    ) -> list[ScheduleConflict]:
        return list(self._conflicts(student_schedule, candidate, dropping_section_id))

    def has_section_conflict(
        self,
        student_section_ids: Iterable[UUID],
        candidate_section_id: UUID,
        dropping_section_id: UUID | None = None,
    ) -> bool:
        """
        ``has_conflict`` over section ids resolved through the calendar.

        Sections without a meeting pattern never conflict.
        """
        return bool(
            self.find_section_conflicts(
                student_section_ids, candidate_section_id, dropping_section_id
            )
        )

    def find_section_conflicts(
        self,
        student_section_ids: Iterable[UUID],
        candidate_section_id: UUID,
        dropping_section_id: UUID | None = None,
    ) -> list[ScheduleConflict]:
        if not self._calendar.has_section(candidate_section_id):
            return []
        return self.find_conflicts(
            self._calendar.schedules_for(student_section_ids),
            self._calendar.section_schedule(candidate_section_id),
            dropping_section_id,
        )

    @staticmethod
    def _conflicts(
        student_schedule: Iterable[SectionSchedule],
        candidate: SectionSchedule,
        dropping_section_id: UUID | None,
    ):
        for schedule in student_schedule:
            if schedule.section_id in (dropping_section_id, candidate.section_id):
                continue
            for existing, incoming in schedule.conflicting_meetings(candidate):
                yield ScheduleConflict(
                    section_id=schedule.section_id,
                    candidate_section_id=candidate.section_id,
                    existing=existing,
                    candidate=incoming,
                )
