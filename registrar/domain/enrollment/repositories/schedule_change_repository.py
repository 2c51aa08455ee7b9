"""
Schedule Change Request Repository Interface

Defines the contract for schedule change request data access operations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from ..entities.schedule_change_request import ScheduleChangeRequest


class ScheduleChangeRequestRepository(ABC):
    """
    Abstract repository interface for ScheduleChangeRequest snapshots.
    """

    @abstractmethod
    def save(self, request: ScheduleChangeRequest) -> ScheduleChangeRequest:
        """
        Save a schedule change request snapshot, replacing any earlier one.

        Args:
            request: Snapshot to store

        Returns:
            The stored snapshot
        """
        pass

    @abstractmethod
    def get_by_id(self, request_id: UUID) -> ScheduleChangeRequest | None:
        pass

    @abstractmethod
    def get_all(self) -> list[ScheduleChangeRequest]:
        pass

    @abstractmethod
    def find_by_student(self, student_id: UUID) -> list[ScheduleChangeRequest]:
        """
        Retrieve a student's requests.

        Returns:
            Requests ordered newest submission first
        """
        pass

    @abstractmethod
    def find_pending(self) -> list[ScheduleChangeRequest]:
        """
        Retrieve every PENDING request.

        Returns:
            Requests ordered oldest submission first
        """
        pass

    @abstractmethod
    def find_overdue(self, now: datetime) -> list[ScheduleChangeRequest]:
        """
        Retrieve PENDING requests past their due date or flagged overdue.

        Args:
            now: Reference time for the due-date comparison
        """
        pass
