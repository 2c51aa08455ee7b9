"""
Enrollment Request Repository Interface

Defines the contract for enrollment request data access operations.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from ..entities.enrollment_request import EnrollmentRequest
from ..value_objects.enums import EnrollmentStatus


class EnrollmentRequestRepository(ABC):
    """
    Abstract repository interface for EnrollmentRequest snapshots.

    ``save`` replaces the stored snapshot with the same id, so the latest
    transition always wins.
    """

    @abstractmethod
    def save(self, request: EnrollmentRequest) -> EnrollmentRequest:
        """
        Save an enrollment request snapshot.

        Args:
            request: Snapshot to store

        Returns:
            The stored snapshot
        """
        pass

    @abstractmethod
    def get_by_id(self, request_id: UUID) -> EnrollmentRequest | None:
        """
        Retrieve the latest snapshot of a request.

        Args:
            request_id: Unique request identifier

        Returns:
            EnrollmentRequest or None if not found
        """
        pass

    @abstractmethod
    def get_all(self) -> list[EnrollmentRequest]:
        pass

    @abstractmethod
    def find_by_student(self, student_id: UUID) -> list[EnrollmentRequest]:
        pass

    @abstractmethod
    def find_by_status(self, status: EnrollmentStatus) -> list[EnrollmentRequest]:
        pass

    @abstractmethod
    def find_by_section(
        self, section_id: UUID, status: EnrollmentStatus | None = None
    ) -> list[EnrollmentRequest]:
        """
        Retrieve requests assigned to a section.

        Args:
            section_id: Section holding the seat or the waitlist entry
            status: Optional status filter

        Returns:
            Matching requests, waitlisted ones ordered by position
        """
        pass
