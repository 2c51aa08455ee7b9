"""
In-memory repositories.

Dictionary-backed implementations of the request repositories, guarded by a
lock so allocation worker threads may save concurrently.
"""

import threading
from datetime import datetime
from uuid import UUID

from ...domain.enrollment.entities import EnrollmentRequest, ScheduleChangeRequest
from ...domain.enrollment.repositories import (
    EnrollmentRequestRepository,
    ScheduleChangeRequestRepository,
)
from ...domain.enrollment.value_objects import EnrollmentStatus


class InMemoryEnrollmentRequestRepository(EnrollmentRequestRepository):
    def __init__(self) -> None:
        self._requests: dict[UUID, EnrollmentRequest] = {}
        self._lock = threading.Lock()

    def save(self, request: EnrollmentRequest) -> EnrollmentRequest:
        with self._lock:
            self._requests[request.id] = request
        return request

    def get_by_id(self, request_id: UUID) -> EnrollmentRequest | None:
        with self._lock:
            return self._requests.get(request_id)

    def get_all(self) -> list[EnrollmentRequest]:
        with self._lock:
            return list(self._requests.values())

    def find_by_student(self, student_id: UUID) -> list[EnrollmentRequest]:
        return [r for r in self.get_all() if r.student_id == student_id]

    def find_by_status(self, status: EnrollmentStatus) -> list[EnrollmentRequest]:
        return [r for r in self.get_all() if r.status == status]

    def find_by_section(
        self, section_id: UUID, status: EnrollmentStatus | None = None
    ) -> list[EnrollmentRequest]:
        matches = [
            r
            for r in self.get_all()
            if r.section_id == section_id and (status is None or r.status == status)
        ]
        return sorted(matches, key=lambda r: (r.waitlist_position or 0, r.created_at))


class InMemoryScheduleChangeRequestRepository(ScheduleChangeRequestRepository):
    def __init__(self) -> None:
        self._requests: dict[UUID, ScheduleChangeRequest] = {}
        self._lock = threading.Lock()

    def save(self, request: ScheduleChangeRequest) -> ScheduleChangeRequest:
        with self._lock:
            self._requests[request.id] = request
        return request

    def get_by_id(self, request_id: UUID) -> ScheduleChangeRequest | None:
        with self._lock:
            return self._requests.get(request_id)

    def get_all(self) -> list[ScheduleChangeRequest]:
        with self._lock:
            return list(self._requests.values())

    def find_by_student(self, student_id: UUID) -> list[ScheduleChangeRequest]:
        return sorted(
            (r for r in self.get_all() if r.student_id == student_id),
            key=lambda r: r.created_at,
            reverse=True,
        )

    def find_pending(self) -> list[ScheduleChangeRequest]:
        return sorted(
            (r for r in self.get_all() if r.is_pending), key=lambda r: r.created_at
        )

    def find_overdue(self, now: datetime) -> list[ScheduleChangeRequest]:
        return [r for r in self.find_pending() if r.is_overdue or now > r.due_at]
