"""Admission priority for competing enrollment requests."""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from ...shared.base import DomainService
from ..entities.enrollment_request import EnrollmentRequest


class PriorityScorer(DomainService):
    """
    Pure scoring function; holds only its weights.

    ``score = priority_weight * priority_score - rank_weight * preference_rank``

    A better preference rank (lower number) and a higher priority score both
    raise the score. Ties go to the earliest submission, then to the request
    id, so ordering is total and reproducible.
    """

    def __init__(self, rank_weight: float = 100.0, priority_weight: float = 1.0) -> None:
        if rank_weight < 0 or priority_weight < 0:
            raise ValueError("Scoring weights cannot be negative")
        self.rank_weight = rank_weight
        self.priority_weight = priority_weight

    def score(self, request: EnrollmentRequest, section_id: UUID | None = None) -> float:
        """
        Score a request for one of its candidate sections.

        Args:
            request: Request being ranked
            section_id: Candidate section; defaults to the most preferred one
        """
        rank = request.rank_of(section_id) if section_id is not None else 1
        return self.priority_weight * request.priority_score - self.rank_weight * rank

    def sort_key(
        self, request: EnrollmentRequest, section_id: UUID | None = None
    ) -> tuple[float, datetime, str]:
        return (-self.score(request, section_id), request.created_at, str(request.id))

    def order(
        self, requests: Iterable[EnrollmentRequest], section_id: UUID | None = None
    ) -> list[EnrollmentRequest]:
        """Requests in admission order, highest score first."""
        return sorted(requests, key=lambda r: self.sort_key(r, section_id))
