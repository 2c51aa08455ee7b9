from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from registrar.domain.enrollment.entities import EnrollmentRequest
from registrar.domain.enrollment.services import PriorityScorer

T = datetime(2024, 8, 1, 9, 0, tzinfo=UTC)


def _request(sections, priority_score=0.0, created_at=T, request_id=None):
    return EnrollmentRequest.submit(
        student_id=uuid4(),
        course_id=uuid4(),
        section_preferences=sections,
        priority_score=priority_score,
        created_at=created_at,
        request_id=request_id,
    )


class TestPriorityScorer:
    def test_score_combines_priority_and_rank(self):
        first, second = uuid4(), uuid4()
        request = _request([first, second], priority_score=30)
        scorer = PriorityScorer(rank_weight=100, priority_weight=1)

        assert scorer.score(request) == 30 - 100
        assert scorer.score(request, first) == 30 - 100
        assert scorer.score(request, second) == 30 - 200

    def test_better_rank_beats_small_priority_gap(self):
        section = uuid4()
        top_choice = _request([section, uuid4()], priority_score=10)
        second_choice = _request([uuid4(), section], priority_score=50)

        ordered = PriorityScorer().order([second_choice, top_choice], section)

        assert ordered == [top_choice, second_choice]

    def test_higher_priority_first_at_equal_rank(self):
        section = uuid4()
        low = _request([section], priority_score=5)
        high = _request([section], priority_score=20)
        mid = _request([section], priority_score=10)

        assert PriorityScorer().order([low, high, mid], section) == [high, mid, low]

    def test_ties_go_to_earlier_submission_then_id(self):
        section = uuid4()
        late = _request([section], created_at=T + timedelta(minutes=5))
        early_b = _request([section], request_id=UUID(int=2))
        early_a = _request([section], request_id=UUID(int=1))

        ordered = PriorityScorer().order([late, early_b, early_a], section)

        assert ordered == [early_a, early_b, late]

    def test_order_is_independent_of_input_order(self):
        section = uuid4()
        requests = [_request([section], priority_score=s % 3) for s in range(9)]
        scorer = PriorityScorer()

        assert scorer.order(requests, section) == scorer.order(
            list(reversed(requests)), section
        )

    def test_negative_weights_rejected(self):
        with pytest.raises(ValueError):
            PriorityScorer(rank_weight=-1)
