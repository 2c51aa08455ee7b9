"""
Unit Tests for ScheduleChangeWorkflow

Submission validation, approval with conflict and capacity checks, atomic
swaps, auto-approval and SLA escalation.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from registrar.domain.enrollment.events import (
    ScheduleChangeEscalated,
    ScheduleChangeOverdue,
    ScheduleChangeStatusChanged,
    ScheduleChangeSubmitted,
)
from registrar.domain.enrollment.services import (
    CAPACITY_RACE_REASON,
    SCHEDULE_CONFLICT,
)
from registrar.domain.enrollment.services.schedule_change_workflow import (
    ALREADY_ENROLLED_REASON,
    NOT_ENROLLED_REASON,
    SECTION_FULL_REASON,
)
from registrar.domain.enrollment.value_objects import (
    ChangeRequestStatus,
    ChangeRequestType,
    EnrollmentStatus,
    GradingPeriod,
    PeriodTimer,
)
from registrar.domain.shared.exceptions import (
    BusinessRuleError,
    DuplicateRequestError,
    InvalidStatusTransitionError,
    StudentNotEnrolledError,
    ValidationError,
)

MON_WED_9 = PeriodTimer.create(1, "09:00", "09:50", "MON,WED")
MON_930 = PeriodTimer.create(2, "09:30", "10:20", "MON")
TUE_THU_9 = PeriodTimer.create(3, "09:00", "10:15", "TUE,THU")


@pytest.fixture
def catalog(add_section):
    """Three courses; the chemistry section clashes with the algebra one."""
    math, chem, bio = uuid4(), uuid4(), uuid4()
    return SimpleNamespace(
        math=math,
        chem=chem,
        bio=bio,
        algebra=add_section(math, 2, [MON_WED_9], course_code="MATH-101"),
        algebra_late=add_section(math, 2, [TUE_THU_9], course_code="MATH-101"),
        chemistry=add_section(chem, 2, [MON_930], course_code="CHEM-110"),
        biology=add_section(bio, 1, [TUE_THU_9], course_code="BIO-120"),
    )


@pytest.fixture
def student(services, catalog, make_request):
    """A student holding a seat in the Monday/Wednesday algebra section."""
    student_id = uuid4()
    services.allocator.allocate(
        [make_request(catalog.math, [catalog.algebra], student_id=student_id)]
    )
    return student_id


def _add(services, student_id, course_id, section_id, **kwargs):
    return services.workflow.submit(
        student_id,
        ChangeRequestType.ADD,
        "Need this course for my major",
        requested_course_id=course_id,
        requested_section_id=section_id,
        **kwargs,
    )


def _swap(services, student_id, catalog, to_section, to_course=None, **kwargs):
    return services.workflow.submit(
        student_id,
        ChangeRequestType.SWAP,
        "Morning job conflicts with this section",
        current_course_id=catalog.math,
        current_section_id=catalog.algebra,
        requested_course_id=to_course or catalog.math,
        requested_section_id=to_section,
        **kwargs,
    )


class TestSubmission:
    def test_submit_sets_due_date_and_course_codes(
        self, services, catalog, student, clock
    ):
        request = _swap(services, student, catalog, catalog.algebra_late)

        assert request.status == ChangeRequestStatus.PENDING
        assert request.due_at == clock.now + timedelta(hours=120)
        assert request.request_summary == "SWAP: MATH-101 -> MATH-101"
        [event] = services.event_bus.get_event_history(ScheduleChangeSubmitted)
        assert event.request_id == request.id

    def test_urgent_priority_uses_short_sla(self, services, catalog, student, clock):
        request = _add(services, student, catalog.bio, catalog.biology, priority_level=2)

        assert request.due_at == clock.now + timedelta(hours=24)
        assert not request.can_auto_approve

    def test_unknown_section_rejected(self, services, catalog, student):
        with pytest.raises(ValidationError) as exc_info:
            _add(services, student, catalog.bio, uuid4())

        assert exc_info.value.error_code == "UNKNOWN_SECTION"

    def test_section_of_other_course_rejected(self, services, catalog, student):
        with pytest.raises(ValidationError) as exc_info:
            _add(services, student, catalog.bio, catalog.chemistry)

        assert exc_info.value.error_code == "SECTION_COURSE_MISMATCH"

    def test_grading_period_must_match_academic_year(self, services, catalog, student):
        period = services.calendar.register_grading_period(
            GradingPeriod("2024-2025", "Q1", date(2024, 8, 26), date(2024, 11, 1))
        )

        with pytest.raises(ValidationError) as exc_info:
            _add(
                services,
                student,
                catalog.bio,
                catalog.biology,
                academic_year="2025-2026",
                grading_period_id=period.id,
            )

        assert exc_info.value.error_code == "GRADING_PERIOD_YEAR_MISMATCH"

    def test_unknown_grading_period_rejected(self, services, catalog, student):
        with pytest.raises(ValidationError):
            _add(services, student, catalog.bio, catalog.biology, grading_period_id=uuid4())

    def test_duplicate_pending_request_rejected(self, services, catalog, student):
        first = _add(services, student, catalog.bio, catalog.biology)

        with pytest.raises(DuplicateRequestError) as exc_info:
            _add(services, student, catalog.bio, catalog.biology)

        assert exc_info.value.details["request_id"] == str(first.id)

    def test_missing_reason_rejected(self, services, catalog, student):
        with pytest.raises(ValidationError):
            services.workflow.submit(
                student,
                ChangeRequestType.DROP,
                "",
                current_course_id=catalog.math,
                current_section_id=catalog.algebra,
            )


class TestApproval:
    def test_conflicting_add_is_denied(self, services, catalog, student):
        request = _add(services, student, catalog.chem, catalog.chemistry)

        decided = services.workflow.approve(request.id, uuid4())

        assert decided.status == ChangeRequestStatus.DENIED
        assert decided.denial_reason == SCHEDULE_CONFLICT
        assert "09:30-10:20" in decided.review_notes
        assert services.tracker.holder_for_student(catalog.chemistry, student) is None

    def test_add_without_conflict_takes_seat(self, services, catalog, student):
        reviewer = uuid4()
        request = _add(services, student, catalog.bio, catalog.biology)

        decided = services.workflow.approve(request.id, reviewer, "OK")

        assert decided.status == ChangeRequestStatus.APPROVED
        assert decided.reviewed_by_id == reviewer
        assert services.tracker.holder_for_student(catalog.biology, student) == request.id

    def test_swap_ignores_conflict_with_dropped_section(
        self, services, catalog, student
    ):
        request = _swap(services, student, catalog, catalog.chemistry, catalog.chem)

        decided = services.workflow.approve(request.id, uuid4())

        assert decided.status == ChangeRequestStatus.APPROVED
        assert services.tracker.sections_for_student(student) == [catalog.chemistry]

    def test_swap_cancels_old_enrollment_and_promotes_waitlist(
        self, services, catalog, student, make_request
    ):
        filler = make_request(catalog.math, [catalog.algebra])
        waiting = make_request(catalog.math, [catalog.algebra])
        services.allocator.allocate([filler, waiting])
        [old_enrollment] = services.allocator.requests_for_student(student)
        request = _swap(services, student, catalog, catalog.algebra_late)

        services.workflow.approve(request.id, uuid4())

        assert services.allocator.get(old_enrollment.id).status == EnrollmentStatus.CANCELLED
        assert services.allocator.get(waiting.id).status == EnrollmentStatus.APPROVED
        assert services.tracker.holder_for_student(catalog.algebra_late, student) == request.id

    def test_full_section_is_denied(self, services, catalog, student):
        services.tracker.reserve_seat(catalog.biology, uuid4(), uuid4())
        request = _add(services, student, catalog.bio, catalog.biology)

        decided = services.workflow.approve(request.id, uuid4())

        assert decided.denial_reason == SECTION_FULL_REASON

    def test_drop_of_section_not_held_is_denied(self, services, catalog, student):
        request = services.workflow.submit(
            student,
            ChangeRequestType.DROP,
            "Too many credits",
            current_course_id=catalog.bio,
            current_section_id=catalog.biology,
        )

        decided = services.workflow.approve(request.id, uuid4())

        assert decided.denial_reason == NOT_ENROLLED_REASON

    def test_add_of_section_already_held_is_denied(self, services, catalog, student):
        request = _add(services, student, catalog.math, catalog.algebra)

        decided = services.workflow.approve(request.id, uuid4())

        assert decided.denial_reason == ALREADY_ENROLLED_REASON

    def test_drop_releases_seat(self, services, catalog, student):
        request = services.workflow.submit(
            student,
            ChangeRequestType.DROP,
            "Too many credits",
            current_course_id=catalog.math,
            current_section_id=catalog.algebra,
        )

        services.workflow.approve(request.id, uuid4())

        assert services.tracker.sections_for_student(student) == []

    def test_seat_taken_between_check_and_commit_denies(
        self, services, catalog, student, monkeypatch
    ):
        tracker = services.tracker
        check_free_seat = tracker.has_free_seat

        def seat_taken_after_check(section_id):
            free = check_free_seat(section_id)
            while check_free_seat(section_id):
                tracker.reserve_seat(section_id, uuid4(), uuid4())
            return free

        monkeypatch.setattr(tracker, "has_free_seat", seat_taken_after_check)
        request = _swap(services, student, catalog, catalog.algebra_late)

        decided = services.workflow.approve(request.id, uuid4())

        assert decided.status == ChangeRequestStatus.DENIED
        assert decided.denial_reason == CAPACITY_RACE_REASON
        # The student keeps the original seat
        assert tracker.sections_for_student(student) == [catalog.algebra]

    def test_failed_drop_rolls_back_added_seat(
        self, services, catalog, student, monkeypatch
    ):
        def fail_drop(student_id, section_id, reason):
            raise StudentNotEnrolledError(section_id, student_id)

        monkeypatch.setattr(services.allocator, "drop_section", fail_drop)
        request = _swap(services, student, catalog, catalog.algebra_late)

        with pytest.raises(StudentNotEnrolledError):
            services.workflow.approve(request.id, uuid4())

        assert services.workflow.get(request.id).status == ChangeRequestStatus.PENDING
        assert services.tracker.snapshot(catalog.algebra_late).enrolled_count == 0
        assert services.tracker.sections_for_student(student) == [catalog.algebra]

    def test_concurrent_adds_for_one_student_cannot_double_book(
        self, services, catalog, add_section, monkeypatch
    ):
        student_id = uuid4()
        physics = uuid4()
        mechanics = add_section(physics, 2, [MON_WED_9], course_code="PHYS-150")
        requests = [
            _add(services, student_id, catalog.chem, catalog.chemistry),
            _add(services, student_id, physics, mechanics),
        ]
        detector = services.conflict_detector
        find_conflicts = detector.find_section_conflicts

        def slow_find_conflicts(*args, **kwargs):
            time.sleep(0.05)
            return find_conflicts(*args, **kwargs)

        monkeypatch.setattr(detector, "find_section_conflicts", slow_find_conflicts)

        with ThreadPoolExecutor(max_workers=2) as pool:
            decided = list(
                pool.map(lambda r: services.workflow.approve(r.id, uuid4()), requests)
            )

        assert {r.status for r in decided} == {
            ChangeRequestStatus.APPROVED,
            ChangeRequestStatus.DENIED,
        }
        assert [r.denial_reason for r in decided if r.denial_reason] == [SCHEDULE_CONFLICT]
        assert len(services.tracker.sections_for_student(student_id)) == 1

    def test_decided_request_cannot_be_approved_again(self, services, catalog, student):
        request = _add(services, student, catalog.bio, catalog.biology)
        services.workflow.approve(request.id, uuid4())

        with pytest.raises(InvalidStatusTransitionError):
            services.workflow.approve(request.id, uuid4())

    def test_status_changes_are_published(self, services, catalog, student):
        request = _add(services, student, catalog.bio, catalog.biology)
        services.workflow.approve(request.id, uuid4())
        services.workflow.complete(request.id)

        events = services.event_bus.get_event_history(ScheduleChangeStatusChanged)
        assert [(e.old_status, e.new_status) for e in events] == [
            (ChangeRequestStatus.PENDING, ChangeRequestStatus.APPROVED),
            (ChangeRequestStatus.APPROVED, ChangeRequestStatus.COMPLETED),
        ]


class TestDenyCompleteCancel:
    def test_deny_requires_reason(self, services, catalog, student):
        request = _add(services, student, catalog.bio, catalog.biology)

        with pytest.raises(ValidationError):
            services.workflow.deny(request.id, "  ")

        denied = services.workflow.deny(request.id, "Prerequisite missing", uuid4())
        assert denied.denial_reason == "Prerequisite missing"

    def test_only_approved_requests_complete(self, services, catalog, student):
        request = _add(services, student, catalog.bio, catalog.biology)

        with pytest.raises(InvalidStatusTransitionError):
            services.workflow.complete(request.id)

    def test_only_owner_can_cancel(self, services, catalog, student):
        request = _add(services, student, catalog.bio, catalog.biology)

        with pytest.raises(BusinessRuleError):
            services.workflow.cancel(request.id, uuid4())

        cancelled = services.workflow.cancel(request.id, student)
        assert cancelled.status == ChangeRequestStatus.CANCELLED

    def test_cancelled_request_cannot_be_cancelled_again(
        self, services, catalog, student
    ):
        request = _add(services, student, catalog.bio, catalog.biology)
        services.workflow.cancel(request.id, student)

        with pytest.raises(InvalidStatusTransitionError):
            services.workflow.cancel(request.id, student)


class TestAutoApproval:
    def test_process_pending_approves_eligible_requests(
        self, services, catalog, student, test_settings
    ):
        eligible = _add(services, student, catalog.bio, catalog.biology)
        urgent = _add(
            services, student, catalog.chem, catalog.chemistry, priority_level=2
        )

        decided = services.workflow.process_pending()

        assert [r.id for r in decided] == [eligible.id]
        assert decided[0].reviewed_by_id == test_settings.AUTO_APPROVER_ID
        assert services.workflow.get(urgent.id).is_pending

    def test_conflicting_request_is_denied_with_reason(
        self, services, catalog, student, test_settings
    ):
        request = _add(services, student, catalog.chem, catalog.chemistry)

        result = services.workflow.auto_approve(request.id)

        assert result.status == ChangeRequestStatus.DENIED
        assert result.denial_reason == SCHEDULE_CONFLICT
        assert result.reviewed_by_id == test_settings.AUTO_APPROVER_ID
        [event] = services.event_bus.get_event_history(ScheduleChangeStatusChanged)
        assert event.new_status == ChangeRequestStatus.DENIED
        assert event.reason == SCHEDULE_CONFLICT

    def test_batch_pass_denies_request_for_full_section(self, services, catalog, student):
        services.tracker.reserve_seat(catalog.biology, uuid4(), uuid4())
        request = _add(services, student, catalog.bio, catalog.biology)

        [decided] = services.workflow.process_pending()

        assert decided.id == request.id
        assert decided.denial_reason == SECTION_FULL_REASON

    def test_disabled_auto_approval(self, services, catalog, student, test_settings):
        test_settings.AUTO_APPROVE_ENABLED = False
        request = _add(services, student, catalog.bio, catalog.biology)

        assert not request.can_auto_approve
        assert services.workflow.process_pending() == []


class TestSla:
    def test_overdue_request_escalated_once(self, services, catalog, student, clock):
        request = _add(services, student, catalog.bio, catalog.biology, priority_level=2)
        later = clock.advance(hours=25)

        flagged = services.workflow.check_sla(later)
        again = services.workflow.check_sla(later + timedelta(hours=1))

        assert [r.id for r in flagged] == [request.id]
        assert again == []
        current = services.workflow.get(request.id)
        assert current.status == ChangeRequestStatus.PENDING
        assert current.is_overdue
        assert current.escalated_to == "registrar-office"
        assert len(services.event_bus.get_event_history(ScheduleChangeOverdue)) == 1
        assert len(services.event_bus.get_event_history(ScheduleChangeEscalated)) == 1

    def test_request_within_sla_is_untouched(self, services, catalog, student, clock):
        _add(services, student, catalog.bio, catalog.biology)

        assert services.workflow.check_sla(clock.advance(hours=25)) == []

    def test_escalation_can_be_disabled(
        self, services, catalog, student, clock, test_settings
    ):
        test_settings.ESCALATION_ENABLED = False
        request = _add(services, student, catalog.bio, catalog.biology, priority_level=2)

        services.workflow.check_sla(clock.advance(hours=30))

        current = services.workflow.get(request.id)
        assert current.is_overdue
        assert current.escalated_to is None

    def test_decided_requests_never_flagged(self, services, catalog, student, clock):
        request = _add(services, student, catalog.bio, catalog.biology, priority_level=2)
        services.workflow.deny(request.id, "Course closed")

        assert services.workflow.check_sla(clock.advance(hours=48)) == []


class TestQueries:
    def test_pending_and_overdue_views(self, services, catalog, student, clock):
        urgent = _add(services, student, catalog.bio, catalog.biology, priority_level=2)
        clock.advance(hours=1)
        normal = _add(services, student, catalog.chem, catalog.chemistry)

        assert [r.id for r in services.workflow.pending_requests()] == [
            urgent.id,
            normal.id,
        ]
        assert [r.id for r in services.workflow.requests_for_student(student)] == [
            normal.id,
            urgent.id,
        ]
        clock.advance(hours=30)
        assert [r.id for r in services.workflow.overdue_requests()] == [urgent.id]

        services.workflow.deny(normal.id, "Course closed")
        assert [r.id for r in services.workflow.pending_for_student(student)] == [
            urgent.id
        ]
