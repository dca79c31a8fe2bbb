import itertools
from datetime import timedelta

import pytest

from conftest import new_cycle
from workscholarship import events
from workscholarship.enums import CycleErrorCode, CycleStatus


def in_status(status: CycleStatus, **overrides):
    cycle = new_cycle(**overrides)
    cycle.status = status
    if status == CycleStatus.CLOSED:
        cycle.closed_at = cycle.end_date + timedelta(days=1)
        cycle.closed_by = "admin@uni.test"
    return cycle


OPERATIONS = {
    "open_applications": lambda c: c.open_applications(1),
    "close_applications": lambda c: c.close_applications(),
    "reopen_applications": lambda c: c.reopen_applications(),
    "activate": lambda c: c.activate(),
    "extend_dates": lambda c: c.extend_dates(new_end_date=c.end_date + timedelta(days=7)),
    "close": lambda c: c.close(0, 0, "admin@uni.test", now=c.end_date + timedelta(days=1)),
}

ALLOWED = {
    ("open_applications", CycleStatus.CONFIGURATION): (CycleStatus.APPLICATIONS_OPEN, events.ApplicationsOpened),
    ("close_applications", CycleStatus.APPLICATIONS_OPEN): (CycleStatus.APPLICATIONS_CLOSED, events.ApplicationsClosed),
    ("reopen_applications", CycleStatus.APPLICATIONS_CLOSED): (CycleStatus.APPLICATIONS_OPEN, events.ApplicationsReopened),
    ("activate", CycleStatus.APPLICATIONS_CLOSED): (CycleStatus.ACTIVE, events.CycleActivated),
    ("extend_dates", CycleStatus.CONFIGURATION): (CycleStatus.CONFIGURATION, events.CycleDatesExtended),
    ("extend_dates", CycleStatus.APPLICATIONS_OPEN): (CycleStatus.APPLICATIONS_OPEN, events.CycleDatesExtended),
    ("extend_dates", CycleStatus.ACTIVE): (CycleStatus.ACTIVE, events.CycleDatesExtended),
    ("close", CycleStatus.ACTIVE): (CycleStatus.CLOSED, events.CycleClosed),
}

DISALLOWED = [
    (op, status) for op, status in itertools.product(OPERATIONS, CycleStatus)
    if (op, status) not in ALLOWED
]


@pytest.mark.parametrize("op, status", list(ALLOWED))
def test_allowed_transitions(op, status):
    cycle = in_status(status)
    result = OPERATIONS[op](cycle)
    expected_status, event_cls = ALLOWED[(op, status)]
    assert result.is_success
    assert cycle.status == expected_status
    assert len(result.events) == 1
    assert isinstance(result.events[0], event_cls)
    assert result.events[0].cycle_id == cycle.id
    assert cycle.updated_at is not None
    assert cycle.invariant_violations() == []


@pytest.mark.parametrize("op, status", DISALLOWED)
def test_disallowed_transitions_leave_cycle_untouched(op, status):
    cycle = in_status(status)
    before = (cycle.status, cycle.end_date, cycle.updated_at, cycle.closed_at)
    result = OPERATIONS[op](cycle)
    assert result.is_failure
    assert result.error_code is CycleErrorCode.INVALID_TRANSITION
    assert result.error_code_string == "INVALID_TRANSITION"
    assert result.events == ()
    assert (cycle.status, cycle.end_date, cycle.updated_at, cycle.closed_at) == before


def test_new_cycle_starts_in_configuration():
    cycle = new_cycle()
    assert cycle.status == CycleStatus.CONFIGURATION
    assert cycle.total_scholarships_assigned == 0
    assert cycle.is_modifiable and not cycle.accepts_applications
    assert cycle.invariant_violations() == []


@pytest.mark.parametrize("overrides", [
    {"name": "  "},
    {"department": ""},
    {"total_scholarships_available": 0},
    {"created_by": ""},
])
def test_create_rejects_invalid_arguments(overrides):
    with pytest.raises(ValueError):
        new_cycle(**overrides)


def test_create_rejects_incoherent_dates():
    cycle = new_cycle()
    with pytest.raises(ValueError):
        new_cycle(interview_date=cycle.selection_date + timedelta(days=1))


def test_open_applications_without_locations():
    cycle = new_cycle()
    result = cycle.open_applications(0)
    assert result.error_code is CycleErrorCode.NO_LOCATIONS
    assert cycle.status == CycleStatus.CONFIGURATION


def test_open_applications_without_scholarships():
    cycle = new_cycle()
    cycle.total_scholarships_available = 0
    assert cycle.open_applications(2).error_code is CycleErrorCode.NO_SCHOLARSHIPS


def test_open_applications_with_renewals_pending():
    cycle = new_cycle()
    cycle.renewal_process_completed = False
    result = cycle.open_applications(2)
    assert result.error_code is CycleErrorCode.RENEWALS_PENDING
    assert cycle.status == CycleStatus.CONFIGURATION


def test_preconditions_are_checked_in_order():
    cycle = new_cycle()
    cycle.renewal_process_completed = False
    cycle.total_scholarships_available = 0
    assert cycle.open_applications(0).error_code is CycleErrorCode.NO_LOCATIONS


def test_negative_counts_are_programming_errors():
    with pytest.raises(ValueError):
        new_cycle().open_applications(-1)
    active = in_status(CycleStatus.ACTIVE)
    with pytest.raises(ValueError):
        active.close(-1, 0, "admin@uni.test")
    with pytest.raises(ValueError):
        active.close(0, 0, "  ")


def test_close_applications_twice():
    cycle = in_status(CycleStatus.APPLICATIONS_OPEN)
    assert cycle.close_applications().is_success
    second = cycle.close_applications()
    assert second.error_code_string == "INVALID_TRANSITION"
    assert cycle.status == CycleStatus.APPLICATIONS_CLOSED


def test_open_close_reopen_round_trip():
    cycle = new_cycle()
    assert cycle.open_applications(1).is_success
    assert cycle.close_applications().is_success
    assert cycle.reopen_applications().is_success
    assert cycle.status == CycleStatus.APPLICATIONS_OPEN
    assert cycle.accepts_applications


def test_extend_end_date_not_later_is_rejected():
    cycle = in_status(CycleStatus.ACTIVE)
    current = cycle.end_date
    for candidate in (current, current - timedelta(days=1)):
        result = cycle.extend_dates(new_end_date=candidate)
        assert result.error_code is CycleErrorCode.INVALID_DATE
        assert cycle.end_date == current


def test_extend_dates_must_stay_coherent():
    cycle = in_status(CycleStatus.APPLICATIONS_OPEN)
    before = (cycle.application_deadline, cycle.interview_date)
    result = cycle.extend_dates(new_application_deadline=cycle.interview_date + timedelta(days=1))
    assert result.error_code is CycleErrorCode.INVALID_DATE
    assert (cycle.application_deadline, cycle.interview_date) == before


def test_extend_dates_rejection_is_all_or_nothing():
    cycle = in_status(CycleStatus.CONFIGURATION)
    deadline = cycle.application_deadline
    result = cycle.extend_dates(new_application_deadline=deadline + timedelta(days=1),
                                new_end_date=cycle.end_date - timedelta(days=1))
    assert result.is_failure
    assert cycle.application_deadline == deadline


def test_extend_several_dates_at_once():
    cycle = in_status(CycleStatus.APPLICATIONS_OPEN)
    new_deadline = cycle.application_deadline + timedelta(days=2)
    new_interview = cycle.interview_date + timedelta(days=2)
    result = cycle.extend_dates(new_application_deadline=new_deadline, new_interview_date=new_interview)
    assert result.is_success
    assert cycle.application_deadline == new_deadline
    assert cycle.interview_date == new_interview


def test_close_before_end_date():
    cycle = in_status(CycleStatus.ACTIVE)
    result = cycle.close(0, 0, "admin@uni.test", now=cycle.end_date)
    assert result.error_code is CycleErrorCode.CYCLE_NOT_ENDED
    assert cycle.status == CycleStatus.ACTIVE


def test_close_defaults_to_current_time():
    cycle = in_status(CycleStatus.ACTIVE)
    assert cycle.close(0, 0, "admin@uni.test").error_code is CycleErrorCode.CYCLE_NOT_ENDED


def test_close_with_pending_shifts():
    cycle = in_status(CycleStatus.ACTIVE)
    result = cycle.close(1, 0, "x", now=cycle.end_date + timedelta(days=1))
    assert result.error_code_string == "PENDING_SHIFTS"
    assert cycle.status == CycleStatus.ACTIVE
    assert cycle.closed_at is None


def test_close_with_missing_logbooks():
    cycle = in_status(CycleStatus.ACTIVE)
    result = cycle.close(0, 2, "x", now=cycle.end_date + timedelta(days=1))
    assert result.error_code is CycleErrorCode.MISSING_LOGBOOKS
    assert "2" in result.error_message


def test_close_records_who_and_when():
    cycle = in_status(CycleStatus.ACTIVE)
    now = cycle.end_date + timedelta(hours=1)
    result = cycle.close(0, 0, "dean@uni.test", now=now)
    assert result.is_success
    assert cycle.is_closed and not cycle.is_modifiable
    assert cycle.closed_at == now
    assert cycle.closed_by == "dean@uni.test"
    assert result.events[0].occurred_on == now


def test_closed_cycle_rejects_configuration_changes():
    cycle = in_status(CycleStatus.CLOSED)
    for result in (cycle.mark_renewal_process_completed(), cycle.recalculate_scholarships_available(3),
                   cycle.assign_scholarships(1), cycle.set_cloned_from(cycle.id)):
        assert result.error_code is CycleErrorCode.CYCLE_CLOSED
    assert cycle.total_scholarships_available == 10


def test_assigned_scholarships_never_exceed_available():
    cycle = new_cycle(total_scholarships_available=2)
    assert cycle.assign_scholarships(2).is_success
    result = cycle.assign_scholarships(1)
    assert result.error_code is CycleErrorCode.NO_SCHOLARSHIPS
    assert cycle.total_scholarships_assigned == 2
    assert cycle.recalculate_scholarships_available(1).error_code is CycleErrorCode.NO_SCHOLARSHIPS
    assert cycle.recalculate_scholarships_available(5).is_success
    assert cycle.total_scholarships_available == 5


def test_invariant_violations_are_reported():
    cycle = new_cycle()
    cycle.total_scholarships_assigned = 11
    cycle.status = CycleStatus.CLOSED
    problems = cycle.invariant_violations()
    assert len(problems) == 2
