import uuid
from enum import Enum

import pytest

from workscholarship import events
from workscholarship.enums import CycleAppError, CycleErrorCode, PendingActionCode
from workscholarship.results import DomainResult, Result, ValidationIssue, code_string, code_table, to_upper_snake


@pytest.mark.parametrize("code, expected", [
    (CycleErrorCode.INVALID_TRANSITION, "INVALID_TRANSITION"),
    (CycleErrorCode.NO_LOCATIONS, "NO_LOCATIONS"),
    (CycleErrorCode.NO_SCHOLARSHIPS, "NO_SCHOLARSHIPS"),
    (CycleErrorCode.RENEWALS_PENDING, "RENEWALS_PENDING"),
    (CycleErrorCode.CYCLE_NOT_ENDED, "CYCLE_NOT_ENDED"),
    (CycleErrorCode.PENDING_SHIFTS, "PENDING_SHIFTS"),
    (CycleErrorCode.MISSING_LOGBOOKS, "MISSING_LOGBOOKS"),
    (CycleErrorCode.CYCLE_CLOSED, "CYCLE_CLOSED"),
    (CycleErrorCode.INVALID_DATE, "INVALID_DATE"),
])
def test_cycle_error_codes_render_upper_snake(code, expected):
    result = DomainResult.failure(code, "nope")
    assert result.error_code_string == expected
    assert code_string(code) == expected


def test_pending_action_codes_use_the_same_rendering():
    assert code_string(PendingActionCode.CYCLE_NEEDS_SUPERVISORS) == "CYCLE_NEEDS_SUPERVISORS"
    assert code_string(PendingActionCode.NO_ACTIVE_CYCLE) == "NO_ACTIVE_CYCLE"
    assert code_string(CycleAppError.DUPLICATE_CYCLE) == "DUPLICATE_CYCLE"


def test_word_boundaries_include_digits():
    assert to_upper_snake("InvalidTransition") == "INVALID_TRANSITION"
    assert to_upper_snake("Http2Error") == "HTTP2_ERROR"
    assert to_upper_snake("Already") == "ALREADY"


def test_code_table_is_computed_once_per_enum():
    assert code_table(CycleErrorCode) is code_table(CycleErrorCode)

    class Numbered(Enum):
        LateFee = 1

    assert code_string(Numbered.LateFee) == "LATE_FEE"


def test_success_has_no_error():
    result = DomainResult.success()
    assert result.is_success and not result.is_failure
    assert result.error_code is None
    assert result.error_message is None
    assert result.error_code_string is None


def test_failure_keeps_code_and_message():
    result = DomainResult.failure(CycleErrorCode.PENDING_SHIFTS, "3 shifts pending")
    assert result.is_failure and not result.is_success
    assert result.error_code is CycleErrorCode.PENDING_SHIFTS
    assert result.error_message == "3 shifts pending"


@pytest.mark.parametrize("message", ["", "   ", None])
def test_failure_requires_a_message(message):
    with pytest.raises(ValueError):
        DomainResult.failure(CycleErrorCode.INVALID_DATE, message)


def test_inconsistent_construction_is_rejected():
    with pytest.raises(ValueError):
        DomainResult(True, CycleErrorCode.INVALID_DATE, "x")
    with pytest.raises(ValueError):
        DomainResult(False)


def test_equality_is_structural_and_ignores_events():
    event = events.CycleActivated(uuid.uuid4())
    assert DomainResult.success(event) == DomainResult.success()
    assert DomainResult.failure(CycleErrorCode.NO_LOCATIONS, "a") == DomainResult.failure(CycleErrorCode.NO_LOCATIONS, "a")
    assert DomainResult.failure(CycleErrorCode.NO_LOCATIONS, "a") != DomainResult.failure(CycleErrorCode.NO_LOCATIONS, "b")
    assert hash(DomainResult.success()) == hash(DomainResult.success(event))


def test_result_value_access():
    ok = Result.ok({"id": 1})
    assert ok.value == {"id": 1}
    assert ok.error is None
    failed = Result.fail(CycleAppError.CYCLE_NOT_FOUND, "missing", [ValidationIssue("id", "unknown")])
    assert failed.is_failure
    assert failed.error.code == "CYCLE_NOT_FOUND"
    assert failed.error.to_dict()["details"] == [{"field": "id", "message": "unknown"}]
    with pytest.raises(RuntimeError):
        failed.value


def test_result_from_domain_translates_code():
    failed = Result.from_domain(DomainResult.failure(CycleErrorCode.CYCLE_NOT_ENDED, "too early"))
    assert failed.error.code == "CYCLE_NOT_ENDED"
    assert failed.error.message == "too early"
    with pytest.raises(ValueError):
        Result.from_domain(DomainResult.success())
