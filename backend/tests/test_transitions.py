"""Tests for the status registry and transition validator."""

import pytest

from app.db.models import CaseRequestStatus, CaseStatus, HearingStatus
from app.services.transitions import (
    CASE_TRANSITIONS,
    HEARING_TRANSITIONS,
    LifecycleEntity,
    allowed_transitions,
    check_advocate_invariant,
    is_case_terminal,
    is_terminal,
    require_case_transition,
    require_transition,
    validate_transition,
)
from app.utils.exceptions import InvalidTransitionError, LifecycleRuleError


@pytest.mark.parametrize(
    "current, requested",
    [
        (HearingStatus.scheduled, HearingStatus.in_progress),
        (HearingStatus.scheduled, HearingStatus.cancelled),
        (HearingStatus.in_progress, HearingStatus.waiting_decision),
        (HearingStatus.in_progress, HearingStatus.adjourned),
        (HearingStatus.waiting_decision, HearingStatus.completed),
        (HearingStatus.adjourned, HearingStatus.scheduled),
    ],
)
def test_hearing_edges_accepted(current, requested):
    result = validate_transition(LifecycleEntity.hearing, current, requested)
    assert result
    assert result.reason is None


def test_hearing_cannot_skip_to_completed():
    result = validate_transition(LifecycleEntity.hearing, "scheduled", "completed")
    assert not result
    assert result.reason == "Invalid status transition from scheduled to completed"


def test_waiting_decision_cannot_restart():
    result = validate_transition(LifecycleEntity.hearing, HearingStatus.waiting_decision, HearingStatus.in_progress)
    assert not result


def test_same_status_is_rejected():
    result = validate_transition(LifecycleEntity.hearing, "in-progress", "in-progress")
    assert not result
    assert result.reason == "Hearing is already in-progress"


@pytest.mark.parametrize("status", [HearingStatus.completed, HearingStatus.cancelled])
def test_terminal_hearing_statuses_are_frozen(status):
    assert is_terminal(LifecycleEntity.hearing, status)
    result = validate_transition(LifecycleEntity.hearing, status, HearingStatus.scheduled)
    assert not result
    assert "can no longer change status" in result.reason


def test_unknown_status_is_rejected_with_reason():
    result = validate_transition(LifecycleEntity.hearing, "scheduled", "postponed")
    assert not result
    assert result.reason == "Unknown hearing status 'postponed'"


def test_case_request_table():
    assert validate_transition(LifecycleEntity.case_request, "pending", "payment-requested")
    assert validate_transition(LifecycleEntity.case_request, "payment-requested", "accepted")
    assert not validate_transition(LifecycleEntity.case_request, "pending", "accepted")
    assert allowed_transitions(LifecycleEntity.case_request, CaseRequestStatus.accepted) == {
        CaseRequestStatus.in_progress
    }


def test_every_table_key_is_covered():
    assert set(HEARING_TRANSITIONS) == set(HearingStatus)
    assert set(CASE_TRANSITIONS) == set(CaseStatus)


def test_terminal_case_statuses():
    assert {s for s in CaseStatus if is_case_terminal(s)} == {
        CaseStatus.rejected,
        CaseStatus.resolved,
        CaseStatus.closed,
    }


def test_any_open_case_can_go_in_progress_or_closed():
    for status in CaseStatus:
        if is_case_terminal(status) or status == CaseStatus.in_progress:
            continue
        assert validate_transition(LifecycleEntity.case, status, CaseStatus.in_progress), status
        assert validate_transition(LifecycleEntity.case, status, CaseStatus.closed), status


def test_advocate_invariant():
    assert not check_advocate_invariant(CaseStatus.approved, 0)
    assert check_advocate_invariant(CaseStatus.approved, 1)
    assert check_advocate_invariant(CaseStatus.closed, 0)


def test_require_helpers_raise_http_errors():
    with pytest.raises(InvalidTransitionError) as exc:
        require_transition(LifecycleEntity.hearing, "completed", "scheduled")
    assert exc.value.status_code == 400
    assert exc.value.reason == "Hearing is completed and can no longer change status"

    with pytest.raises(LifecycleRuleError) as exc:
        require_case_transition("pending-approval", "approved", active_advocates=0)
    assert exc.value.reason == "Case cannot proceed without an advocate assigned"
