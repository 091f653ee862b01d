"""
services/transitions.py

Status registry and transition validator for hearings, cases and case requests.

The tables below are the only legal status moves in the system. Both the HTTP
handlers (officer / advocate / litigant actions) and the reconciliation loop
call validate_transition() before committing a status change; a rejection
carries a human-readable reason that handlers return verbatim.

validate_transition() is pure: it never reads or writes the database.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from app.db.models import CaseRequestStatus, CaseStatus, HearingStatus
from app.utils.exceptions import InvalidTransitionError, LifecycleRuleError


class LifecycleEntity(str, enum.Enum):
    hearing = "hearing"
    case = "case"
    case_request = "case request"


# ============================================================================
# Transition tables
# ============================================================================

HEARING_TRANSITIONS: Mapping[HearingStatus, frozenset[HearingStatus]] = {
    HearingStatus.scheduled: frozenset({HearingStatus.in_progress, HearingStatus.cancelled}),
    HearingStatus.in_progress: frozenset({
        HearingStatus.waiting_decision,
        HearingStatus.adjourned,
        HearingStatus.cancelled,
    }),
    HearingStatus.waiting_decision: frozenset({
        HearingStatus.completed,
        HearingStatus.adjourned,
        HearingStatus.cancelled,
    }),
    HearingStatus.adjourned: frozenset({HearingStatus.scheduled, HearingStatus.cancelled}),
    HearingStatus.completed: frozenset(),
    HearingStatus.cancelled: frozenset(),
}

CASE_TRANSITIONS: Mapping[CaseStatus, frozenset[CaseStatus]] = {
    CaseStatus.pending_approval: frozenset({
        CaseStatus.approved,
        CaseStatus.rejected,
        CaseStatus.payment_requested,
        CaseStatus.in_progress,
        CaseStatus.closed,
    }),
    CaseStatus.payment_requested: frozenset({
        CaseStatus.approved,
        CaseStatus.rejected,
        CaseStatus.in_progress,
        CaseStatus.closed,
    }),
    CaseStatus.approved: frozenset({
        CaseStatus.payment_requested,
        CaseStatus.scheduled_hearing,
        CaseStatus.in_progress,
        CaseStatus.closed,
    }),
    CaseStatus.scheduled_hearing: frozenset({
        CaseStatus.in_progress,
        CaseStatus.waiting_decision,
        CaseStatus.resolved,
        CaseStatus.closed,
    }),
    CaseStatus.in_progress: frozenset({
        CaseStatus.scheduled_hearing,
        CaseStatus.waiting_decision,
        CaseStatus.resolved,
        CaseStatus.closed,
    }),
    CaseStatus.waiting_decision: frozenset({
        CaseStatus.in_progress,
        CaseStatus.scheduled_hearing,
        CaseStatus.resolved,
        CaseStatus.closed,
    }),
    CaseStatus.rejected: frozenset(),
    CaseStatus.resolved: frozenset(),
    CaseStatus.closed: frozenset(),
}

CASE_REQUEST_TRANSITIONS: Mapping[CaseRequestStatus, frozenset[CaseRequestStatus]] = {
    CaseRequestStatus.pending: frozenset({CaseRequestStatus.payment_requested, CaseRequestStatus.rejected}),
    CaseRequestStatus.payment_requested: frozenset({CaseRequestStatus.accepted, CaseRequestStatus.rejected}),
    CaseRequestStatus.accepted: frozenset({CaseRequestStatus.in_progress}),
    CaseRequestStatus.rejected: frozenset(),
    CaseRequestStatus.in_progress: frozenset(),
}

_TABLES = {
    LifecycleEntity.hearing: (HearingStatus, HEARING_TRANSITIONS),
    LifecycleEntity.case: (CaseStatus, CASE_TRANSITIONS),
    LifecycleEntity.case_request: (CaseRequestStatus, CASE_REQUEST_TRANSITIONS),
}

# Case statuses that require at least one representing advocate
ADVOCATE_REQUIRED_STATUSES = frozenset({
    CaseStatus.approved,
    CaseStatus.scheduled_hearing,
    CaseStatus.in_progress,
})

# Hearings that still occupy the case calendar
LIVE_HEARING_STATUSES = frozenset({
    HearingStatus.scheduled,
    HearingStatus.in_progress,
    HearingStatus.waiting_decision,
    HearingStatus.adjourned,
})

# Request statuses that block a duplicate (litigant, advocate, title) request
OPEN_REQUEST_STATUSES = frozenset({
    CaseRequestStatus.pending,
    CaseRequestStatus.payment_requested,
    CaseRequestStatus.accepted,
})

StatusLike = Union[str, enum.Enum]


@dataclass(frozen=True)
class TransitionResult:
    accepted: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.accepted

    @classmethod
    def ok(cls) -> "TransitionResult":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: str) -> "TransitionResult":
        return cls(accepted=False, reason=reason)


def _coerce(entity: LifecycleEntity, value: StatusLike):
    status_enum, _ = _TABLES[entity]
    if isinstance(value, status_enum):
        return value
    raw = value.value if isinstance(value, enum.Enum) else value
    try:
        return status_enum(raw)
    except ValueError:
        return None


def _label(value: StatusLike) -> str:
    return value.value if isinstance(value, enum.Enum) else str(value)


# ============================================================================
# Validator
# ============================================================================

def validate_transition(
    entity: LifecycleEntity,
    current: StatusLike,
    requested: StatusLike,
) -> TransitionResult:
    """
    Accept or reject moving `entity` from `current` to `requested`.

    Unknown statuses, no-op moves, moves out of a terminal status and moves
    missing from the table are all rejected.
    """
    entity = LifecycleEntity(entity)
    _, table = _TABLES[entity]

    cur = _coerce(entity, current)
    req = _coerce(entity, requested)

    if cur is None:
        return TransitionResult.reject(f"Unknown {entity.value} status '{_label(current)}'")
    if req is None:
        return TransitionResult.reject(f"Unknown {entity.value} status '{_label(requested)}'")
    if cur == req:
        return TransitionResult.reject(f"{entity.value.capitalize()} is already {cur.value}")
    if not table[cur]:
        return TransitionResult.reject(
            f"{entity.value.capitalize()} is {cur.value} and can no longer change status"
        )
    if req not in table[cur]:
        return TransitionResult.reject(f"Invalid status transition from {cur.value} to {req.value}")
    return TransitionResult.ok()


def require_transition(entity: LifecycleEntity, current: StatusLike, requested: StatusLike) -> None:
    """validate_transition() that raises InvalidTransitionError on rejection."""
    result = validate_transition(entity, current, requested)
    if not result:
        raise InvalidTransitionError(result.reason)


def allowed_transitions(entity: LifecycleEntity, current: StatusLike) -> frozenset:
    entity = LifecycleEntity(entity)
    _, table = _TABLES[entity]
    cur = _coerce(entity, current)
    if cur is None:
        return frozenset()
    return table[cur]


def is_terminal(entity: LifecycleEntity, status: StatusLike) -> bool:
    entity = LifecycleEntity(entity)
    _, table = _TABLES[entity]
    cur = _coerce(entity, status)
    return cur is not None and not table[cur]


def is_case_terminal(status: StatusLike) -> bool:
    return is_terminal(LifecycleEntity.case, status)


def check_advocate_invariant(requested: StatusLike, active_advocates: int) -> TransitionResult:
    """Active case statuses need at least one representing advocate."""
    req = _coerce(LifecycleEntity.case, requested)
    if req in ADVOCATE_REQUIRED_STATUSES and active_advocates < 1:
        return TransitionResult.reject("Case cannot proceed without an advocate assigned")
    return TransitionResult.ok()


def require_case_transition(current: StatusLike, requested: StatusLike, active_advocates: int) -> None:
    """Full case gate: transition table plus the advocate invariant."""
    require_transition(LifecycleEntity.case, current, requested)
    invariant = check_advocate_invariant(requested, active_advocates)
    if not invariant:
        raise LifecycleRuleError(invariant.reason)
