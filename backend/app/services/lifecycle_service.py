"""
services/lifecycle_service.py

Case / hearing / case-request mutations.

Every operation here:
  1. re-reads the entities it touches from the store,
  2. passes the requested status move through services/transitions.py,
  3. commits each entity on its own, dependent entity first
     (hearing before case, request before case),
  4. returns a MutationResult whose `notifications` the caller hands to
     NotificationDispatcher.dispatch().

Nothing is wrapped in a multi-entity transaction. If a cascade write fails
after the first entity was committed, the first write stands; the
reconciliation loop re-derives the missing case-side step from current state
on its next cycle (see close_case_for_cancelled_hearing and friends).

Called by:
  - api/v1/endpoints/*            (user-initiated transitions)
  - services/reconciliation.py    (time-driven transitions)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models import (
    AdvocateEngagementStatus,
    AttendeeRole,
    Case,
    CaseAdvocate,
    CaseNote,
    CaseRequest,
    CaseRequestStatus,
    CaseStatus,
    CaseType,
    CourtLevel,
    Hearing,
    HearingAttendee,
    HearingStatus,
    HearingType,
    Notification,
    NotificationType,
    Payment,
    PaymentMethod,
    PaymentStatus,
    User,
    UserRole,
)
from app.services.notification_service import NotificationDraft, drafts_for
from app.services.transitions import (
    ADVOCATE_REQUIRED_STATUSES,
    LIVE_HEARING_STATUSES,
    OPEN_REQUEST_STATUSES,
    LifecycleEntity,
    check_advocate_invariant,
    is_case_terminal,
    is_terminal,
    require_case_transition,
    require_transition,
    validate_transition,
)
from app.utils.exceptions import (
    CaseNotFoundError,
    CaseRequestNotFoundError,
    HearingNotFoundError,
    InvalidTransitionError,
    LifecycleRuleError,
    NotificationNotFoundError,
    UnauthorizedError,
    UserNotFoundError,
)
from app.utils.helpers import format_amount, format_date, generate_payment_reference, utcnow
from app.utils.validators import (
    validate_future_date,
    validate_hearing_duration,
    validate_payment_amount,
)

logger = logging.getLogger(__name__)

CANCELLED_HEARING_CLOSE_REASON = "Hearing was cancelled"
COMPLETED_HEARING_RESOLUTION = "Case resolved after hearing completion"

LITIGANT_DELETABLE_STATUSES = frozenset({
    CaseStatus.pending_approval,
    CaseStatus.payment_requested,
    CaseStatus.rejected,
})


# ============================================================================
# Result type
# ============================================================================

@dataclass
class StatusChange:
    entity: LifecycleEntity
    entity_id: uuid.UUID
    old: str
    new: str


@dataclass
class MutationResult:
    case: Optional[Case] = None
    hearing: Optional[Hearing] = None
    case_request: Optional[CaseRequest] = None
    payment: Optional[Payment] = None
    notification: Optional[Notification] = None
    changes: list[StatusChange] = field(default_factory=list)
    notifications: list[NotificationDraft] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changes)

    def record(self, entity: LifecycleEntity, entity_id, old, new) -> None:
        old_value = old.value if hasattr(old, "value") else str(old)
        new_value = new.value if hasattr(new, "value") else str(new)
        self.changes.append(StatusChange(entity, entity_id, old_value, new_value))
        logger.info("%s %s: %s -> %s", entity.value, entity_id, old_value, new_value)


# ============================================================================
# Loaders & guards
# ============================================================================

def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else utcnow()


def get_case(db: Session, case_id) -> Case:
    case = db.get(Case, case_id, populate_existing=True)
    if case is None:
        raise CaseNotFoundError(case_id)
    return case


def get_hearing(db: Session, hearing_id) -> Hearing:
    hearing = db.get(Hearing, hearing_id, populate_existing=True)
    if hearing is None:
        raise HearingNotFoundError(hearing_id)
    return hearing


def get_case_request(db: Session, request_id) -> CaseRequest:
    request = db.get(CaseRequest, request_id, populate_existing=True)
    if request is None:
        raise CaseRequestNotFoundError(request_id)
    return request


def _require_role(actor: User, role: UserRole, detail: str) -> None:
    if actor is None or actor.role != role:
        raise UnauthorizedError(detail)


def _get_advocate(db: Session, advocate_id) -> User:
    advocate = db.get(User, advocate_id)
    if advocate is None or advocate.role != UserRole.advocate or not advocate.is_active:
        raise UserNotFoundError("Advocate")
    return advocate


def case_participants(case: Case) -> list[uuid.UUID]:
    """Litigant first, then every advocate still representing the case."""
    return [case.litigant_id, *case.active_advocate_ids]


def is_case_participant(case: Case, user: User) -> bool:
    return user.role == UserRole.court_officer or user.id in case_participants(case)


def _other_live_hearings(db: Session, case_id, exclude_hearing_id) -> int:
    return (
        db.query(func.count(Hearing.id))
        .filter(
            Hearing.case_id == case_id,
            Hearing.id != exclude_hearing_id,
            Hearing.status.in_(list(LIVE_HEARING_STATUSES)),
        )
        .scalar()
    )


def _refresh_next_hearing_date(db: Session, case: Case, now: datetime) -> None:
    """next_hearing_date = earliest upcoming live hearing, or None."""
    case.next_hearing_date = (
        db.query(func.min(Hearing.date))
        .filter(
            Hearing.case_id == case.id,
            Hearing.status.in_([HearingStatus.scheduled, HearingStatus.adjourned]),
            Hearing.date >= now,
        )
        .scalar()
    )


def _ensure_advocate_link(case: Case, advocate_id, status: AdvocateEngagementStatus, now: datetime) -> CaseAdvocate:
    link = case.find_advocate_link(advocate_id)
    if link is None:
        link = CaseAdvocate(case_id=case.id, advocate_id=advocate_id, status=status, added_at=now)
        case.advocate_links.append(link)
    else:
        link.status = status
    return link


# ============================================================================
# Status writers
# ============================================================================

def _write_hearing_status(
    db: Session,
    hearing: Hearing,
    requested: HearingStatus,
    now: datetime,
    result: MutationResult,
) -> None:
    require_transition(LifecycleEntity.hearing, hearing.status, requested)
    old = hearing.status
    hearing.status = requested
    hearing.updated_at = now
    db.commit()
    result.hearing = hearing
    result.record(LifecycleEntity.hearing, hearing.id, old, requested)


def _write_case_status(
    db: Session,
    case: Case,
    requested: CaseStatus,
    now: datetime,
    result: MutationResult,
    close_reason: Optional[str] = None,
    resolution: Optional[str] = None,
) -> None:
    require_case_transition(case.status, requested, len(case.active_advocate_ids))
    old = case.status
    case.status = requested
    if requested == CaseStatus.closed:
        case.close_reason = close_reason or "Closed by court officer"
        case.closed_at = now
    elif requested == CaseStatus.resolved:
        case.resolution = resolution or "Resolved"
        case.resolved_at = now
    case.updated_at = now
    db.commit()
    result.case = case
    result.record(LifecycleEntity.case, case.id, old, requested)


def _cascade_case_status(
    db: Session,
    case: Optional[Case],
    requested: CaseStatus,
    now: datetime,
    result: MutationResult,
    **meta,
) -> bool:
    """
    Case-side step of a cascade. Skips (returns False) when the case is
    missing, terminal, already there, or the move is not legal from its
    current state; never raises for those.
    """
    if case is None:
        logger.warning("Cascade to %s skipped: case no longer exists", requested.value)
        return False
    if is_case_terminal(case.status) or case.status == requested:
        return False

    verdict = validate_transition(LifecycleEntity.case, case.status, requested)
    if verdict:
        verdict = check_advocate_invariant(requested, len(case.active_advocate_ids))
    if not verdict:
        logger.info("Case %s cascade to %s skipped: %s", case.id, requested.value, verdict.reason)
        return False

    _write_case_status(db, case, requested, now, result, **meta)
    return True


# ============================================================================
# Hearings: time-driven transitions
# ============================================================================

def start_hearing(db: Session, hearing_id, now: Optional[datetime] = None) -> MutationResult:
    """scheduled -> in-progress while now is inside the hearing window; case follows."""
    now = _now(now)
    hearing = get_hearing(db, hearing_id)
    if hearing.date > now:
        raise LifecycleRuleError("Hearing has not started yet")
    if not hearing.window_contains(now):
        raise LifecycleRuleError("Hearing window has already passed")

    result = MutationResult(hearing=hearing)
    _write_hearing_status(db, hearing, HearingStatus.in_progress, now, result)
    _cascade_case_status(db, hearing.case, CaseStatus.in_progress, now, result)
    return result


def end_hearing(db: Session, hearing_id, now: Optional[datetime] = None) -> MutationResult:
    """in-progress -> waiting-decision once the end time has passed; case back to scheduled-hearing."""
    now = _now(now)
    hearing = get_hearing(db, hearing_id)
    if hearing.ends_at > now:
        raise LifecycleRuleError("Hearing has not ended yet")

    result = MutationResult(hearing=hearing)
    _write_hearing_status(db, hearing, HearingStatus.waiting_decision, now, result)
    _cascade_case_status(db, hearing.case, CaseStatus.scheduled_hearing, now, result)

    case = hearing.case
    if case is not None:
        result.notifications.extend(drafts_for(
            case_participants(case),
            type=NotificationType.hearing_update,
            title="Hearing Concluded",
            message=f'The hearing for case "{case.title}" has ended and is awaiting a decision.',
            related_case_id=case.id,
            related_hearing_id=hearing.id,
        ))
    return result


def close_case_for_cancelled_hearing(db: Session, hearing_id, now: Optional[datetime] = None) -> MutationResult:
    """
    Case-side step of the cancel cascade. Safe to repeat: does nothing once
    the case is terminal or while another live hearing keeps it open.
    """
    now = _now(now)
    hearing = get_hearing(db, hearing_id)
    result = MutationResult(hearing=hearing, case=hearing.case)
    if hearing.status != HearingStatus.cancelled:
        return result

    if _close_case_after_cancellation(db, hearing, now, result):
        case = hearing.case
        result.notifications.extend(drafts_for(
            case_participants(case),
            type=NotificationType.case_update,
            title="Case Closed",
            message=f'Your case "{case.title}" has been closed because its hearing was cancelled.',
            related_case_id=case.id,
            related_hearing_id=hearing.id,
        ))
    return result


def resolve_case_for_completed_hearing(db: Session, hearing_id, now: Optional[datetime] = None) -> MutationResult:
    """Case-side step of the completion cascade; repeatable like the cancel one."""
    now = _now(now)
    hearing = get_hearing(db, hearing_id)
    result = MutationResult(hearing=hearing, case=hearing.case)
    if hearing.status != HearingStatus.completed:
        return result

    if _resolve_case_after_completion(db, hearing, now, result):
        case = hearing.case
        result.notifications.extend(drafts_for(
            case_participants(case),
            type=NotificationType.case_update,
            title="Case Resolved",
            message=f'Your case "{case.title}" has been resolved following the hearing.',
            related_case_id=case.id,
            related_hearing_id=hearing.id,
        ))
    return result


def _close_case_after_cancellation(db: Session, hearing: Hearing, now: datetime, result: MutationResult) -> bool:
    case = hearing.case
    if case is None or is_case_terminal(case.status):
        return False
    if _other_live_hearings(db, case.id, hearing.id):
        logger.info("Case %s kept open: other hearings still scheduled", case.id)
        return False
    return _cascade_case_status(
        db, case, CaseStatus.closed, now, result,
        close_reason=CANCELLED_HEARING_CLOSE_REASON,
    )


def _resolve_case_after_completion(db: Session, hearing: Hearing, now: datetime, result: MutationResult) -> bool:
    case = hearing.case
    if case is None or is_case_terminal(case.status):
        return False
    if _other_live_hearings(db, case.id, hearing.id):
        logger.info("Case %s not resolved: other hearings still scheduled", case.id)
        return False
    return _cascade_case_status(
        db, case, CaseStatus.resolved, now, result,
        resolution=COMPLETED_HEARING_RESOLUTION,
    )


def activate_case_for_started_hearing(db: Session, hearing_id, now: Optional[datetime] = None) -> MutationResult:
    """
    Reminder-sweep "hearing has started" branch: move the case, and every
    accepted case request linked to it, into their in-progress states.
    """
    now = _now(now)
    hearing = get_hearing(db, hearing_id)
    case = hearing.case
    result = MutationResult(hearing=hearing, case=case)
    if case is None:
        return result

    _cascade_case_status(db, case, CaseStatus.in_progress, now, result)

    requests = (
        db.query(CaseRequest)
        .filter(CaseRequest.case_id == case.id, CaseRequest.status == CaseRequestStatus.accepted)
        .all()
    )
    for request in requests:
        verdict = validate_transition(LifecycleEntity.case_request, request.status, CaseRequestStatus.in_progress)
        if not verdict:
            logger.info("Case request %s left as is: %s", request.id, verdict.reason)
            continue
        old = request.status
        request.status = CaseRequestStatus.in_progress
        request.updated_at = now
        db.commit()
        result.record(LifecycleEntity.case_request, request.id, old, CaseRequestStatus.in_progress)
    return result


# ============================================================================
# Hearings: officer actions
# ============================================================================

def _virtual_link(hearing_id) -> str:
    return f"{settings.VIRTUAL_HEARING_BASE_URL.rstrip('/')}/{hearing_id}"


def schedule_hearing(
    db: Session,
    case_id,
    officer: User,
    date: datetime,
    hearing_type: HearingType,
    duration: Optional[int] = None,
    court_room: Optional[str] = None,
    address: Optional[str] = None,
    virtual_link: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    now = _now(now)
    _require_role(officer, UserRole.court_officer, "Only court officers can schedule hearings")

    case = get_case(db, case_id)
    if case.status not in (CaseStatus.approved, CaseStatus.scheduled_hearing, CaseStatus.waiting_decision):
        raise LifecycleRuleError("Cannot schedule hearing for unapproved case")
    if case.status != CaseStatus.scheduled_hearing:
        require_case_transition(case.status, CaseStatus.scheduled_hearing, len(case.active_advocate_ids))

    validate_future_date(date, now)
    duration = validate_hearing_duration(duration)
    hearing_type = HearingType(hearing_type)

    hearing_id = uuid.uuid4()
    if hearing_type == HearingType.virtual and not virtual_link:
        virtual_link = _virtual_link(hearing_id)

    hearing = Hearing(
        id=hearing_id,
        case_id=case.id,
        date=date,
        duration=duration,
        hearing_type=hearing_type,
        court_room=court_room,
        address=address,
        virtual_link=virtual_link,
        notes=notes or "",
        status=HearingStatus.scheduled,
        created_by=officer.id,
    )
    hearing.attendees.append(HearingAttendee(user_id=case.litigant_id, role=AttendeeRole.litigant))
    for advocate_id in case.active_advocate_ids:
        hearing.attendees.append(HearingAttendee(user_id=advocate_id, role=AttendeeRole.advocate))

    db.add(hearing)
    db.commit()
    logger.info("Hearing %s scheduled for case %s at %s", hearing.id, case.id, date.isoformat())

    result = MutationResult(hearing=hearing, case=case)
    if case.status != CaseStatus.scheduled_hearing:
        _write_case_status(db, case, CaseStatus.scheduled_hearing, now, result)
    _refresh_next_hearing_date(db, case, now)
    db.commit()

    result.notifications.extend(drafts_for(
        case_participants(case),
        type=NotificationType.hearing_scheduled,
        title="Hearing Scheduled",
        message=f'Your case "{case.title}" has a scheduled hearing on {format_date(date)}',
        sender_id=officer.id,
        related_case_id=case.id,
        related_hearing_id=hearing.id,
        is_action_required=True,
    ))
    return result


def update_hearing(
    db: Session,
    hearing_id,
    officer: User,
    date: Optional[datetime] = None,
    duration: Optional[int] = None,
    hearing_type: Optional[HearingType] = None,
    court_room: Optional[str] = None,
    address: Optional[str] = None,
    virtual_link: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    """
    Detail edits. A new date on an adjourned hearing puts it back on the
    calendar (adjourned -> scheduled).
    """
    now = _now(now)
    _require_role(officer, UserRole.court_officer, "Only court officers can update hearings")

    hearing = get_hearing(db, hearing_id)
    if is_terminal(LifecycleEntity.hearing, hearing.status):
        raise LifecycleRuleError(f"Cannot modify a {hearing.status.value} hearing")

    if date is not None:
        if hearing.status not in (HearingStatus.scheduled, HearingStatus.adjourned):
            raise LifecycleRuleError(f"Cannot move the date of a hearing that is {hearing.status.value}")
        hearing.date = validate_future_date(date, now)
    if duration is not None:
        hearing.duration = validate_hearing_duration(duration)
    if hearing_type is not None:
        hearing.hearing_type = HearingType(hearing_type)
    if court_room is not None:
        hearing.court_room = court_room
    if address is not None:
        hearing.address = address
    if virtual_link is not None:
        hearing.virtual_link = virtual_link
    if notes is not None:
        hearing.notes = notes
    if hearing.hearing_type == HearingType.virtual and not hearing.virtual_link:
        hearing.virtual_link = _virtual_link(hearing.id)

    hearing.updated_at = now
    db.commit()

    result = MutationResult(hearing=hearing, case=hearing.case)
    if date is not None and hearing.status == HearingStatus.adjourned:
        _write_hearing_status(db, hearing, HearingStatus.scheduled, now, result)
        _cascade_case_status(db, hearing.case, CaseStatus.scheduled_hearing, now, result)

    case = hearing.case
    _refresh_next_hearing_date(db, case, now)
    db.commit()

    result.notifications.extend(drafts_for(
        case_participants(case),
        type=NotificationType.hearing_update,
        title="Hearing Updated",
        message=f'The hearing for case "{case.title}" has been updated. It is now on {format_date(hearing.date)}.',
        sender_id=officer.id,
        related_case_id=case.id,
        related_hearing_id=hearing.id,
    ))
    return result


def change_hearing_status(
    db: Session,
    hearing_id,
    requested,
    officer: User,
    new_date: Optional[datetime] = None,
    outcome: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    """
    Officer status change. Hearing is written first, then the case cascade:
      in-progress       -> case in-progress
      waiting-decision  -> case scheduled-hearing
      cancelled         -> case closed (no other live hearing)
      completed         -> case resolved (no other live hearing)
      adjourned + date  -> hearing rescheduled in place, back to scheduled
    """
    now = _now(now)
    _require_role(officer, UserRole.court_officer, "Only court officers can update hearing status")

    hearing = get_hearing(db, hearing_id)
    case = hearing.case
    if case is None:
        raise CaseNotFoundError(hearing.case_id)

    # Rejects unknown statuses with a readable reason before any coercion
    require_transition(LifecycleEntity.hearing, hearing.status, requested)
    requested = HearingStatus(requested)

    if new_date is not None:
        if requested not in (HearingStatus.adjourned, HearingStatus.scheduled):
            raise LifecycleRuleError("A new date can only be given when adjourning or rescheduling")
        validate_future_date(new_date, now)
    elif requested == HearingStatus.scheduled and hearing.date < now:
        raise LifecycleRuleError("A new hearing date is required to reschedule")

    if outcome is not None:
        hearing.outcome = outcome

    result = MutationResult(hearing=hearing, case=case)
    _write_hearing_status(db, hearing, requested, now, result)

    case_note = ""
    if requested == HearingStatus.in_progress:
        _cascade_case_status(db, case, CaseStatus.in_progress, now, result)
    elif requested == HearingStatus.waiting_decision:
        _cascade_case_status(db, case, CaseStatus.scheduled_hearing, now, result)
    elif requested == HearingStatus.cancelled:
        if _close_case_after_cancellation(db, hearing, now, result):
            case_note = " The case has been closed."
    elif requested == HearingStatus.completed:
        if _resolve_case_after_completion(db, hearing, now, result):
            case_note = " The case has been resolved."

    if new_date is not None:
        # adjourned -> scheduled with the new date, or scheduled with a new date
        hearing.date = new_date
        hearing.updated_at = now
        db.commit()
        if hearing.status == HearingStatus.adjourned:
            _write_hearing_status(db, hearing, HearingStatus.scheduled, now, result)
        _cascade_case_status(db, case, CaseStatus.scheduled_hearing, now, result)
        case_note = f" It has been rescheduled to {format_date(new_date)}."

    if requested in (HearingStatus.adjourned, HearingStatus.scheduled, HearingStatus.cancelled):
        _refresh_next_hearing_date(db, case, now)
        db.commit()

    result.notifications.extend(drafts_for(
        case_participants(case),
        type=NotificationType.hearing,
        title="Hearing Status Updated",
        message=f'Hearing for case "{case.title}" has been marked as {requested.value}.{case_note}',
        sender_id=officer.id,
        related_case_id=case.id,
        related_hearing_id=hearing.id,
    ))
    return result


def delete_hearing(db: Session, hearing_id, officer: User, now: Optional[datetime] = None) -> None:
    now = _now(now)
    _require_role(officer, UserRole.court_officer, "Only court officers can delete hearings")

    hearing = get_hearing(db, hearing_id)
    if not is_terminal(LifecycleEntity.hearing, hearing.status):
        raise LifecycleRuleError("Only completed or cancelled hearings can be deleted")

    pending_links = (
        db.query(func.count(Notification.id))
        .filter(
            Notification.related_hearing_id == hearing.id,
            Notification.is_read == False,  # noqa: E712
            Notification.is_action_required == True,  # noqa: E712
        )
        .scalar()
    )
    if pending_links:
        raise LifecycleRuleError("Hearing is still referenced by unread notifications")

    case = hearing.case
    db.delete(hearing)
    db.commit()
    logger.info("Hearing %s deleted by officer %s", hearing_id, officer.id)

    if case is not None:
        _refresh_next_hearing_date(db, case, now)
        db.commit()


# ============================================================================
# Cases
# ============================================================================

def generate_case_number(db: Session, now: Optional[datetime] = None) -> str:
    """
    <prefix><year><6-digit sequence>, one past the highest number already
    issued for this prefix and year.
    """
    now = _now(now)
    stem = f"{settings.CASE_NUMBER_PREFIX}{now.year}"
    last = (
        db.query(Case.case_number)
        .filter(Case.case_number.like(f"{stem}%"))
        .order_by(Case.case_number.desc())
        .limit(1)
        .scalar()
    )
    sequence = int(last[len(stem):]) + 1 if last else 1
    return f"{stem}{sequence:06d}"


def file_case(
    db: Session,
    litigant: User,
    title: str,
    description: str,
    case_type: CaseType,
    court: CourtLevel,
    now: Optional[datetime] = None,
) -> Case:
    now = _now(now)
    _require_role(litigant, UserRole.litigant, "Only litigants can file cases")

    for attempt in range(3):
        case = Case(
            case_number=generate_case_number(db, now),
            title=title,
            description=description,
            case_type=CaseType(case_type),
            court=CourtLevel(court),
            status=CaseStatus.pending_approval,
            litigant_id=litigant.id,
            filing_date=now,
        )
        db.add(case)
        try:
            db.commit()
        except IntegrityError:
            # Another filing took the same sequence number
            db.rollback()
            logger.warning("Case number collision on attempt %d, retrying", attempt + 1)
            continue
        logger.info("Case %s filed by litigant %s", case.case_number, litigant.id)
        return case

    raise LifecycleRuleError("Could not allocate a case number, please retry")


def change_case_status(
    db: Session,
    case_id,
    requested,
    officer: User,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    now = _now(now)
    _require_role(officer, UserRole.court_officer, "Only court officers can change case status")

    case = get_case(db, case_id)
    require_case_transition(case.status, requested, len(case.active_advocate_ids))
    requested = CaseStatus(requested)

    result = MutationResult(case=case)
    _write_case_status(
        db, case, requested, now, result,
        close_reason=reason,
        resolution=reason,
    )

    result.notifications.extend(drafts_for(
        case_participants(case),
        type=NotificationType.case_update,
        title="Case Status Updated",
        message=f'Your case "{case.title}" status has been updated to {requested.value}',
        sender_id=officer.id,
        related_case_id=case.id,
    ))
    return result


def assign_advocate(
    db: Session,
    case_id,
    advocate_id,
    officer: User,
    now: Optional[datetime] = None,
) -> MutationResult:
    now = _now(now)
    _require_role(officer, UserRole.court_officer, "Not authorized to assign advocates")

    case = get_case(db, case_id)
    if is_case_terminal(case.status):
        raise LifecycleRuleError(f"Cannot assign advocates to a {case.status.value} case")
    advocate = _get_advocate(db, advocate_id)

    result = MutationResult(case=case)
    link = case.find_advocate_link(advocate.id)
    if link is not None and link.status == AdvocateEngagementStatus.accepted:
        return result

    _ensure_advocate_link(case, advocate.id, AdvocateEngagementStatus.accepted, now)
    case.updated_at = now
    db.commit()
    logger.info("Advocate %s assigned to case %s", advocate.id, case.id)

    result.notifications.append(NotificationDraft(
        recipient_id=advocate.id,
        type=NotificationType.case_assignment,
        title="New Case Assignment",
        message=f'You have been assigned to case "{case.title}"',
        sender_id=officer.id,
        related_case_id=case.id,
    ))
    return result


def remove_advocate(
    db: Session,
    case_id,
    advocate_id,
    officer: User,
    now: Optional[datetime] = None,
) -> MutationResult:
    now = _now(now)
    _require_role(officer, UserRole.court_officer, "Not authorized to remove advocates")

    case = get_case(db, case_id)
    link = case.find_advocate_link(advocate_id)
    if link is None:
        raise UserNotFoundError("Case advocate")

    remaining = [a for a in case.active_advocate_ids if a != link.advocate_id]
    if case.status in ADVOCATE_REQUIRED_STATUSES and not remaining:
        raise LifecycleRuleError("Case cannot proceed without an advocate assigned")

    removed_id = link.advocate_id
    case.advocate_links.remove(link)
    case.updated_at = now
    db.commit()
    logger.info("Advocate %s removed from case %s", removed_id, case.id)

    result = MutationResult(case=case)
    result.notifications.append(NotificationDraft(
        recipient_id=removed_id,
        type=NotificationType.case_update,
        title="Case Assignment Removed",
        message=f'You have been removed from case "{case.title}"',
        sender_id=officer.id,
        related_case_id=case.id,
    ))
    return result


def add_case_note(db: Session, case_id, author: User, content: str, now: Optional[datetime] = None) -> CaseNote:
    now = _now(now)
    case = get_case(db, case_id)
    if not is_case_participant(case, author):
        raise UnauthorizedError("Not authorized to add notes to this case")
    if not content or not content.strip():
        raise LifecycleRuleError("Note content cannot be empty")

    note = CaseNote(case_id=case.id, author_id=author.id, content=content.strip(), created_at=now)
    db.add(note)
    case.updated_at = now
    db.commit()
    return note


def delete_case(db: Session, case_id, actor: User) -> None:
    """
    Cases with hearings or documents are never hard-deleted. Litigants may
    only remove their own cases before approval (or after rejection).
    """
    case = get_case(db, case_id)

    if actor.role == UserRole.litigant:
        if case.litigant_id != actor.id:
            raise UnauthorizedError("Not authorized to delete this case")
        if case.status not in LITIGANT_DELETABLE_STATUSES:
            raise LifecycleRuleError(
                "Cannot delete a case that has been approved, is in progress, or has hearings scheduled"
            )
    elif actor.role != UserRole.court_officer:
        raise UnauthorizedError("Not authorized to delete this case")

    if case.has_attachments:
        raise LifecycleRuleError("Cannot delete a case that has hearings or documents attached")

    db.delete(case)
    db.commit()
    logger.info("Case %s deleted by %s %s", case_id, actor.role.value, actor.id)


# ============================================================================
# Case requests
# ============================================================================

def create_case_request(
    db: Session,
    litigant: User,
    advocate_id,
    case_id=None,
    case_title: Optional[str] = None,
    case_description: Optional[str] = None,
    case_type: Optional[CaseType] = None,
    court: Optional[CourtLevel] = None,
    message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    now = _now(now)
    _require_role(litigant, UserRole.litigant, "Only litigants can create case requests")
    advocate = _get_advocate(db, advocate_id)

    case = None
    if case_id is not None:
        case = db.get(Case, case_id)
        if case is None or case.litigant_id != litigant.id:
            raise CaseNotFoundError(case_id)
        if is_case_terminal(case.status):
            raise LifecycleRuleError(f"Case is {case.status.value} and cannot take new advocates")
        case_title = case.title
        case_description = case.description
        case_type = case.case_type
        court = case.court
    else:
        if not (case_title and case_description and case_type and court):
            raise LifecycleRuleError("Case title, description, type and court are required")
        already_approved = (
            db.query(Case)
            .filter(
                Case.title == case_title,
                Case.litigant_id == litigant.id,
                Case.status == CaseStatus.approved,
            )
            .first()
        )
        if already_approved:
            raise LifecycleRuleError("You already have an approved case with this title")

    duplicate = (
        db.query(CaseRequest)
        .filter(
            CaseRequest.litigant_id == litigant.id,
            CaseRequest.advocate_id == advocate.id,
            CaseRequest.case_title == case_title,
            CaseRequest.status.in_(list(OPEN_REQUEST_STATUSES)),
        )
        .first()
    )
    if duplicate:
        raise LifecycleRuleError("You have already sent a request for this case to this advocate")

    request = CaseRequest(
        litigant_id=litigant.id,
        advocate_id=advocate.id,
        case_id=case.id if case is not None else None,
        case_title=case_title,
        case_description=case_description,
        case_type=CaseType(case_type),
        court=CourtLevel(court),
        status=CaseRequestStatus.pending,
        message=message,
        created_at=now,
        updated_at=now,
    )
    db.add(request)
    db.commit()
    logger.info("Case request %s created: litigant=%s advocate=%s", request.id, litigant.id, advocate.id)

    result = MutationResult(case_request=request, case=case)
    result.notifications.append(NotificationDraft(
        recipient_id=advocate.id,
        type=NotificationType.case_request,
        title="New Case Request",
        message=f'You have received a new case request: "{request.case_title}"',
        sender_id=litigant.id,
        related_case_request_id=request.id,
        related_case_id=request.case_id,
        is_action_required=True,
        action_url=f"/dashboard/requests/{request.id}",
    ))
    return result


def _case_for_request(db: Session, request: CaseRequest, now: datetime) -> Case:
    """The request's case, filed from the request details if none is linked yet."""
    if request.case_id is not None:
        case = db.get(Case, request.case_id, populate_existing=True)
        if case is not None:
            return case

    case = Case(
        case_number=generate_case_number(db, now),
        title=request.case_title,
        description=request.case_description,
        case_type=request.case_type,
        court=request.court,
        status=CaseStatus.pending_approval,
        litigant_id=request.litigant_id,
        filing_date=now,
    )
    db.add(case)
    db.commit()
    request.case_id = case.id
    db.commit()
    logger.info("Case %s filed from case request %s", case.case_number, request.id)
    return case


def respond_to_case_request(
    db: Session,
    request_id,
    advocate: User,
    requested,
    response_message: Optional[str] = None,
    payment_amount: Optional[float] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    """
    Advocate response.

    accepted / payment-requested: the advocate accepts for a fee. The request
    waits for payment (payment-requested), the case moves to
    payment-requested with the amount, and the advocate joins the case
    advocate list as accepted. Request and case become accepted/approved only
    once the litigant pays (complete_payment / simulate_payment).

    rejected: the request is rejected; the case follows when that is a legal
    move, recording the rejecting advocate.
    """
    now = _now(now)
    valid = {CaseRequestStatus.accepted.value, CaseRequestStatus.payment_requested.value, CaseRequestStatus.rejected.value}
    raw = requested.value if hasattr(requested, "value") else requested
    if raw not in valid:
        raise InvalidTransitionError("Please provide a valid status (accepted, rejected, or payment-requested)")
    requested = CaseRequestStatus(raw)

    request = get_case_request(db, request_id)
    if advocate is None or request.advocate_id != advocate.id:
        raise UnauthorizedError("Not authorized to respond to this case request")

    if requested == CaseRequestStatus.rejected:
        return _reject_case_request(db, request, advocate, response_message, now)
    return _accept_case_request(db, request, advocate, response_message, payment_amount, now)


def _accept_case_request(
    db: Session,
    request: CaseRequest,
    advocate: User,
    response_message: Optional[str],
    payment_amount: Optional[float],
    now: datetime,
) -> MutationResult:
    amount = validate_payment_amount(payment_amount)
    require_transition(LifecycleEntity.case_request, request.status, CaseRequestStatus.payment_requested)

    linked = db.get(Case, request.case_id, populate_existing=True) if request.case_id else None
    if linked is not None and linked.status != CaseStatus.payment_requested:
        require_case_transition(linked.status, CaseStatus.payment_requested, len(linked.active_advocate_ids))

    case = _case_for_request(db, request, now)
    result = MutationResult(case_request=request, case=case)

    old = request.status
    request.status = CaseRequestStatus.payment_requested
    request.payment_amount = amount
    request.payment_status = PaymentStatus.pending
    request.response_message = response_message or ""
    request.updated_at = now
    db.commit()
    result.record(LifecycleEntity.case_request, request.id, old, request.status)

    _ensure_advocate_link(case, advocate.id, AdvocateEngagementStatus.accepted, now)
    case.payment_amount = amount
    case.payment_status = PaymentStatus.pending
    if case.status != CaseStatus.payment_requested:
        _write_case_status(db, case, CaseStatus.payment_requested, now, result)
    else:
        case.updated_at = now
        db.commit()

    fee = format_amount(amount)
    result.notifications.append(NotificationDraft(
        recipient_id=request.litigant_id,
        type=NotificationType.payment,
        title="Payment Request",
        message=(
            f'Advocate {advocate.name} has requested a payment of {fee} for your case '
            f'"{request.case_title}". Please review and approve the payment.'
        ),
        sender_id=advocate.id,
        related_case_id=case.id,
        related_case_request_id=request.id,
        is_action_required=True,
        payment_amount=amount,
        payment_status=PaymentStatus.pending,
    ))
    result.notifications.append(NotificationDraft(
        recipient_id=advocate.id,
        type=NotificationType.case_request_response,
        title="Payment Requested",
        message=(
            f'You have requested a payment of {fee} for case "{request.case_title}". '
            f'Waiting for litigant approval.'
        ),
        related_case_id=case.id,
        related_case_request_id=request.id,
        payment_amount=amount,
        payment_status=PaymentStatus.pending,
    ))
    return result


def _reject_case_request(
    db: Session,
    request: CaseRequest,
    advocate: User,
    response_message: Optional[str],
    now: datetime,
) -> MutationResult:
    require_transition(LifecycleEntity.case_request, request.status, CaseRequestStatus.rejected)

    result = MutationResult(case_request=request)
    old = request.status
    request.status = CaseRequestStatus.rejected
    request.response_message = response_message or ""
    request.updated_at = now
    db.commit()
    result.record(LifecycleEntity.case_request, request.id, old, request.status)

    case = db.get(Case, request.case_id, populate_existing=True) if request.case_id else None
    if case is not None:
        result.case = case
        verdict = validate_transition(LifecycleEntity.case, case.status, CaseStatus.rejected)
        if verdict:
            _ensure_advocate_link(case, advocate.id, AdvocateEngagementStatus.rejected, now)
            _write_case_status(db, case, CaseStatus.rejected, now, result)
        else:
            logger.info("Case %s not rejected with request %s: %s", case.id, request.id, verdict.reason)

    result.notifications.append(NotificationDraft(
        recipient_id=request.litigant_id,
        type=NotificationType.case_request_response,
        title="Case Request Declined",
        message=f'Your request for case "{request.case_title}" has been declined by the advocate.',
        sender_id=advocate.id,
        related_case_id=request.case_id,
        related_case_request_id=request.id,
        action_url=f"/dashboard/cases/{request.case_id}" if request.case_id else "",
    ))
    return result


def complete_payment(db: Session, notification_id, payer: User, now: Optional[datetime] = None) -> MutationResult:
    """Pay from the litigant's payment notification; the notification is promoted in place."""
    now = _now(now)
    notification = db.get(Notification, notification_id, populate_existing=True)
    if notification is None:
        raise NotificationNotFoundError(notification_id)
    if notification.type != NotificationType.payment or notification.recipient_id != payer.id:
        raise UnauthorizedError("Unauthorized to make this payment")
    _require_role(payer, UserRole.litigant, "Only litigants can make payments")

    if notification.related_case_request_id is None:
        raise LifecycleRuleError("Payment notification is not linked to a case request")
    request = get_case_request(db, notification.related_case_request_id)
    return _settle_payment(db, request, payer, notification, now)


def simulate_payment(db: Session, request_id, payer: User, now: Optional[datetime] = None) -> MutationResult:
    """Pay straight from the case request; promotes the open payment notification if there is one."""
    now = _now(now)
    request = get_case_request(db, request_id)
    if request.litigant_id != payer.id:
        raise UnauthorizedError("Not authorized to make payment for this request")

    notification = (
        db.query(Notification)
        .filter(
            Notification.related_case_request_id == request.id,
            Notification.recipient_id == payer.id,
            Notification.type == NotificationType.payment,
        )
        .order_by(Notification.created_at.desc())
        .first()
    )
    return _settle_payment(db, request, payer, notification, now)


def _settle_payment(
    db: Session,
    request: CaseRequest,
    payer: User,
    notification: Optional[Notification],
    now: datetime,
) -> MutationResult:
    if request.status != CaseRequestStatus.payment_requested:
        raise LifecycleRuleError("No payment request pending for this case")
    require_transition(LifecycleEntity.case_request, request.status, CaseRequestStatus.accepted)

    case = db.get(Case, request.case_id, populate_existing=True) if request.case_id else None
    if case is not None and case.status != CaseStatus.approved:
        joining = 0 if request.advocate_id in case.active_advocate_ids else 1
        require_case_transition(case.status, CaseStatus.approved, len(case.active_advocate_ids) + joining)

    amount = request.payment_amount
    if amount is None and notification is not None:
        amount = notification.payment_amount
    amount = validate_payment_amount(amount)
    reference = generate_payment_reference(now)

    payment = Payment(
        payer_id=payer.id,
        case_id=request.case_id,
        case_request_id=request.id,
        amount=amount,
        method=PaymentMethod.simulated,
        reference=reference,
        status=PaymentStatus.completed,
        created_at=now,
    )
    db.add(payment)
    db.commit()

    result = MutationResult(case_request=request, case=case, payment=payment)

    old = request.status
    request.status = CaseRequestStatus.accepted
    request.payment_status = PaymentStatus.completed
    request.payment_method = PaymentMethod.simulated
    request.payment_reference = reference
    request.payment_date = now
    request.updated_at = now
    db.commit()
    result.record(LifecycleEntity.case_request, request.id, old, request.status)

    if case is not None:
        _ensure_advocate_link(case, request.advocate_id, AdvocateEngagementStatus.accepted, now)
        case.payment_amount = amount
        case.payment_status = PaymentStatus.completed
        case.payment_method = PaymentMethod.simulated
        case.payment_reference = reference
        case.payment_date = now
        if case.status != CaseStatus.approved:
            _write_case_status(db, case, CaseStatus.approved, now, result)
        else:
            case.updated_at = now
            db.commit()

    fee = format_amount(amount)
    title = case.title if case is not None else request.case_title

    if notification is not None:
        notification.type = NotificationType.payment_completed
        notification.title = "Payment Processed"
        notification.message = f"Your payment of {fee} has been processed successfully."
        notification.is_action_required = False
        notification.is_read = True
        notification.payment_amount = amount
        notification.payment_status = PaymentStatus.completed
        notification.payment_method = PaymentMethod.simulated
        notification.payment_reference = reference
        db.commit()
        result.notification = notification
    else:
        result.notifications.append(NotificationDraft(
            recipient_id=request.litigant_id,
            type=NotificationType.payment_completed,
            title="Payment Processed",
            message=f'Your payment of {fee} has been processed for case "{title}".',
            related_case_id=request.case_id,
            related_case_request_id=request.id,
            payment_amount=amount,
            payment_method=PaymentMethod.simulated,
            payment_status=PaymentStatus.completed,
            payment_reference=reference,
        ))

    result.notifications.append(NotificationDraft(
        recipient_id=request.advocate_id,
        type=NotificationType.payment_completed,
        title="Payment Received",
        message=f'Payment of {fee} has been received for case "{title}". Case is now active.',
        sender_id=payer.id,
        related_case_id=request.case_id,
        related_case_request_id=request.id,
        payment_amount=amount,
        payment_method=PaymentMethod.simulated,
        payment_status=PaymentStatus.completed,
        payment_reference=reference,
    ))
    return result


def delete_case_request(db: Session, request_id, litigant: User) -> None:
    request = get_case_request(db, request_id)
    if request.litigant_id != litigant.id:
        raise UnauthorizedError("Not authorized to delete this case request")
    if request.status not in (CaseRequestStatus.pending, CaseRequestStatus.rejected):
        raise LifecycleRuleError(f"Cannot delete a case request that has been {request.status.value}")
    db.delete(request)
    db.commit()
