"""
Case management endpoints
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from app.db.database import get_db
from app.db.models import Case, CaseAdvocate, User, UserRole
from app.db.schemas import (
    AdvocateAssign,
    CaseCreate,
    CaseDetailResponse,
    CaseNoteCreate,
    CaseNoteResponse,
    CaseResponse,
    CaseStatusUpdate,
)
from app.api.v1.deps import get_court_officer, get_current_user, get_dispatcher, get_litigant
from app.services import lifecycle_service
from app.services.notification_service import NotificationDispatcher
from app.utils.exceptions import UnauthorizedError

router = APIRouter()

# ============================================================================
# Read
# ============================================================================

@router.get("/", response_model=List[CaseResponse])
def list_cases(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Cases visible to the caller: litigants see their own, advocates the cases
    they are on, court officers everything.
    """
    query = db.query(Case)
    if current_user.role == UserRole.litigant:
        query = query.filter(Case.litigant_id == current_user.id)
    elif current_user.role == UserRole.advocate:
        query = query.join(CaseAdvocate, CaseAdvocate.case_id == Case.id).filter(
            CaseAdvocate.advocate_id == current_user.id
        )
    return query.order_by(Case.created_at.desc()).all()


@router.get("/{case_id}", response_model=CaseDetailResponse)
def get_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = lifecycle_service.get_case(db, case_id)
    if not lifecycle_service.is_case_participant(case, current_user):
        raise UnauthorizedError("Not authorized to view this case")
    return CaseDetailResponse.model_validate(case)


# ============================================================================
# Mutations
# ============================================================================

@router.post("/", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
def file_case(
    payload: CaseCreate,
    current_user: User = Depends(get_litigant),
    db: Session = Depends(get_db)
):
    case = lifecycle_service.file_case(
        db,
        litigant=current_user,
        title=payload.title,
        description=payload.description,
        case_type=payload.case_type,
        court=payload.court,
    )
    return CaseResponse.model_validate(case)


@router.put("/{case_id}/status", response_model=CaseResponse)
async def update_case_status(
    case_id: UUID,
    payload: CaseStatusUpdate,
    current_user: User = Depends(get_court_officer),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.change_case_status(
        db, case_id, payload.status, current_user, reason=payload.reason
    )
    await dispatcher.dispatch(result.notifications)
    return CaseResponse.model_validate(result.case)


@router.put("/{case_id}/advocates", response_model=CaseResponse)
async def assign_advocate(
    case_id: UUID,
    payload: AdvocateAssign,
    current_user: User = Depends(get_court_officer),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.assign_advocate(db, case_id, payload.advocate_id, current_user)
    await dispatcher.dispatch(result.notifications)
    return CaseResponse.model_validate(result.case)


@router.delete("/{case_id}/advocates/{advocate_id}", response_model=CaseResponse)
async def remove_advocate(
    case_id: UUID,
    advocate_id: UUID,
    current_user: User = Depends(get_court_officer),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.remove_advocate(db, case_id, advocate_id, current_user)
    await dispatcher.dispatch(result.notifications)
    return CaseResponse.model_validate(result.case)


@router.post("/{case_id}/notes", response_model=CaseNoteResponse, status_code=status.HTTP_201_CREATED)
def add_case_note(
    case_id: UUID,
    payload: CaseNoteCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    note = lifecycle_service.add_case_note(db, case_id, current_user, payload.content)
    return CaseNoteResponse.model_validate(note)


@router.delete("/{case_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    lifecycle_service.delete_case(db, case_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
