"""
api/v1/endpoints/hearings.py

Hearing scheduling and status endpoints (court officers).

Endpoints:
  POST   /api/v1/hearings                 schedule a hearing for an approved case
  GET    /api/v1/hearings/{id}            hearing detail (case participants)
  PUT    /api/v1/hearings/{id}            edit details / reschedule
  PUT    /api/v1/hearings/{id}/status     validated status change with case cascade
  DELETE /api/v1/hearings/{id}            remove a completed or cancelled hearing
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.v1.deps import get_court_officer, get_current_user, get_dispatcher
from app.db.database import get_db
from app.db.models import User
from app.db.schemas import HearingCreate, HearingResponse, HearingStatusUpdate, HearingUpdate
from app.services import lifecycle_service
from app.services.notification_service import NotificationDispatcher
from app.utils.exceptions import UnauthorizedError

router = APIRouter()


@router.post("/", response_model=HearingResponse, status_code=status.HTTP_201_CREATED)
async def schedule_hearing(
    payload: HearingCreate,
    current_user: User = Depends(get_court_officer),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.schedule_hearing(
        db,
        case_id=payload.case_id,
        officer=current_user,
        date=payload.date,
        hearing_type=payload.hearing_type,
        duration=payload.duration,
        court_room=payload.court_room,
        address=payload.address,
        virtual_link=payload.virtual_link,
        notes=payload.notes,
    )
    await dispatcher.dispatch(result.notifications)
    return HearingResponse.model_validate(result.hearing)


@router.get("/{hearing_id}", response_model=HearingResponse)
def get_hearing(
    hearing_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    hearing = lifecycle_service.get_hearing(db, hearing_id)
    if not lifecycle_service.is_case_participant(hearing.case, current_user):
        raise UnauthorizedError("Not authorized to view this hearing")
    return HearingResponse.model_validate(hearing)


@router.put("/{hearing_id}", response_model=HearingResponse)
async def update_hearing(
    hearing_id: UUID,
    payload: HearingUpdate,
    current_user: User = Depends(get_court_officer),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.update_hearing(
        db,
        hearing_id,
        current_user,
        **payload.model_dump(exclude_unset=True),
    )
    await dispatcher.dispatch(result.notifications)
    return HearingResponse.model_validate(result.hearing)


@router.put("/{hearing_id}/status", response_model=HearingResponse)
async def update_hearing_status(
    hearing_id: UUID,
    payload: HearingStatusUpdate,
    current_user: User = Depends(get_court_officer),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.change_hearing_status(
        db,
        hearing_id,
        payload.status,
        current_user,
        new_date=payload.new_date,
        outcome=payload.outcome,
    )
    await dispatcher.dispatch(result.notifications)
    return HearingResponse.model_validate(result.hearing)


@router.delete("/{hearing_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_hearing(
    hearing_id: UUID,
    current_user: User = Depends(get_court_officer),
    db: Session = Depends(get_db),
):
    lifecycle_service.delete_hearing(db, hearing_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
