"""
api/v1/endpoints/case_requests.py

Litigant -> advocate engagement requests.

Endpoints:
  POST   /api/v1/case-requests                          litigant sends a request
  GET    /api/v1/case-requests                          requests sent / received
  GET    /api/v1/case-requests/{id}                     request detail
  PUT    /api/v1/case-requests/{id}/respond             advocate accepts (fee) or rejects
  POST   /api/v1/case-requests/{id}/simulate-payment    litigant pays the requested fee
  DELETE /api/v1/case-requests/{id}                     litigant withdraws a pending/rejected request
"""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.v1.deps import get_advocate, get_current_user, get_dispatcher, get_litigant
from app.db.database import get_db
from app.db.models import CaseRequest, User, UserRole
from app.db.schemas import (
    CaseRequestCreate,
    CaseRequestRespond,
    CaseRequestResponse,
    CaseResponse,
    PaymentResponse,
    PaymentResult,
)
from app.services import lifecycle_service
from app.services.notification_service import NotificationDispatcher
from app.utils.exceptions import UnauthorizedError
from app.utils.helpers import format_amount

router = APIRouter()


@router.post("/", response_model=CaseRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_case_request(
    payload: CaseRequestCreate,
    current_user: User = Depends(get_litigant),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.create_case_request(
        db,
        litigant=current_user,
        advocate_id=payload.advocate_id,
        case_id=payload.case_id,
        case_title=payload.case_title,
        case_description=payload.case_description,
        case_type=payload.case_type,
        court=payload.court,
        message=payload.message,
    )
    await dispatcher.dispatch(result.notifications)
    return CaseRequestResponse.model_validate(result.case_request)


@router.get("/", response_model=List[CaseRequestResponse])
def list_case_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(CaseRequest)
    if current_user.role == UserRole.litigant:
        query = query.filter(CaseRequest.litigant_id == current_user.id)
    elif current_user.role == UserRole.advocate:
        query = query.filter(CaseRequest.advocate_id == current_user.id)
    return query.order_by(CaseRequest.created_at.desc()).all()


@router.get("/{request_id}", response_model=CaseRequestResponse)
def get_case_request(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    request = lifecycle_service.get_case_request(db, request_id)
    if current_user.role != UserRole.court_officer and current_user.id not in (
        request.litigant_id,
        request.advocate_id,
    ):
        raise UnauthorizedError("Not authorized to view this case request")
    return CaseRequestResponse.model_validate(request)


@router.put("/{request_id}/respond", response_model=CaseRequestResponse)
async def respond_to_case_request(
    request_id: UUID,
    payload: CaseRequestRespond,
    current_user: User = Depends(get_advocate),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.respond_to_case_request(
        db,
        request_id,
        current_user,
        payload.status,
        response_message=payload.response_message,
        payment_amount=payload.payment_amount,
    )
    await dispatcher.dispatch(result.notifications)
    return CaseRequestResponse.model_validate(result.case_request)


@router.post("/{request_id}/simulate-payment", response_model=PaymentResult)
async def simulate_payment(
    request_id: UUID,
    current_user: User = Depends(get_litigant),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = lifecycle_service.simulate_payment(db, request_id, current_user)
    await dispatcher.dispatch(result.notifications)
    return PaymentResult(
        message=f"Payment of {format_amount(result.payment.amount)} completed",
        payment=PaymentResponse.model_validate(result.payment),
        case_request=CaseRequestResponse.model_validate(result.case_request),
        case=CaseResponse.model_validate(result.case) if result.case is not None else None,
    )


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_case_request(
    request_id: UUID,
    current_user: User = Depends(get_litigant),
    db: Session = Depends(get_db),
):
    lifecycle_service.delete_case_request(db, request_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
