"""
Payment endpoint: a litigant pays from their payment notification
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.deps import get_dispatcher, get_litigant
from app.db.database import get_db
from app.db.models import User
from app.db.schemas import CaseRequestResponse, CaseResponse, PaymentCreate, PaymentResponse, PaymentResult
from app.services import lifecycle_service
from app.services.notification_service import NotificationDispatcher
from app.utils.helpers import format_amount

router = APIRouter()


@router.post("/", response_model=PaymentResult)
async def complete_payment(
    payload: PaymentCreate,
    current_user: User = Depends(get_litigant),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Settles the fee behind a `payment` notification. The notification itself
    is rewritten to `payment-completed`; only the advocate gets a new one.
    """
    result = lifecycle_service.complete_payment(db, payload.notification_id, current_user)
    await dispatcher.dispatch(result.notifications)
    return PaymentResult(
        message=f"Payment of {format_amount(result.payment.amount)} completed",
        payment=PaymentResponse.model_validate(result.payment),
        case_request=CaseRequestResponse.model_validate(result.case_request),
        case=CaseResponse.model_validate(result.case) if result.case is not None else None,
    )
