"""
Pydantic validation schemas
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from app.db.models import (
    AdvocateEngagementStatus,
    AttendeeRole,
    AttendeeStatus,
    CaseRequestStatus,
    CaseStatus,
    CaseType,
    CourtLevel,
    HearingStatus,
    HearingType,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from app.utils.helpers import as_naive_utc


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_naive_utc(value) if value is not None else None


# ============================================================================
# User Schemas
# ============================================================================

class UserSummary(BaseModel):
    id: UUID
    name: str
    email: str
    role: UserRole

    class Config:
        from_attributes = True


# ============================================================================
# Case Schemas
# ============================================================================

class CaseCreate(BaseModel):
    title: str = Field(..., min_length=5, max_length=100)
    description: str = Field(..., min_length=10)
    case_type: CaseType
    court: CourtLevel


class CaseStatusUpdate(BaseModel):
    # Plain string: unknown statuses are rejected by the transition validator
    status: str
    reason: Optional[str] = None


class AdvocateAssign(BaseModel):
    advocate_id: UUID


class CaseNoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class CaseAdvocateResponse(BaseModel):
    advocate_id: UUID
    status: AdvocateEngagementStatus
    added_at: datetime

    class Config:
        from_attributes = True


class CaseNoteResponse(BaseModel):
    id: UUID
    case_id: UUID
    author_id: Optional[UUID]
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class CaseResponse(BaseModel):
    id: UUID
    case_number: Optional[str]
    title: str
    description: str
    case_type: CaseType
    court: CourtLevel
    status: CaseStatus
    litigant_id: UUID
    filing_date: datetime
    next_hearing_date: Optional[datetime] = None

    payment_amount: Optional[float] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = None
    payment_date: Optional[datetime] = None

    close_reason: Optional[str] = None
    closed_at: Optional[datetime] = None
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None

    advocate_links: List[CaseAdvocateResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Hearing Schemas
# ============================================================================

class HearingCreate(BaseModel):
    case_id: UUID
    date: datetime
    duration: Optional[int] = None
    hearing_type: HearingType
    court_room: Optional[str] = None
    address: Optional[str] = None
    virtual_link: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)


class HearingUpdate(BaseModel):
    date: Optional[datetime] = None
    duration: Optional[int] = None
    hearing_type: Optional[HearingType] = None
    court_room: Optional[str] = None
    address: Optional[str] = None
    virtual_link: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)


class HearingStatusUpdate(BaseModel):
    status: str
    new_date: Optional[datetime] = None
    outcome: Optional[str] = None

    @field_validator("new_date")
    @classmethod
    def normalize_new_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)


class HearingAttendeeResponse(BaseModel):
    user_id: UUID
    role: AttendeeRole
    status: AttendeeStatus

    class Config:
        from_attributes = True


class HearingResponse(BaseModel):
    id: UUID
    case_id: UUID
    date: datetime
    duration: int
    end_time: Optional[datetime]
    hearing_type: HearingType
    court_room: Optional[str] = None
    address: Optional[str] = None
    virtual_link: Optional[str] = None
    status: HearingStatus
    notes: str = ""
    outcome: str = ""
    next_steps: str = ""
    created_by: Optional[UUID] = None
    attendees: List[HearingAttendeeResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CaseDetailResponse(CaseResponse):
    hearings: List[HearingResponse] = []
    notes: List[CaseNoteResponse] = []


# ============================================================================
# Case Request Schemas
# ============================================================================

class CaseRequestCreate(BaseModel):
    advocate_id: UUID
    case_id: Optional[UUID] = None
    case_title: Optional[str] = Field(None, min_length=5, max_length=100)
    case_description: Optional[str] = None
    case_type: Optional[CaseType] = None
    court: Optional[CourtLevel] = None
    message: Optional[str] = None


class CaseRequestRespond(BaseModel):
    status: str
    response_message: Optional[str] = None
    payment_amount: Optional[float] = None


class CaseRequestResponse(BaseModel):
    id: UUID
    litigant_id: UUID
    advocate_id: UUID
    case_id: Optional[UUID] = None
    case_title: str
    case_description: str
    case_type: CaseType
    court: CourtLevel
    status: CaseRequestStatus
    message: Optional[str] = None
    response_message: Optional[str] = None
    payment_amount: Optional[float] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = None
    payment_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Payment Schemas
# ============================================================================

class PaymentCreate(BaseModel):
    notification_id: UUID


class PaymentResponse(BaseModel):
    id: UUID
    payer_id: Optional[UUID]
    case_id: Optional[UUID]
    case_request_id: Optional[UUID]
    amount: float
    method: PaymentMethod
    reference: str
    status: PaymentStatus
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    success: bool = True
    message: str
    payment: PaymentResponse
    case_request: CaseRequestResponse
    case: Optional[CaseResponse] = None


# ============================================================================
# Notification Schemas
# ============================================================================

class NotificationResponse(BaseModel):
    id: UUID
    recipient_id: UUID
    sender_id: Optional[UUID] = None
    type: NotificationType
    title: str
    message: str
    related_case_id: Optional[UUID] = None
    related_hearing_id: Optional[UUID] = None
    related_document_id: Optional[UUID] = None
    related_case_request_id: Optional[UUID] = None
    is_read: bool
    is_action_required: bool
    action_url: str = ""
    payment_amount: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    payment_reference: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int
