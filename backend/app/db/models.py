"""
SQLAlchemy ORM Models
"""

from __future__ import annotations

import enum
import uuid
from datetime import timedelta

from sqlalchemy import (
    Boolean,
    Column,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import relationship, validates

from app.db.database import Base
from app.utils.helpers import utcnow

# ============================================================================
# Enums
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles"""
    litigant = "litigant"
    advocate = "advocate"
    court_officer = "court-officer"


class CaseStatus(str, enum.Enum):
    """Case lifecycle status"""
    pending_approval = "pending-approval"
    payment_requested = "payment-requested"
    approved = "approved"
    rejected = "rejected"
    scheduled_hearing = "scheduled-hearing"
    in_progress = "in-progress"
    waiting_decision = "waiting-decision"
    resolved = "resolved"
    closed = "closed"


class CaseType(str, enum.Enum):
    civil = "civil"
    criminal = "criminal"
    family = "family"
    property = "property"
    corporate = "corporate"
    tax = "tax"
    labor = "labor"
    consumer = "consumer"
    other = "other"


class CourtLevel(str, enum.Enum):
    district = "district"
    high = "high"
    supreme = "supreme"
    consumer = "consumer"
    family = "family"
    other = "other"


class AdvocateEngagementStatus(str, enum.Enum):
    """Per-advocate sub-status inside a case's advocate list"""
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class HearingStatus(str, enum.Enum):
    """Hearing lifecycle status"""
    scheduled = "scheduled"
    in_progress = "in-progress"
    waiting_decision = "waiting-decision"
    completed = "completed"
    adjourned = "adjourned"
    cancelled = "cancelled"


class HearingType(str, enum.Enum):
    physical = "physical"
    virtual = "virtual"


class AttendeeRole(str, enum.Enum):
    judge = "judge"
    litigant = "litigant"
    advocate = "advocate"
    witness = "witness"
    other = "other"


class AttendeeStatus(str, enum.Enum):
    invited = "invited"
    confirmed = "confirmed"
    attended = "attended"
    absent = "absent"


class CaseRequestStatus(str, enum.Enum):
    """Litigant -> advocate engagement request status"""
    pending = "pending"
    payment_requested = "payment-requested"
    accepted = "accepted"
    rejected = "rejected"
    in_progress = "in-progress"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class PaymentMethod(str, enum.Enum):
    bank_transfer = "bank-transfer"
    upi = "upi"
    other = "other"
    simulated = "simulated"


class NotificationType(str, enum.Enum):
    case_update = "case-update"
    case_assignment = "case-assignment"
    payment = "payment"
    payment_completed = "payment-completed"
    hearing = "hearing"
    hearing_scheduled = "hearing-scheduled"
    hearing_reminder = "hearing-reminder"
    hearing_update = "hearing-update"
    case_request = "case-request"
    case_request_response = "case-request-response"
    document = "document"
    system = "system"
    other = "other"


def _enum(enum_cls: type[enum.Enum], name: str) -> SQLEnum:
    """Persist enum *values* ("in-progress"), not member names."""
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Portal user: litigant, advocate or court officer"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(_enum(UserRole, "user_role"), nullable=False, default=UserRole.litigant)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)


class Case(Base):
    """A litigant's legal matter"""
    __tablename__ = "cases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_number = Column(String(32), unique=True, nullable=True, index=True)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    case_type = Column(_enum(CaseType, "case_type"), nullable=False)
    court = Column(_enum(CourtLevel, "court_level"), nullable=False)

    status = Column(
        _enum(CaseStatus, "case_status"),
        nullable=False,
        default=CaseStatus.pending_approval,
        index=True,
    )

    # Parties
    litigant_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_judge_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Dates
    filing_date = Column(TIMESTAMP, nullable=False, default=utcnow)
    next_hearing_date = Column(TIMESTAMP, nullable=True)

    # Payment
    payment_amount = Column(Float, nullable=True)
    payment_status = Column(_enum(PaymentStatus, "case_payment_status"), nullable=True)
    payment_method = Column(_enum(PaymentMethod, "case_payment_method"), nullable=True)
    payment_reference = Column(String(64), nullable=True)
    payment_date = Column(TIMESTAMP, nullable=True)

    # Closure / resolution
    close_reason = Column(Text, nullable=True)
    closed_at = Column(TIMESTAMP, nullable=True)
    resolution = Column(Text, nullable=True)
    resolved_at = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    litigant = relationship("User", foreign_keys=[litigant_id])
    assigned_judge = relationship("User", foreign_keys=[assigned_judge_id])
    advocate_links = relationship(
        "CaseAdvocate",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseAdvocate.added_at",
    )
    hearings = relationship(
        "Hearing",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="Hearing.date",
    )
    documents = relationship("Document", back_populates="case", cascade="all, delete-orphan")
    notes = relationship(
        "CaseNote",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseNote.created_at",
    )

    @validates("case_number")
    def _freeze_case_number(self, key, value):
        current = self.case_number
        if current and value != current:
            raise ValueError(f"Case number {current} is immutable")
        return value

    @property
    def active_advocate_ids(self) -> list[uuid.UUID]:
        """Advocates currently representing the case, in the order they joined."""
        return [
            link.advocate_id
            for link in self.advocate_links
            if link.status != AdvocateEngagementStatus.rejected
        ]

    @property
    def has_attachments(self) -> bool:
        return bool(self.hearings) or bool(self.documents)

    def find_advocate_link(self, advocate_id) -> "CaseAdvocate | None":
        for link in self.advocate_links:
            if link.advocate_id == advocate_id:
                return link
        return None


class CaseAdvocate(Base):
    """
    Ordered advocate set of a case, with the advocate's engagement sub-status.
    """
    __tablename__ = "case_advocates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    advocate_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        _enum(AdvocateEngagementStatus, "advocate_engagement_status"),
        nullable=False,
        default=AdvocateEngagementStatus.pending,
    )
    added_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("case_id", "advocate_id", name="uq_case_advocates_case_advocate"),
    )

    case = relationship("Case", back_populates="advocate_links")
    advocate = relationship("User")


class CaseNote(Base):
    """Free-text note on a case, owned by its author"""
    __tablename__ = "case_notes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    case = relationship("Case", back_populates="notes")
    author = relationship("User")


class Document(Base):
    """Reference to a stored case document (storage itself lives elsewhere)"""
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    hearing_id = Column(Uuid, ForeignKey("hearings.id", ondelete="SET NULL"), nullable=True)
    uploaded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    file_url = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    case = relationship("Case", back_populates="documents")


class Hearing(Base):
    """A single scheduled sitting for a case"""
    __tablename__ = "hearings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)

    date = Column(TIMESTAMP, nullable=False, index=True)
    duration = Column(Integer, nullable=False, default=60)  # minutes
    end_time = Column(TIMESTAMP, nullable=True, index=True)

    hearing_type = Column(_enum(HearingType, "hearing_type"), nullable=False)
    court_room = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    virtual_link = Column(Text, nullable=True)

    status = Column(
        _enum(HearingStatus, "hearing_status"),
        nullable=False,
        default=HearingStatus.scheduled,
        index=True,
    )
    notes = Column(Text, nullable=False, default="")
    outcome = Column(Text, nullable=False, default="")
    next_steps = Column(Text, nullable=False, default="")

    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_hearings_status_date", "status", "date"),
    )

    case = relationship("Case", back_populates="hearings")
    attendees = relationship("HearingAttendee", back_populates="hearing", cascade="all, delete-orphan")

    @validates("duration")
    def _check_duration(self, key, value):
        from app.core.config import settings

        low, high = settings.hearing_duration_bounds
        if value is None:
            return value
        if not (low <= int(value) <= high):
            raise ValueError(f"Hearing duration must be between {low} and {high} minutes")
        return int(value)

    @property
    def ends_at(self):
        """End of the sitting derived from the current date/duration."""
        if self.date is None:
            return None
        return self.date + timedelta(minutes=self.duration or 60)

    def window_contains(self, moment) -> bool:
        return self.date <= moment < self.ends_at


@event.listens_for(Hearing, "before_insert")
@event.listens_for(Hearing, "before_update")
def _recompute_hearing_end_time(mapper, connection, target: Hearing) -> None:
    if target.duration is None:
        target.duration = 60
    target.end_time = target.ends_at


class HearingAttendee(Base):
    """Participant of a hearing with their confirmation status"""
    __tablename__ = "hearing_attendees"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    hearing_id = Column(Uuid, ForeignKey("hearings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(_enum(AttendeeRole, "attendee_role"), nullable=False)
    status = Column(_enum(AttendeeStatus, "attendee_status"), nullable=False, default=AttendeeStatus.invited)

    hearing = relationship("Hearing", back_populates="attendees")


class CaseRequest(Base):
    """A litigant's proposal that an advocate represent them"""
    __tablename__ = "case_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    litigant_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    advocate_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True, index=True)

    case_title = Column(String(100), nullable=False)
    case_description = Column(Text, nullable=False)
    case_type = Column(_enum(CaseType, "request_case_type"), nullable=False)
    court = Column(_enum(CourtLevel, "request_court_level"), nullable=False)

    status = Column(
        _enum(CaseRequestStatus, "case_request_status"),
        nullable=False,
        default=CaseRequestStatus.pending,
        index=True,
    )
    message = Column(Text, nullable=True)
    response_message = Column(Text, nullable=True)

    payment_amount = Column(Float, nullable=True)
    payment_status = Column(_enum(PaymentStatus, "request_payment_status"), nullable=True)
    payment_method = Column(_enum(PaymentMethod, "request_payment_method"), nullable=True)
    payment_reference = Column(String(64), nullable=True)
    payment_date = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    litigant = relationship("User", foreign_keys=[litigant_id])
    advocate = relationship("User", foreign_keys=[advocate_id])
    case = relationship("Case")


class Payment(Base):
    """Completed payment for an advocate engagement"""
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payer_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    case_request_id = Column(Uuid, ForeignKey("case_requests.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Float, nullable=False)
    method = Column(_enum(PaymentMethod, "payment_method"), nullable=False)
    reference = Column(String(64), unique=True, nullable=False)
    status = Column(_enum(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.completed)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)


class Notification(Base):
    """Recipient-scoped, read-once event record"""
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    type = Column(_enum(NotificationType, "notification_type"), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    related_case_id = Column(Uuid, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    related_hearing_id = Column(Uuid, ForeignKey("hearings.id", ondelete="SET NULL"), nullable=True, index=True)
    related_document_id = Column(Uuid, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    related_case_request_id = Column(Uuid, ForeignKey("case_requests.id", ondelete="SET NULL"), nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    is_action_required = Column(Boolean, nullable=False, default=False)
    action_url = Column(Text, nullable=False, default="")

    # Payment sub-record
    payment_amount = Column(Float, nullable=True)
    payment_method = Column(_enum(PaymentMethod, "notification_payment_method"), nullable=True)
    payment_status = Column(_enum(PaymentStatus, "notification_payment_status"), nullable=True)
    payment_reference = Column(String(64), nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
    )
