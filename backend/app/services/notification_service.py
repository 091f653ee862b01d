"""
services/notification_service.py

Notification fan-out for lifecycle changes.

Mutations in lifecycle_service never write notifications themselves; they
return NotificationDraft objects and the caller hands them to the
NotificationDispatcher. Each draft is written by its own task in its own
session, so one recipient's failed insert never blocks another recipient or
the status change that produced it. Failures are logged and dropped.

The dispatcher also owns the reminder dedup guard (ReminderDedupCache): an
in-memory, per-process map of hearing id -> last reminder time. It is built
once at startup and injected, so tests can drive it with their own clock.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.db.models import Notification, NotificationType, PaymentMethod, PaymentStatus, User
from app.utils.exceptions import NotificationNotFoundError, UnauthorizedError
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ============================================================================
# Drafts
# ============================================================================

@dataclass
class NotificationDraft:
    recipient_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    sender_id: Optional[uuid.UUID] = None
    related_case_id: Optional[uuid.UUID] = None
    related_hearing_id: Optional[uuid.UUID] = None
    related_document_id: Optional[uuid.UUID] = None
    related_case_request_id: Optional[uuid.UUID] = None
    is_action_required: bool = False
    action_url: str = ""
    payment_amount: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    payment_reference: Optional[str] = None

    def to_model(self) -> Notification:
        return Notification(**asdict(self))


def drafts_for(recipients: Iterable[Optional[uuid.UUID]], **common) -> list[NotificationDraft]:
    """One draft per distinct recipient, in order, skipping empty ids."""
    seen: set = set()
    drafts: list[NotificationDraft] = []
    for recipient_id in recipients:
        if recipient_id is None or recipient_id in seen:
            continue
        seen.add(recipient_id)
        drafts.append(NotificationDraft(recipient_id=recipient_id, **common))
    return drafts


@dataclass
class DispatchReport:
    created: list[uuid.UUID] = field(default_factory=list)
    failed: int = 0

    @property
    def attempted(self) -> int:
        return len(self.created) + self.failed


# ============================================================================
# Reminder dedup guard
# ============================================================================

class ReminderDedupCache:
    """
    Keyed last-notified timestamps with a fixed TTL window.

    Entries older than the window are treated as absent and are dropped by
    evict_expired(), which the reminder sweep calls once per pass.
    """

    def __init__(self, window: timedelta, clock: Callable[[], datetime] = utcnow):
        self.window = window
        self._clock = clock
        self._entries: dict[str, datetime] = {}

    def _now(self, now: Optional[datetime]) -> datetime:
        return now if now is not None else self._clock()

    def seen_recently(self, key, now: Optional[datetime] = None) -> bool:
        stamp = self._entries.get(str(key))
        if stamp is None:
            return False
        return self._now(now) - stamp < self.window

    def mark(self, key, now: Optional[datetime] = None) -> None:
        self._entries[str(key)] = self._now(now)

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        current = self._now(now)
        expired = [k for k, stamp in self._entries.items() if current - stamp >= self.window]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __contains__(self, key) -> bool:
        return str(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================================
# Dispatcher
# ============================================================================

class NotificationDispatcher:
    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], Session],
        dedup_cache: Optional[ReminderDedupCache] = None,
    ):
        self._session_factory = session_factory
        if dedup_cache is None:
            dedup_cache = ReminderDedupCache(window=timedelta(minutes=settings.REMINDER_DEDUP_WINDOW_MINUTES))
        self.dedup_cache = dedup_cache

    async def dispatch(self, drafts: Iterable[NotificationDraft]) -> DispatchReport:
        """
        Persist every draft independently and wait for all of them.
        Never raises because of a single failed write.
        """
        drafts = [d for d in drafts if d.recipient_id is not None]
        report = DispatchReport()
        if not drafts:
            return report

        outcomes = await asyncio.gather(
            *(self._deliver(draft) for draft in drafts),
            return_exceptions=True,
        )

        for draft, outcome in zip(drafts, outcomes):
            if isinstance(outcome, Exception):
                report.failed += 1
                logger.error(
                    "Notification write failed: type=%s recipient=%s title=%r error=%s",
                    draft.type.value, draft.recipient_id, draft.title, outcome,
                )
            else:
                report.created.append(outcome)

        if report.failed:
            logger.warning(
                "Notification fan-out: %d created, %d failed",
                len(report.created), report.failed,
            )
        return report

    async def _deliver(self, draft: NotificationDraft) -> uuid.UUID:
        db = self._session_factory()
        try:
            notification = draft.to_model()
            db.add(notification)
            db.commit()
            return notification.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ── Reminder guard ───────────────────────────────────────────────────────

    def should_remind(self, hearing_id, now: datetime) -> bool:
        return not self.dedup_cache.seen_recently(hearing_id, now)

    def mark_reminded(self, hearing_id, now: datetime) -> None:
        self.dedup_cache.mark(hearing_id, now)

    def evict_expired_reminders(self, now: datetime) -> int:
        return self.dedup_cache.evict_expired(now)


# ============================================================================
# Recipient read surface
# ============================================================================

def list_notifications(db: Session, recipient: User, unread_only: bool = False) -> list[Notification]:
    query = db.query(Notification).filter(Notification.recipient_id == recipient.id)
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712
    return query.order_by(Notification.created_at.desc()).all()


def unread_count(db: Session, recipient: User) -> int:
    return (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient.id, Notification.is_read == False)  # noqa: E712
        .count()
    )


def _owned_notification(db: Session, notification_id, recipient: User) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None:
        raise NotificationNotFoundError(notification_id)
    if notification.recipient_id != recipient.id:
        raise UnauthorizedError("Not authorized to update this notification")
    return notification


def mark_read(db: Session, notification_id, recipient: User) -> Notification:
    notification = _owned_notification(db, notification_id, recipient)
    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, recipient: User) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient.id, Notification.is_read == False)  # noqa: E712
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def delete_notification(db: Session, notification_id, recipient: User) -> None:
    notification = _owned_notification(db, notification_id, recipient)
    db.delete(notification)
    db.commit()
