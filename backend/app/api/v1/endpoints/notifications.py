"""
Notification endpoints (recipient-scoped polling surface)
"""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from app.api.v1.deps import get_current_user
from app.db.database import get_db
from app.db.models import User
from app.db.schemas import MarkAllReadResponse, NotificationResponse, UnreadCountResponse
from app.services import notification_service

router = APIRouter()


@router.get("/", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False, description="Only unread notifications"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return notification_service.list_notifications(db, current_user, unread_only=unread_only)


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return UnreadCountResponse(count=notification_service.unread_count(db, current_user))


@router.put("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return MarkAllReadResponse(updated=notification_service.mark_all_read(db, current_user))


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification = notification_service.mark_read(db, notification_id, current_user)
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification_service.delete_notification(db, notification_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
