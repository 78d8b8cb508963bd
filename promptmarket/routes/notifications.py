from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.errors import NotFound
from promptmarket.models.notifications import Notification
from promptmarket.models.user import User
from promptmarket.services import notification_service
from promptmarket.utils.token import get_current_user

router = APIRouter()


@router.get("")
def my_notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return notification_service.list_user_notifications(
        session, current_user.id, page=page, limit=limit, unread_only=unread_only
    )


@router.post("/read-all")
def mark_all_read(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return {"updated": notification_service.mark_all_read(session, current_user.id)}


@router.post("/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    notification = session.get(Notification, notification_id)
    if not notification or notification.user_id != current_user.id:
        raise NotFound("Notification not found")
    return notification_service.mark_read(session, notification)
