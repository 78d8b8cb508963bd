from datetime import datetime
from typing import Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from promptmarket.models.notifications import Notification, RecipientRole, RelatedObject
from promptmarket.utils.pagination import paginate


def create_notification(
    *,
    session: Session,
    recipient_role: RecipientRole,
    user_id: Optional[int],
    trigger_source: str,
    related_id: int,
    title: str,
    content: str,
    related_type: RelatedObject = RelatedObject.purchase,
) -> Notification:
    """Stage an in-app notification. The caller owns the commit."""
    notification = Notification(
        recipient_role=recipient_role,
        user_id=user_id,
        trigger_source=trigger_source,
        related_type=related_type,
        related_id=related_id,
        title=title,
        content=content,
    )
    session.add(notification)
    session.flush()
    return notification


def _feed_query(user_id: Optional[int], role: Optional[RecipientRole] = None):
    if user_id is None:
        return select(Notification).where(
            Notification.user_id.is_(None),
            Notification.recipient_role == (role or RecipientRole.admin),
        )
    return select(Notification).where(Notification.user_id == user_id)


def list_user_notifications(
    session: Session,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
):
    query = _feed_query(user_id)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())

    result = paginate(session=session, query=query, page=page, limit=limit)
    result["unread"] = unread_count(session, user_id)
    return result


def list_admin_notifications(session: Session, page: int = 1, limit: int = 20):
    query = _feed_query(None).order_by(Notification.created_at.desc(), Notification.id.desc())
    return paginate(session=session, query=query, page=page, limit=limit)


def unread_count(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    ).one()


def mark_read(session: Session, notification: Notification) -> Notification:
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification


def mark_all_read(session: Session, user_id: int) -> int:
    result = session.exec(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True, read_at=datetime.utcnow())
    )
    session.commit()
    return result.rowcount
