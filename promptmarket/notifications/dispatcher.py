import logging
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from promptmarket.models.notifications import RecipientRole
from promptmarket.models.user import User
from promptmarket.notifications.email_handlers import send_user_email, send_admin_email
from promptmarket.notifications.events import MarketplaceEvent
from promptmarket.notifications.rules import Channel, enabled
from promptmarket.services.notification_service import create_notification

logger = logging.getLogger(__name__)


def _safe_send(send, event: MarketplaceEvent, *args, **kwargs):
    try:
        send(*args, **kwargs)
    except Exception:
        # mail is best effort, a broken template or SMTP outage must not surface
        logger.exception(f"Email for {event.value} failed")


def _schedule(background_tasks: Optional[BackgroundTasks], send, event, *args, **kwargs):
    if background_tasks is not None:
        background_tasks.add_task(_safe_send, send, event, *args, **kwargs)
    else:
        _safe_send(send, event, *args, **kwargs)


def dispatch_event(
    *,
    event: MarketplaceEvent,
    session: Session,
    related_id: int,
    user: Optional[User] = None,
    recipient_role: RecipientRole = RecipientRole.buyer,
    extra: Optional[dict] = None,
    background_tasks: Optional[BackgroundTasks] = None,
    notify_user: bool = True,
    notify_admin: bool = True,
):
    """
    Central notification dispatcher.

    Handles:
    - user in-app notifications
    - admin in-app notifications
    - user email
    - admin email

    Called after the triggering change is committed. Failures are logged
    and never raised back to the caller.
    """

    extra = extra or {}

    # -------------------------
    # IN-APP NOTIFICATIONS
    # -------------------------
    try:
        if notify_user and user and enabled(event, Channel.INAPP_USER):
            create_notification(
                session=session,
                recipient_role=recipient_role,
                user_id=user.id,
                trigger_source=event.value,
                related_type=event.related_type,
                related_id=related_id,
                title=extra.get("user_title", "Update"),
                content=extra.get("user_content", ""),
            )

        if notify_admin and enabled(event, Channel.INAPP_ADMIN):
            create_notification(
                session=session,
                recipient_role=RecipientRole.admin,
                user_id=None,
                trigger_source=event.value,
                related_type=event.related_type,
                related_id=related_id,
                title=extra.get("admin_title", "Marketplace Update"),
                content=extra.get("admin_content", ""),
            )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Could not store notifications for {event.value} ({related_id})")

    # -------------------------
    # USER EMAIL
    # -------------------------
    if notify_user and user and enabled(event, Channel.EMAIL_USER) and "user_template" in extra:
        _schedule(
            background_tasks,
            send_user_email,
            event,
            template=extra["user_template"],
            subject=extra["user_subject"],
            email=user.email,
            name=user.name,
            **extra.get("context", {}),
        )

    # -------------------------
    # ADMIN EMAIL
    # -------------------------
    if notify_admin and enabled(event, Channel.EMAIL_ADMIN) and "admin_template" in extra:
        _schedule(
            background_tasks,
            send_admin_email,
            event,
            template=extra["admin_template"],
            subject=extra["admin_subject"],
            **extra.get("context", {}),
        )
