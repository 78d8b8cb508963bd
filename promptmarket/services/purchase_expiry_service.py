import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from promptmarket.config import settings
from promptmarket.models.purchase import Purchase, PurchaseStatus
from promptmarket.services.purchase_event_service import log_purchase_event

logger = logging.getLogger(__name__)


def expire_stale_purchases(session: Session, older_than_days: Optional[int] = None) -> int:
    """
    Move pending purchases older than the cutoff to ``expired``.

    Each row goes through the same conditional update as every other
    transition, so a payment that lands mid-sweep wins and is left alone.
    """
    days = settings.PENDING_PURCHASE_EXPIRY_DAYS if older_than_days is None else older_than_days
    cutoff = datetime.utcnow() - timedelta(days=days)

    stale_ids = session.exec(
        select(Purchase.id)
        .where(Purchase.status == PurchaseStatus.pending)
        .where(Purchase.created_at < cutoff)
    ).all()

    expired = 0
    for purchase_id in stale_ids:
        result = session.exec(
            update(Purchase)
            .where(Purchase.id == purchase_id, Purchase.status == PurchaseStatus.pending)
            .values(status=PurchaseStatus.expired, updated_at=datetime.utcnow())
        )
        if result.rowcount != 1:
            continue

        log_purchase_event(
            session,
            purchase_id,
            "expired",
            "Purchase expired unpaid",
            created_by="expiry_job",
            meta={"older_than_days": days},
        )
        expired += 1

    session.commit()

    logger.info(f"Expired {expired} unpaid purchases older than {days} days")
    return expired
