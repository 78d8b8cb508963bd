"""
Seller payouts.

Completed sales are batched into a ``Payout`` by stamping their
``payout_id``. A sale belongs to at most one payout, so the unpaid
balance is simply the completed sales with no payout yet. Scheduled
payouts are paid once ``scheduled_for`` has passed.
"""

import logging
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from promptmarket.config import settings
from promptmarket.models.payout import Payout, PayoutStatus
from promptmarket.models.prompt import Prompt
from promptmarket.models.purchase import Purchase, PurchaseStatus
from promptmarket.services.profile_service import get_or_create_profile
from promptmarket.utils.pagination import paginate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def _unpaid_sales(seller_id: int):
    return (
        select(Purchase.id)
        .join(Prompt, Prompt.id == Purchase.prompt_id)
        .where(
            Prompt.seller_id == seller_id,
            Purchase.status == PurchaseStatus.completed,
            Purchase.payout_id.is_(None),
        )
    )


def pending_earnings(session: Session, seller_id: int) -> Decimal:
    """Seller earnings from completed sales not yet in any payout."""
    total = session.exec(
        select(func.coalesce(func.sum(Purchase.seller_earnings), 0))
        .join(Prompt, Prompt.id == Purchase.prompt_id)
        .where(
            Prompt.seller_id == seller_id,
            Purchase.status == PurchaseStatus.completed,
            Purchase.payout_id.is_(None),
        )
    ).one()
    return _money(total)


def earnings_summary(session: Session, seller_id: int) -> dict:
    gross, earnings = session.exec(
        select(
            func.coalesce(func.sum(Purchase.price), 0),
            func.coalesce(func.sum(Purchase.seller_earnings), 0),
        )
        .join(Prompt, Prompt.id == Purchase.prompt_id)
        .where(
            Prompt.seller_id == seller_id,
            Purchase.status == PurchaseStatus.completed,
        )
    ).one()

    def payout_total(status: PayoutStatus) -> Decimal:
        return _money(session.exec(
            select(func.coalesce(func.sum(Payout.amount), 0)).where(
                Payout.seller_id == seller_id,
                Payout.status == status,
            )
        ).one())

    return {
        "total_revenue": _money(gross),
        "total_earnings": _money(earnings),
        "paid_out": payout_total(PayoutStatus.processed),
        "scheduled": payout_total(PayoutStatus.pending),
        "unpaid": pending_earnings(session, seller_id),
        "minimum_payout": settings.PAYOUT_MINIMUM_AMOUNT,
    }


def create_payout(
    session: Session,
    seller_id: int,
    scheduled_for: Optional[datetime] = None,
) -> Optional[Payout]:
    """
    Batch the seller's unpaid sales into one pending payout.

    Returns None when the unpaid balance is under the minimum.
    """
    if scheduled_for is None:
        scheduled_for = datetime.utcnow() + timedelta(days=settings.PAYOUT_SCHEDULE_DAYS)

    sale_ids = session.exec(_unpaid_sales(seller_id)).all()
    if not sale_ids:
        return None

    payout = Payout(
        seller_id=seller_id,
        currency=settings.CURRENCY,
        scheduled_for=scheduled_for,
    )
    session.add(payout)
    session.flush()

    # only rows still unclaimed join, a concurrent run keeps its own
    session.exec(
        update(Purchase)
        .where(
            Purchase.id.in_(sale_ids),
            Purchase.status == PurchaseStatus.completed,
            Purchase.payout_id.is_(None),
        )
        .values(payout_id=payout.id)
    )
    amount = _money(session.exec(
        select(func.coalesce(func.sum(Purchase.seller_earnings), 0)).where(
            Purchase.payout_id == payout.id
        )
    ).one())

    if amount < settings.PAYOUT_MINIMUM_AMOUNT:
        session.rollback()
        logger.info(
            f"Seller {seller_id} has {amount} unpaid, below the "
            f"{settings.PAYOUT_MINIMUM_AMOUNT} payout minimum"
        )
        return None

    payout.amount = amount
    session.add(payout)
    session.commit()
    session.refresh(payout)

    logger.info(
        f"Payout {payout.uuid} of {amount} scheduled for seller {seller_id} "
        f"on {scheduled_for:%Y-%m-%d}"
    )
    return payout


def schedule_payouts(session: Session, scheduled_for: Optional[datetime] = None) -> int:
    """One pending payout per seller whose unpaid balance reaches the minimum."""
    seller_ids = session.exec(
        select(Prompt.seller_id)
        .join(Purchase, Purchase.prompt_id == Prompt.id)
        .where(
            Purchase.status == PurchaseStatus.completed,
            Purchase.payout_id.is_(None),
        )
        .distinct()
    ).all()

    created = 0
    for seller_id in seller_ids:
        if create_payout(session, seller_id, scheduled_for) is not None:
            created += 1

    logger.info(f"Scheduled {created} payouts")
    return created


def _fail(session: Session, payout: Payout, error: str) -> bool:
    result = session.exec(
        update(Payout)
        .where(Payout.id == payout.id, Payout.status == PayoutStatus.pending)
        .values(
            status=PayoutStatus.failed,
            meta={**(payout.meta or {}), "error": error, "failed_at": datetime.utcnow().isoformat()},
            updated_at=datetime.utcnow(),
        )
    )
    if result.rowcount == 1:
        # hand the sales back so the next run can pay them
        session.exec(
            update(Purchase)
            .where(Purchase.payout_id == payout.id)
            .values(payout_id=None)
        )
    session.commit()
    session.refresh(payout)

    logger.error(f"Payout {payout.uuid} for seller {payout.seller_id} failed: {error}")
    return False


def process_payout(session: Session, payout: Payout) -> bool:
    """pending -> processed, or failed with the sales released."""
    if not payout.is_pending:
        return False

    # sales refunded or disputed since scheduling no longer count
    amount = _money(session.exec(
        select(func.coalesce(func.sum(Purchase.seller_earnings), 0)).where(
            Purchase.payout_id == payout.id,
            Purchase.status == PurchaseStatus.completed,
        )
    ).one())
    if amount <= 0:
        return _fail(session, payout, "Nothing left to pay")

    profile = get_or_create_profile(session, payout.seller_id)
    if not profile.payout_method:
        return _fail(session, payout, "No payout method on file")

    now = datetime.utcnow()
    transaction_id = f"PO-{int(time.time())}-{payout.id}"
    result = session.exec(
        update(Payout)
        .where(Payout.id == payout.id, Payout.status == PayoutStatus.pending)
        .values(
            status=PayoutStatus.processed,
            amount=amount,
            transaction_id=transaction_id,
            processed_at=now,
            updated_at=now,
            meta={
                **(payout.meta or {}),
                "processed_by": "system",
                "payout_method": profile.payout_method,
            },
        )
    )
    if result.rowcount != 1:
        session.rollback()
        session.refresh(payout)
        logger.info(f"Payout {payout.uuid} already {payout.status.value}")
        return False

    session.commit()
    session.refresh(payout)

    logger.info(
        f"Payout {payout.uuid} processed: seller {payout.seller_id}, "
        f"{amount} via {profile.payout_method} ({transaction_id})"
    )
    return True


def process_scheduled_payouts(session: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    due = session.exec(
        select(Payout)
        .where(Payout.status == PayoutStatus.pending, Payout.scheduled_for <= now)
        .order_by(Payout.scheduled_for, Payout.id)
    ).all()

    processed = 0
    for payout in due:
        if process_payout(session, payout):
            processed += 1

    logger.info(f"Processed {processed} of {len(due)} due payouts")
    return processed


def payout_history(session: Session, seller_id: int, page: int = 1, limit: int = 15):
    query = (
        select(Payout)
        .where(Payout.seller_id == seller_id)
        .order_by(Payout.created_at.desc(), Payout.id.desc())
    )
    return paginate(session=session, query=query, page=page, limit=limit)


def list_payouts(
    session: Session,
    status: Optional[PayoutStatus] = None,
    page: int = 1,
    limit: int = 20,
):
    query = select(Payout)
    if status:
        query = query.where(Payout.status == status)
    query = query.order_by(Payout.scheduled_for.desc(), Payout.id.desc())
    return paginate(session=session, query=query, page=page, limit=limit)
