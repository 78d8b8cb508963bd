import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, update
from sqlmodel import Session, select

from promptmarket.models.prompt import Prompt
from promptmarket.models.purchase import OWNED_STATUSES, Purchase
from promptmarket.models.user import UserProfile

logger = logging.getLogger(__name__)


def get_or_create_profile(session: Session, user_id: int) -> UserProfile:
    profile = session.exec(
        select(UserProfile).where(UserProfile.user_id == user_id)
    ).first()
    if profile:
        return profile

    profile = UserProfile(user_id=user_id)
    session.add(profile)
    session.flush()
    return profile


def adjust_seller_stats(
    session: Session,
    seller_id: int,
    sales_delta: int,
    earnings_delta: Decimal,
):
    """Atomic in-place update of the cached seller aggregates. Does not commit."""
    get_or_create_profile(session, seller_id)
    session.exec(
        update(UserProfile)
        .where(UserProfile.user_id == seller_id)
        .values(
            total_sales=UserProfile.total_sales + sales_delta,
            total_earnings=UserProfile.total_earnings + earnings_delta,
            updated_at=datetime.utcnow(),
        )
    )


def seller_totals(session: Session, seller_id: int) -> tuple:
    """(sales count, earnings) straight from completed purchases."""
    count, earnings = session.exec(
        select(func.count(Purchase.id), func.coalesce(func.sum(Purchase.seller_earnings), 0))
        .join(Prompt, Prompt.id == Purchase.prompt_id)
        .where(
            Prompt.seller_id == seller_id,
            Purchase.status.in_(OWNED_STATUSES),
        )
    ).one()
    return int(count), Decimal(str(earnings)).quantize(Decimal("0.01"))


def recompute_seller_stats(session: Session, seller_id: int) -> UserProfile:
    profile = get_or_create_profile(session, seller_id)
    total_sales, total_earnings = seller_totals(session, seller_id)

    profile.total_sales = total_sales
    profile.total_earnings = total_earnings
    profile.updated_at = datetime.utcnow()
    session.add(profile)
    session.commit()
    session.refresh(profile)

    logger.info(
        f"Recomputed stats for seller {seller_id}: "
        f"{total_sales} sales, {total_earnings} earnings"
    )
    return profile


def update_profile(session: Session, user_id: int, changes: dict) -> UserProfile:
    """Editable profile fields only. Aggregates and verification stay server-side."""
    profile = get_or_create_profile(session, user_id)

    for field in ("bio", "website", "payout_method", "payout_details"):
        if field in changes:
            setattr(profile, field, changes[field])

    profile.updated_at = datetime.utcnow()
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile
