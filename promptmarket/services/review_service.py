import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from promptmarket.errors import (
    AlreadyResponded,
    AlreadyReviewed,
    InvalidRating,
    NotFound,
    NotPromptSeller,
    NotPurchaseOwner,
    PermissionDenied,
    ReviewedBeforeCompletion,
)
from promptmarket.models.prompt import Prompt
from promptmarket.models.purchase import Purchase, PurchaseStatus
from promptmarket.models.review import Review
from promptmarket.models.user import Capability, User
from promptmarket.utils.pagination import paginate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
RATING_UPDATE_ATTEMPTS = 5


def _validate_rating(rating: int):
    if rating is None or not 1 <= int(rating) <= 5:
        raise InvalidRating()


def _apply_new_rating(session: Session, prompt_id: int, rating: int):
    """
    Fold one new rating into the running average.

    Read average and count, compute in Decimal, then write back only if
    nobody else has bumped ``rating_count`` in between. Retries a few times
    before giving up and recalculating from the review table.
    """
    for _ in range(RATING_UPDATE_ATTEMPTS):
        current_avg, current_count = session.exec(
            select(Prompt.rating, Prompt.rating_count).where(Prompt.id == prompt_id)
        ).one()

        current_avg = Decimal(str(current_avg or 0))
        new_count = current_count + 1
        new_avg = ((current_avg * current_count + rating) / new_count).quantize(
            CENT, rounding=ROUND_HALF_UP
        )

        result = session.exec(
            update(Prompt)
            .where(Prompt.id == prompt_id, Prompt.rating_count == current_count)
            .values(rating=new_avg, rating_count=new_count)
        )
        if result.rowcount == 1:
            return

    logger.warning(f"Rating for prompt {prompt_id} kept changing, recalculating")
    recalculate_prompt_rating(session, prompt_id)


def recalculate_prompt_rating(session: Session, prompt_id: int):
    """Rebuild rating and rating_count from every review. Does not commit."""
    session.flush()
    avg_rating, count = session.exec(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.prompt_id == prompt_id)
    ).one()

    average = Decimal(str(avg_rating or 0)).quantize(CENT, rounding=ROUND_HALF_UP)
    session.exec(
        update(Prompt)
        .where(Prompt.id == prompt_id)
        .values(rating=average, rating_count=int(count or 0))
    )


def get_review(session: Session, review_id: int) -> Review:
    review = session.get(Review, review_id)
    if not review:
        raise NotFound("Review not found")
    return review


def create_review(
    session: Session,
    user: User,
    purchase: Purchase,
    rating: int,
    title: Optional[str] = None,
    content: Optional[str] = None,
) -> Review:
    if purchase.buyer_id != user.id:
        raise NotPurchaseOwner("You can only review your own purchases.")
    if purchase.status != PurchaseStatus.completed:
        raise ReviewedBeforeCompletion()

    existing = session.exec(
        select(Review.id).where(Review.purchase_id == purchase.id)
    ).first()
    if existing:
        raise AlreadyReviewed()

    _validate_rating(rating)

    review = Review(
        prompt_id=purchase.prompt_id,
        user_id=user.id,
        purchase_id=purchase.id,
        rating=int(rating),
        title=title,
        content=content,
    )
    session.add(review)
    session.flush()

    _apply_new_rating(session, purchase.prompt_id, int(rating))
    session.commit()
    session.refresh(review)

    logger.info(
        f"Review {review.id} created for prompt {review.prompt_id} "
        f"by user {user.id} (rating {review.rating})"
    )
    return review


def update_review(
    session: Session,
    review: Review,
    user: User,
    rating: Optional[int] = None,
    title: Optional[str] = None,
    content: Optional[str] = None,
) -> Review:
    if review.user_id != user.id:
        raise PermissionDenied("You can only edit your own reviews.")

    rating_changed = rating is not None and int(rating) != review.rating
    if rating is not None:
        _validate_rating(rating)
        review.rating = int(rating)
    if title is not None:
        review.title = title
    if content is not None:
        review.content = content
    review.updated_at = datetime.utcnow()
    session.add(review)

    if rating_changed:
        recalculate_prompt_rating(session, review.prompt_id)

    session.commit()
    session.refresh(review)
    return review


def delete_review(session: Session, review: Review, user: User):
    if review.user_id != user.id and not user.can(Capability.can_moderate):
        raise PermissionDenied("You can only delete your own reviews.")

    prompt_id = review.prompt_id
    review_id = review.id
    session.delete(review)
    recalculate_prompt_rating(session, prompt_id)
    session.commit()

    logger.info(f"Review {review_id} deleted by user {user.id}")


def respond(session: Session, review: Review, seller: User, text: str) -> Review:
    prompt = session.get(Prompt, review.prompt_id)
    if prompt is None or prompt.seller_id != seller.id:
        raise NotPromptSeller("Only the prompt seller can respond to reviews.")
    if review.has_seller_response:
        raise AlreadyResponded()

    review.seller_response = text
    review.seller_responded_at = datetime.utcnow()
    session.add(review)
    session.commit()
    session.refresh(review)

    logger.info(f"Seller {seller.id} responded to review {review.id}")
    return review


def mark_helpful(session: Session, review: Review) -> Review:
    session.exec(
        update(Review)
        .where(Review.id == review.id)
        .values(helpful_count=Review.helpful_count + 1)
    )
    session.commit()
    session.refresh(review)
    return review


def list_prompt_reviews(session: Session, prompt_id: int, page: int = 1, limit: int = 10):
    query = (
        select(Review)
        .where(Review.prompt_id == prompt_id)
        .order_by(Review.helpful_count.desc(), Review.created_at.desc())
    )
    return paginate(session=session, query=query, page=page, limit=limit)


def rating_stats(session: Session, prompt_id: int) -> dict:
    rows = session.exec(
        select(Review.rating, func.count(Review.id))
        .where(Review.prompt_id == prompt_id)
        .group_by(Review.rating)
    ).all()

    distribution = {star: 0 for star in range(1, 6)}
    for star, count in rows:
        distribution[int(star)] = int(count)

    total = sum(distribution.values())
    if total:
        weighted = sum(star * count for star, count in distribution.items())
        average = (Decimal(weighted) / total).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        average = Decimal("0.00")

    return {"average": average, "count": total, "distribution": distribution}
