from decimal import Decimal

import pytest
from sqlmodel import Session

from promptmarket.errors import (
    AlreadyResponded,
    AlreadyReviewed,
    InvalidRating,
    NotPromptSeller,
    NotPurchaseOwner,
    PermissionDenied,
    ReviewedBeforeCompletion,
)
from promptmarket.models.prompt import PricingModel, Prompt
from promptmarket.models.user import UserRole
from promptmarket.services import purchase_service, review_service


@pytest.fixture
def owned(session, buyer, seller, make_prompt):
    """A completed free purchase of a fresh prompt."""
    prompt = make_prompt(seller, price="0", pricing_model=PricingModel.free)
    purchase = purchase_service.initiate(session, buyer, prompt)
    purchase = purchase_service.complete_free(session, purchase)
    return prompt, purchase


def reload(session, prompt):
    session.expire_all()
    return session.get(Prompt, prompt.id)


def test_review_folds_into_running_average(session, buyer, seller, make_prompt):
    prompt = make_prompt(
        seller,
        price="0",
        pricing_model=PricingModel.free,
        rating=Decimal("4.00"),
        rating_count=3,
    )
    purchase = purchase_service.complete_free(
        session, purchase_service.initiate(session, buyer, prompt)
    )

    review_service.create_review(session, buyer, purchase, rating=5)

    prompt = reload(session, prompt)
    assert prompt.rating == Decimal("4.25")
    assert prompt.rating_count == 4


def test_first_review_sets_rating(session, buyer, owned):
    prompt, purchase = owned

    review = review_service.create_review(session, buyer, purchase, rating=4, title="Solid")

    assert review.rating == 4
    assert review.helpful_count == 0
    prompt = reload(session, prompt)
    assert prompt.rating == Decimal("4.00")
    assert prompt.rating_count == 1


def test_only_buyer_can_review(session, make_user, owned):
    _, purchase = owned

    with pytest.raises(NotPurchaseOwner):
        review_service.create_review(session, make_user(), purchase, rating=5)


def test_pending_purchase_cannot_be_reviewed(session, buyer, seller, make_prompt):
    purchase = purchase_service.initiate(session, buyer, make_prompt(seller))

    with pytest.raises(ReviewedBeforeCompletion):
        review_service.create_review(session, buyer, purchase, rating=5)


def test_refunded_purchase_cannot_be_reviewed(session, buyer, owned, gateway):
    _, purchase = owned
    purchase_service.refund(session, purchase, gateway)

    with pytest.raises(ReviewedBeforeCompletion):
        review_service.create_review(session, buyer, purchase, rating=5)


def test_one_review_per_purchase(session, buyer, owned):
    _, purchase = owned
    review_service.create_review(session, buyer, purchase, rating=5)

    with pytest.raises(AlreadyReviewed):
        review_service.create_review(session, buyer, purchase, rating=3)


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_rating_out_of_range(session, buyer, owned, rating):
    prompt, purchase = owned

    with pytest.raises(InvalidRating):
        review_service.create_review(session, buyer, purchase, rating=rating)

    assert reload(session, prompt).rating_count == 0


def test_seller_responds_once(session, buyer, seller, owned):
    _, purchase = owned
    review = review_service.create_review(session, buyer, purchase, rating=2)

    review = review_service.respond(session, review, seller, "Thanks, fixed in v2")

    assert review.seller_response == "Thanks, fixed in v2"
    assert review.seller_responded_at is not None
    with pytest.raises(AlreadyResponded):
        review_service.respond(session, review, seller, "again")


def test_other_seller_cannot_respond(session, buyer, make_user, owned):
    _, purchase = owned
    review = review_service.create_review(session, buyer, purchase, rating=2)

    with pytest.raises(NotPromptSeller):
        review_service.respond(session, review, make_user(UserRole.seller), "hi")


def test_mark_helpful_increments(session, buyer, owned):
    _, purchase = owned
    review = review_service.create_review(session, buyer, purchase, rating=5)

    review_service.mark_helpful(session, review)
    review = review_service.mark_helpful(session, review)

    assert review.helpful_count == 2


def test_helpful_increments_from_two_sessions(engine, session, buyer, owned):
    _, purchase = owned
    review = review_service.create_review(session, buyer, purchase, rating=5)

    with Session(engine) as other:
        other_review = other.get(type(review), review.id)
        review_service.mark_helpful(session, review)
        review_service.mark_helpful(other, other_review)

    session.refresh(review)
    assert review.helpful_count == 2


def test_update_rating_recalculates(session, make_user, seller, make_prompt):
    prompt = make_prompt(seller, price="0", pricing_model=PricingModel.free)
    reviews = []
    for rating in (5, 3):
        buyer = make_user()
        purchase = purchase_service.complete_free(
            session, purchase_service.initiate(session, buyer, prompt)
        )
        reviews.append((buyer, review_service.create_review(session, buyer, purchase, rating=rating)))

    buyer, review = reviews[1]
    review_service.update_review(session, review, buyer, rating=1)

    prompt = reload(session, prompt)
    assert prompt.rating == Decimal("3.00")
    assert prompt.rating_count == 2


def test_only_author_updates(session, buyer, make_user, owned):
    _, purchase = owned
    review = review_service.create_review(session, buyer, purchase, rating=5)

    with pytest.raises(PermissionDenied):
        review_service.update_review(session, review, make_user(), rating=1)


def test_admin_can_delete_and_rating_resets(session, buyer, admin, owned):
    prompt, purchase = owned
    review = review_service.create_review(session, buyer, purchase, rating=5)

    review_service.delete_review(session, review, admin)

    prompt = reload(session, prompt)
    assert prompt.rating == Decimal("0.00")
    assert prompt.rating_count == 0


def test_stranger_cannot_delete(session, buyer, make_user, owned):
    _, purchase = owned
    review = review_service.create_review(session, buyer, purchase, rating=5)

    with pytest.raises(PermissionDenied):
        review_service.delete_review(session, review, make_user())


def test_rating_stats_distribution(session, make_user, seller, make_prompt):
    prompt = make_prompt(seller, price="0", pricing_model=PricingModel.free)
    for rating in (5, 5, 4, 1):
        buyer = make_user()
        purchase = purchase_service.complete_free(
            session, purchase_service.initiate(session, buyer, prompt)
        )
        review_service.create_review(session, buyer, purchase, rating=rating)

    stats = review_service.rating_stats(session, prompt.id)

    assert stats["count"] == 4
    assert stats["average"] == Decimal("3.75")
    assert stats["distribution"] == {1: 1, 2: 0, 3: 0, 4: 1, 5: 2}
    assert reload(session, prompt).rating == Decimal("3.75")


def test_reviews_listed_helpful_first(session, make_user, seller, make_prompt):
    prompt = make_prompt(seller, price="0", pricing_model=PricingModel.free)
    created = []
    for rating in (3, 4):
        buyer = make_user()
        purchase = purchase_service.complete_free(
            session, purchase_service.initiate(session, buyer, prompt)
        )
        created.append(review_service.create_review(session, buyer, purchase, rating=rating))
    review_service.mark_helpful(session, created[0])

    page = review_service.list_prompt_reviews(session, prompt.id)

    assert page["total_items"] == 2
    assert page["results"][0].id == created[0].id
