from decimal import Decimal

import pytest

from promptmarket.errors import (
    InvalidPromptState,
    NotFound,
    NotPromptSeller,
    PermissionDenied,
    PreconditionFailed,
)
from promptmarket.models.notifications import Notification
from promptmarket.models.prompt import PricingModel, PromptStatus
from promptmarket.schemas.prompt_schemas import PromptCreate, PromptUpdate
from promptmarket.services import prompt_service
from sqlmodel import select


def new_prompt(**overrides) -> PromptCreate:
    data = {
        "title": "Cold Email Writer",
        "description": "Writes cold outreach emails",
        "content": "You are a sales copywriter...",
        "ai_model": "gpt-4o",
        "price": Decimal("9.00"),
        "tags": ["Sales", "email"],
    }
    data.update(overrides)
    return PromptCreate(**data)


def test_create_prompt_starts_as_draft(session, seller):
    prompt = prompt_service.create_prompt(session, seller, new_prompt())

    assert prompt.status == PromptStatus.draft
    assert prompt.slug == "cold-email-writer"
    assert sorted(tag.slug for tag in prompt.tags) == ["email", "sales"]


def test_slugs_stay_unique(session, seller):
    first = prompt_service.create_prompt(session, seller, new_prompt())
    second = prompt_service.create_prompt(session, seller, new_prompt())

    assert first.slug == "cold-email-writer"
    assert second.slug == "cold-email-writer-2"


def test_buyers_cannot_create_prompts(session, buyer):
    with pytest.raises(PermissionDenied):
        prompt_service.create_prompt(session, buyer, new_prompt())


def test_pay_what_you_want_needs_minimum(session, seller):
    data = new_prompt(pricing_model=PricingModel.pay_what_you_want, price=Decimal("0"))

    with pytest.raises(PreconditionFailed):
        prompt_service.create_prompt(session, seller, data)


def test_free_prompt_price_is_zeroed(session, seller):
    data = new_prompt(pricing_model=PricingModel.free, price=Decimal("4.00"))

    prompt = prompt_service.create_prompt(session, seller, data)

    assert prompt.price == Decimal("0.00")
    assert prompt.effective_price == Decimal("0.00")


def test_moderation_flow(session, seller, admin, outbox):
    prompt = prompt_service.create_prompt(session, seller, new_prompt())
    prompt_service.submit_for_review(session, prompt, seller)

    prompt = prompt_service.approve_prompt(session, prompt, admin)

    assert prompt.status == PromptStatus.approved
    assert outbox[-1]["to"] == seller.email
    assert session.exec(
        select(Notification).where(Notification.trigger_source == "prompt_approved")
    ).one().user_id == seller.id


def test_reject_keeps_reason(session, seller, admin, outbox):
    prompt = prompt_service.create_prompt(session, seller, new_prompt())
    prompt_service.submit_for_review(session, prompt, seller)

    prompt = prompt_service.reject_prompt(session, prompt, admin, "Too vague")

    assert prompt.status == PromptStatus.rejected
    assert prompt.rejection_reason == "Too vague"
    assert "Too vague" in outbox[-1]["html"]

    # rejected prompts may be resubmitted
    prompt = prompt_service.submit_for_review(session, prompt, seller)
    assert prompt.status == PromptStatus.pending
    assert prompt.rejection_reason is None


def test_only_pending_prompts_are_moderated(session, seller, admin):
    prompt = prompt_service.create_prompt(session, seller, new_prompt())

    with pytest.raises(InvalidPromptState):
        prompt_service.approve_prompt(session, prompt, admin)


def test_sellers_cannot_moderate(session, seller):
    prompt = prompt_service.create_prompt(session, seller, new_prompt())
    prompt_service.submit_for_review(session, prompt, seller)

    with pytest.raises(PermissionDenied):
        prompt_service.approve_prompt(session, prompt, seller)


def test_editing_approved_prompt_requeues_it(session, seller, make_prompt):
    prompt = make_prompt(seller)

    prompt = prompt_service.update_prompt(
        session, prompt, seller, PromptUpdate(title="Better Title", price=Decimal("12.00"))
    )

    assert prompt.status == PromptStatus.pending
    assert prompt.version == 2
    assert prompt.slug == "better-title"
    assert prompt.price == Decimal("12.00")


def test_only_owner_edits(session, make_user, seller, make_prompt):
    prompt = make_prompt(seller)

    with pytest.raises(NotPromptSeller):
        prompt_service.update_prompt(session, prompt, make_user(), PromptUpdate(title="Mine now"))


def test_listing_shows_only_approved(session, seller, make_prompt):
    make_prompt(seller, title="Live")
    make_prompt(seller, title="Hidden", status=PromptStatus.pending)

    page = prompt_service.list_prompts(session)

    assert [p.title for p in page["results"]] == ["Live"]


def test_listing_filters_and_sorts(session, seller, make_prompt):
    make_prompt(seller, title="Cheap SQL helper", price="2.00", ai_model="claude")
    make_prompt(seller, title="Pricey SQL tuner", price="30.00", ai_model="claude")
    make_prompt(seller, title="Image styler", price="5.00", ai_model="midjourney")

    sql = prompt_service.list_prompts(session, q="sql", sort="price_desc")
    assert [p.title for p in sql["results"]] == ["Pricey SQL tuner", "Cheap SQL helper"]

    midrange = prompt_service.list_prompts(
        session, price_min=Decimal("3"), price_max=Decimal("10"), sort="price_asc"
    )
    assert [p.title for p in midrange["results"]] == ["Image styler"]

    claude = prompt_service.list_prompts(session, ai_model="claude")
    assert claude["total_items"] == 2


def test_listing_by_tag(session, seller, admin):
    tagged = prompt_service.create_prompt(session, seller, new_prompt(tags=["seo"]))
    prompt_service.submit_for_review(session, tagged, seller)
    prompt_service.approve_prompt(session, tagged, admin)
    other = prompt_service.create_prompt(session, seller, new_prompt(title="Other", tags=["art"]))
    prompt_service.submit_for_review(session, other, seller)
    prompt_service.approve_prompt(session, other, admin)

    page = prompt_service.list_prompts(session, tag="seo")

    assert [p.id for p in page["results"]] == [tagged.id]


def test_pagination(session, seller, make_prompt):
    for _ in range(5):
        make_prompt(seller)

    page = prompt_service.list_prompts(session, page=2, limit=2)

    assert page["total_items"] == 5
    assert page["total_pages"] == 3
    assert page["current_page"] == 2
    assert page["has_next"] is True
    assert len(page["results"]) == 2


def test_get_by_slug_counts_views(session, seller, make_prompt):
    prompt = make_prompt(seller)

    prompt_service.get_by_slug(session, prompt.slug)
    prompt = prompt_service.get_by_slug(session, prompt.slug)

    assert prompt.views_count == 2


def test_unapproved_prompt_hidden_from_strangers(session, buyer, seller, make_prompt):
    prompt = make_prompt(seller, status=PromptStatus.draft)

    with pytest.raises(NotFound):
        prompt_service.get_by_slug(session, prompt.slug, buyer)

    assert prompt_service.get_by_slug(session, prompt.slug, seller).views_count == 0


def test_categories(session):
    prompt_service.create_category(session, "Marketing")
    hidden = prompt_service.create_category(session, "Archive")
    hidden.is_active = False
    session.add(hidden)
    session.commit()

    assert [c.slug for c in prompt_service.list_categories(session)] == ["marketing"]
    with pytest.raises(PreconditionFailed):
        prompt_service.create_category(session, "Marketing")
