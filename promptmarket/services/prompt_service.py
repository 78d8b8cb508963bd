import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import BackgroundTasks
from slugify import slugify
from sqlalchemy import or_, update
from sqlmodel import Session, select

from promptmarket.errors import (
    InvalidPromptState,
    NotFound,
    NotPromptSeller,
    PermissionDenied,
    PreconditionFailed,
)
from promptmarket.models.category import Category
from promptmarket.models.prompt import PricingModel, Prompt, PromptStatus
from promptmarket.models.tag import PromptTagLink, Tag
from promptmarket.models.user import Capability, User
from promptmarket.notifications import notify_prompt_approved, notify_prompt_rejected
from promptmarket.schemas.prompt_schemas import PromptCreate, PromptUpdate
from promptmarket.utils.pagination import paginate

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "recent": [Prompt.created_at.desc()],
    "popular": [Prompt.purchases_count.desc(), Prompt.views_count.desc()],
    "top_rated": [Prompt.rating.desc(), Prompt.rating_count.desc()],
    "price_asc": [Prompt.price.asc()],
    "price_desc": [Prompt.price.desc()],
}


def unique_slug(session: Session, model, text: str, exclude_id: Optional[int] = None) -> str:
    base = slugify(text) or "item"
    slug = base
    suffix = 2
    while True:
        query = select(model.id).where(model.slug == slug)
        if exclude_id is not None:
            query = query.where(model.id != exclude_id)
        if session.exec(query).first() is None:
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


def _check_pricing(pricing_model: PricingModel, price: Decimal, min_price: Optional[Decimal]):
    if pricing_model == PricingModel.pay_what_you_want and min_price is None:
        raise PreconditionFailed("Pay-what-you-want prompts need a minimum price.")
    if pricing_model == PricingModel.fixed and (price is None or price <= 0):
        raise PreconditionFailed("Fixed price prompts need a price above zero.")


def _resolve_tags(session: Session, names: List[str]) -> List[Tag]:
    tags = []
    for name in {n.strip().lower() for n in names if n and n.strip()}:
        tag = session.exec(select(Tag).where(Tag.name == name)).first()
        if not tag:
            tag = Tag(name=name, slug=unique_slug(session, Tag, name))
            session.add(tag)
            session.flush()
        tags.append(tag)
    return tags


def _check_category(session: Session, category_id: Optional[int]):
    if category_id is None:
        return
    category = session.get(Category, category_id)
    if not category or not category.is_active:
        raise NotFound("Category not found")


def get_prompt(session: Session, prompt_id: int) -> Prompt:
    prompt = session.get(Prompt, prompt_id)
    if not prompt:
        raise NotFound("Prompt not found")
    return prompt


def create_prompt(session: Session, seller: User, data: PromptCreate) -> Prompt:
    if not seller.can(Capability.can_sell):
        raise PermissionDenied("Only sellers can create prompts.")

    _check_pricing(data.pricing_model, data.price, data.min_price)
    _check_category(session, data.category_id)

    price = Decimal("0") if data.pricing_model == PricingModel.free else data.price
    prompt = Prompt(
        seller_id=seller.id,
        category_id=data.category_id,
        title=data.title,
        slug=unique_slug(session, Prompt, data.title),
        description=data.description,
        content=data.content,
        ai_model=data.ai_model,
        price=price,
        pricing_model=data.pricing_model,
        min_price=data.min_price,
        status=PromptStatus.draft,
    )
    prompt.tags = _resolve_tags(session, data.tags)

    session.add(prompt)
    session.commit()
    session.refresh(prompt)

    logger.info(f"Prompt {prompt.id} ({prompt.slug}) created by seller {seller.id}")
    return prompt


def update_prompt(session: Session, prompt: Prompt, seller: User, data: PromptUpdate) -> Prompt:
    if prompt.seller_id != seller.id:
        raise NotPromptSeller()

    changes = data.model_dump(exclude_unset=True)
    tags = changes.pop("tags", None)

    if "category_id" in changes:
        _check_category(session, changes["category_id"])

    pricing_model = changes.get("pricing_model", prompt.pricing_model)
    _check_pricing(
        pricing_model,
        changes.get("price", prompt.price),
        changes.get("min_price", prompt.min_price),
    )

    if "title" in changes and changes["title"] != prompt.title:
        prompt.slug = unique_slug(session, Prompt, changes["title"], exclude_id=prompt.id)

    for key, value in changes.items():
        setattr(prompt, key, value)
    if pricing_model == PricingModel.free:
        prompt.price = Decimal("0")

    if tags is not None:
        prompt.tags = _resolve_tags(session, tags)

    # live prompts go back through moderation
    if prompt.status == PromptStatus.approved:
        prompt.status = PromptStatus.pending
        prompt.version += 1

    prompt.updated_at = datetime.utcnow()
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    return prompt


def submit_for_review(session: Session, prompt: Prompt, seller: User) -> Prompt:
    if prompt.seller_id != seller.id:
        raise NotPromptSeller()
    if prompt.status not in (PromptStatus.draft, PromptStatus.rejected):
        raise InvalidPromptState("Only draft or rejected prompts can be submitted.")

    prompt.status = PromptStatus.pending
    prompt.rejection_reason = None
    prompt.updated_at = datetime.utcnow()
    session.add(prompt)
    session.commit()
    session.refresh(prompt)

    logger.info(f"Prompt {prompt.id} submitted for review")
    return prompt


def _moderate(
    session: Session,
    prompt: Prompt,
    moderator: User,
    status: PromptStatus,
    reason: Optional[str] = None,
) -> Prompt:
    if not moderator.can(Capability.can_moderate):
        raise PermissionDenied("Moderator access required.")

    result = session.exec(
        update(Prompt)
        .where(Prompt.id == prompt.id, Prompt.status == PromptStatus.pending)
        .values(status=status, rejection_reason=reason, updated_at=datetime.utcnow())
    )
    if result.rowcount != 1:
        session.rollback()
        raise InvalidPromptState("Only pending prompts can be moderated.")

    session.commit()
    session.refresh(prompt)

    logger.info(f"Prompt {prompt.id} {status.value} by moderator {moderator.id}")
    return prompt


def approve_prompt(
    session: Session,
    prompt: Prompt,
    moderator: User,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Prompt:
    prompt = _moderate(session, prompt, moderator, PromptStatus.approved)
    notify_prompt_approved(session, prompt, background_tasks)
    return prompt


def reject_prompt(
    session: Session,
    prompt: Prompt,
    moderator: User,
    reason: str,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Prompt:
    prompt = _moderate(session, prompt, moderator, PromptStatus.rejected, reason=reason)
    notify_prompt_rejected(session, prompt, background_tasks)
    return prompt


def list_pending_prompts(session: Session, page: int = 1, limit: int = 20):
    query = (
        select(Prompt)
        .where(Prompt.status == PromptStatus.pending)
        .order_by(Prompt.updated_at.asc())
    )
    return paginate(session=session, query=query, page=page, limit=limit)


def list_seller_prompts(session: Session, seller_id: int, page: int = 1, limit: int = 20):
    query = (
        select(Prompt)
        .where(Prompt.seller_id == seller_id)
        .order_by(Prompt.created_at.desc())
    )
    return paginate(session=session, query=query, page=page, limit=limit)


def list_prompts(
    session: Session,
    *,
    q: Optional[str] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    ai_model: Optional[str] = None,
    pricing_model: Optional[PricingModel] = None,
    price_min: Optional[Decimal] = None,
    price_max: Optional[Decimal] = None,
    featured: Optional[bool] = None,
    seller_id: Optional[int] = None,
    sort: str = "recent",
    page: int = 1,
    limit: int = 15,
):
    """Public catalog: approved prompts only."""
    query = select(Prompt).where(Prompt.status == PromptStatus.approved)

    if q:
        like = f"%{q}%"
        query = query.where(or_(Prompt.title.ilike(like), Prompt.description.ilike(like)))

    if category:
        query = query.join(Category, Category.id == Prompt.category_id).where(
            Category.slug == category
        )

    if tag:
        query = (
            query.join(PromptTagLink, PromptTagLink.prompt_id == Prompt.id)
            .join(Tag, Tag.id == PromptTagLink.tag_id)
            .where(Tag.slug == tag)
        )

    if ai_model:
        query = query.where(Prompt.ai_model == ai_model)

    if pricing_model:
        query = query.where(Prompt.pricing_model == pricing_model)

    if price_min is not None:
        query = query.where(Prompt.price >= price_min)

    if price_max is not None:
        query = query.where(Prompt.price <= price_max)

    if featured is not None:
        query = query.where(Prompt.featured == featured)

    if seller_id is not None:
        query = query.where(Prompt.seller_id == seller_id)

    ordering = SORT_OPTIONS.get(sort, SORT_OPTIONS["recent"])
    query = query.order_by(*ordering, Prompt.id.desc())

    return paginate(session=session, query=query, page=page, limit=limit)


def get_by_slug(session: Session, slug: str, viewer: Optional[User] = None) -> Prompt:
    """
    Public detail lookup. Counts a view for approved prompts; owners and
    moderators may also open their unapproved ones.
    """
    prompt = session.exec(select(Prompt).where(Prompt.slug == slug)).first()
    if not prompt:
        raise NotFound("Prompt not found")

    if not prompt.is_approved:
        allowed = viewer is not None and (
            viewer.id == prompt.seller_id or viewer.can(Capability.can_moderate)
        )
        if not allowed:
            raise NotFound("Prompt not found")
        return prompt

    session.exec(
        update(Prompt)
        .where(Prompt.id == prompt.id)
        .values(views_count=Prompt.views_count + 1)
    )
    session.commit()
    session.refresh(prompt)
    return prompt


def set_featured(session: Session, prompt: Prompt, featured: bool) -> Prompt:
    prompt.featured = featured
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    return prompt


# ---------- categories & tags ----------

def list_categories(session: Session, include_inactive: bool = False) -> List[Category]:
    query = select(Category)
    if not include_inactive:
        query = query.where(Category.is_active == True)  # noqa: E712
    return session.exec(query.order_by(Category.name)).all()


def create_category(session: Session, name: str, description: Optional[str] = None) -> Category:
    existing = session.exec(select(Category).where(Category.name == name)).first()
    if existing:
        raise PreconditionFailed("Category already exists.")

    category = Category(
        name=name,
        slug=unique_slug(session, Category, name),
        description=description,
    )
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def list_tags(session: Session) -> List[Tag]:
    return session.exec(select(Tag).order_by(Tag.name)).all()
