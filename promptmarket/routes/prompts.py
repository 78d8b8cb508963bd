from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.dependencies.roles import require_seller
from promptmarket.models.prompt import PricingModel
from promptmarket.models.user import User
from promptmarket.schemas.prompt_schemas import (
    PromptCreate,
    PromptOwnerRead,
    PromptRead,
    PromptUpdate,
)
from promptmarket.services import prompt_service
from promptmarket.utils.pagination import serialize_page
from promptmarket.utils.token import get_optional_user

router = APIRouter()


def _public_page(page: dict) -> dict:
    return serialize_page(page, PromptRead)


# ---------- PUBLIC CATALOG ----------

@router.get("")
def list_prompts(
    q: Optional[str] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    ai_model: Optional[str] = None,
    pricing_model: Optional[PricingModel] = None,
    price_min: Optional[Decimal] = Query(None, ge=0),
    price_max: Optional[Decimal] = Query(None, ge=0),
    featured: Optional[bool] = None,
    seller_id: Optional[int] = None,
    sort: str = Query("recent", pattern="^(recent|popular|top_rated|price_asc|price_desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(15, ge=1, le=100),
    session: Session = Depends(get_session),
):
    return _public_page(
        prompt_service.list_prompts(
            session,
            q=q,
            category=category,
            tag=tag,
            ai_model=ai_model,
            pricing_model=pricing_model,
            price_min=price_min,
            price_max=price_max,
            featured=featured,
            seller_id=seller_id,
            sort=sort,
            page=page,
            limit=limit,
        )
    )


# ---------- SELLER ----------

@router.get("/mine")
def my_prompts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller),
):
    result = prompt_service.list_seller_prompts(session, seller.id, page=page, limit=limit)
    result = serialize_page(result, PromptOwnerRead)
    return result


@router.post("", response_model=PromptOwnerRead, status_code=201)
def create_prompt(
    data: PromptCreate,
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller),
):
    return prompt_service.create_prompt(session, seller, data)


@router.patch("/{prompt_id}", response_model=PromptOwnerRead)
def update_prompt(
    prompt_id: int,
    data: PromptUpdate,
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller),
):
    prompt = prompt_service.get_prompt(session, prompt_id)
    return prompt_service.update_prompt(session, prompt, seller, data)


@router.post("/{prompt_id}/submit", response_model=PromptOwnerRead)
def submit_prompt(
    prompt_id: int,
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller),
):
    prompt = prompt_service.get_prompt(session, prompt_id)
    return prompt_service.submit_for_review(session, prompt, seller)


# ---------- DETAIL (keep last, catches any slug) ----------

@router.get("/{slug}")
def prompt_detail(
    slug: str,
    session: Session = Depends(get_session),
    viewer: Optional[User] = Depends(get_optional_user),
):
    prompt = prompt_service.get_by_slug(session, slug, viewer)
    return {
        "prompt": PromptRead.model_validate(prompt),
        "category": prompt.category.name if prompt.category else None,
        "tags": [tag.slug for tag in prompt.tags],
        "seller": {"id": prompt.seller_id, "name": prompt.seller.name if prompt.seller else None},
    }
