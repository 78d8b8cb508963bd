from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.dependencies.roles import require_admin
from promptmarket.models.payout import PayoutStatus
from promptmarket.models.user import User
from promptmarket.schemas.category_schemas import CategoryCreate, CategoryRead
from promptmarket.schemas.payout_schemas import PayoutRead
from promptmarket.schemas.prompt_schemas import PromptOwnerRead, PromptRejectRequest
from promptmarket.services import (
    notification_service,
    payout_service,
    prompt_service,
    purchase_service,
)
from promptmarket.services.profile_service import recompute_seller_stats
from promptmarket.services.purchase_expiry_service import expire_stale_purchases
from promptmarket.utils.pagination import serialize_page

router = APIRouter()


# ---------- MODERATION ----------

@router.get("/prompts/pending")
def pending_prompts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    result = prompt_service.list_pending_prompts(session, page=page, limit=limit)
    result = serialize_page(result, PromptOwnerRead)
    return result


@router.post("/prompts/{prompt_id}/approve", response_model=PromptOwnerRead)
def approve_prompt(
    prompt_id: int,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    prompt = prompt_service.get_prompt(session, prompt_id)
    return prompt_service.approve_prompt(session, prompt, admin, background_tasks)


@router.post("/prompts/{prompt_id}/reject", response_model=PromptOwnerRead)
def reject_prompt(
    prompt_id: int,
    data: PromptRejectRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    prompt = prompt_service.get_prompt(session, prompt_id)
    return prompt_service.reject_prompt(session, prompt, admin, data.reason, background_tasks)


@router.post("/prompts/{prompt_id}/feature", response_model=PromptOwnerRead)
def feature_prompt(
    prompt_id: int,
    featured: bool = True,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    prompt = prompt_service.get_prompt(session, prompt_id)
    return prompt_service.set_featured(session, prompt, featured)


@router.post("/categories", response_model=CategoryRead, status_code=201)
def create_category(
    data: CategoryCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return prompt_service.create_category(session, data.name, data.description)


# ---------- SELLERS & REVENUE ----------

@router.post("/sellers/{seller_id}/recompute-stats")
def recompute_stats(
    seller_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    profile = recompute_seller_stats(session, seller_id)
    return {
        "seller_id": seller_id,
        "total_sales": profile.total_sales,
        "total_earnings": profile.total_earnings,
    }


@router.get("/revenue")
def revenue(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return purchase_service.total_revenue(session, start=start, end=end)


@router.post("/purchases/expire")
def expire_purchases(
    older_than_days: Optional[int] = Query(None, ge=0),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return {"expired": expire_stale_purchases(session, older_than_days)}


# ---------- PAYOUTS ----------

@router.get("/payouts")
def payouts(
    status: Optional[PayoutStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    result = payout_service.list_payouts(session, status=status, page=page, limit=limit)
    return serialize_page(result, PayoutRead)


@router.post("/payouts/schedule")
def schedule_payouts(
    scheduled_for: Optional[datetime] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return {"scheduled": payout_service.schedule_payouts(session, scheduled_for)}


@router.post("/payouts/process")
def process_payouts(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return {"processed": payout_service.process_scheduled_payouts(session)}


# ---------- NOTIFICATIONS ----------

@router.get("/notifications")
def admin_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return notification_service.list_admin_notifications(session, page=page, limit=limit)
