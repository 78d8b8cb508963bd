import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.dependencies.roles import require_admin, require_seller
from promptmarket.errors import (
    AlreadyOwned,
    InvalidPurchaseState,
    NotPurchaseOwner,
    PaymentNotCompleted,
)
from promptmarket.gateways import PaymentGateway, get_payment_gateway
from promptmarket.models.purchase import PurchaseStatus
from promptmarket.models.user import Capability, User
from promptmarket.schemas.purchase_schemas import (
    ConfirmPaymentRequest,
    DisputeRequest,
    PaymentIntentRead,
    PurchaseCreate,
    PurchaseRead,
    RefundRequest,
)
from promptmarket.services import prompt_service, purchase_service
from promptmarket.services.purchase_event_service import purchase_timeline
from promptmarket.utils.pagination import serialize_page
from promptmarket.utils.token import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _owned_purchase(session: Session, purchase_id: int, user: User):
    purchase = purchase_service.get_purchase(session, purchase_id)
    if purchase.buyer_id != user.id:
        raise NotPurchaseOwner()
    return purchase


# ---------- CHECKOUT ----------

@router.post("/prompts/{prompt_id}", status_code=201)
def buy_prompt(
    prompt_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[PurchaseCreate] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    prompt = prompt_service.get_prompt(session, prompt_id)
    chosen_price = data.chosen_price if data else None

    purchase = purchase_service.initiate(session, current_user, prompt, chosen_price)
    if purchase.price == 0:
        purchase = purchase_service.complete_free(session, purchase, background_tasks)

    return {
        "purchase": PurchaseRead.model_validate(purchase),
        "requires_payment": purchase.is_pending,
    }


@router.post("/{purchase_id}/payment-intent", response_model=PaymentIntentRead)
def create_payment_intent(
    purchase_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    purchase = _owned_purchase(session, purchase_id, current_user)
    result = purchase_service.create_payment_intent(session, purchase, gateway)

    return PaymentIntentRead(
        client_secret=result.client_secret,
        payment_intent_id=result.intent_id,
        publishable_key=result.publishable_key,
        amount=result.amount,
        currency=result.currency,
    )


@router.post("/{purchase_id}/confirm-payment")
def confirm_payment(
    purchase_id: int,
    data: ConfirmPaymentRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    purchase = purchase_service.get_purchase(session, purchase_id)

    try:
        purchase = purchase_service.confirm_payment(
            session,
            purchase,
            current_user,
            data.payment_intent_id,
            gateway,
            background_tasks,
        )
    except (PaymentNotCompleted, InvalidPurchaseState, AlreadyOwned) as e:
        return JSONResponse(status_code=400, content={"success": False, "message": e.message})

    return {"success": True, "redirect": f"/purchases/{purchase.id}"}


# ---------- HISTORY ----------

@router.get("/me")
def my_purchases(
    status: Optional[PurchaseStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(15, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    result = purchase_service.list_buyer_purchases(
        session, current_user.id, status=status, page=page, limit=limit
    )
    result = serialize_page(result, PurchaseRead)
    return result


@router.get("/sales")
def my_sales(
    page: int = Query(1, ge=1),
    limit: int = Query(15, ge=1, le=100),
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller),
):
    result = purchase_service.list_seller_sales(session, seller.id, page=page, limit=limit)
    result = serialize_page(result, PurchaseRead)
    result["stats"] = purchase_service.seller_stats(session, seller.id)
    return result


@router.get("/{purchase_id}")
def get_purchase(
    purchase_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    purchase = purchase_service.get_purchase(session, purchase_id)
    prompt = purchase.prompt

    is_buyer = purchase.buyer_id == current_user.id
    is_seller = prompt is not None and prompt.seller_id == current_user.id
    if not (is_buyer or is_seller or current_user.can(Capability.can_moderate)):
        raise NotPurchaseOwner()

    return {
        "purchase": PurchaseRead.model_validate(purchase),
        "prompt": {
            "id": prompt.id,
            "title": prompt.title,
            "slug": prompt.slug,
            # the buyer gets the sellable text once paid
            "content": prompt.content if is_buyer and purchase.is_owned else None,
        } if prompt else None,
        "timeline": [
            {"event": e.event_type, "label": e.label, "at": e.created_at, "by": e.created_by}
            for e in purchase_timeline(session, purchase.id)
        ],
    }


# ---------- ADMIN ----------

@router.post("/{purchase_id}/refund")
def refund_purchase(
    purchase_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[RefundRequest] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    purchase = purchase_service.get_purchase(session, purchase_id)
    result = purchase_service.refund(
        session,
        purchase,
        gateway,
        amount=data.amount if data else None,
        actor=f"admin:{admin.id}",
        background_tasks=background_tasks,
    )
    return {
        "refund_id": result.refund_id,
        "status": result.status,
        "amount": result.amount,
        "purchase": PurchaseRead.model_validate(result.purchase),
    }


@router.post("/{purchase_id}/dispute", response_model=PurchaseRead)
def dispute_purchase(
    purchase_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[DisputeRequest] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    purchase = purchase_service.get_purchase(session, purchase_id)
    return purchase_service.mark_disputed(
        session,
        purchase,
        reason=data.reason if data else None,
        source=f"admin:{admin.id}",
        background_tasks=background_tasks,
    )
