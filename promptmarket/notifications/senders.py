from typing import Optional

from fastapi import BackgroundTasks
from sqlmodel import Session

from promptmarket.config import settings
from promptmarket.models.notifications import RecipientRole
from promptmarket.models.prompt import Prompt
from promptmarket.models.purchase import Purchase
from promptmarket.models.user import User
from promptmarket.notifications.dispatcher import dispatch_event
from promptmarket.notifications.events import MarketplaceEvent


def _purchase_context(purchase: Purchase, prompt: Prompt) -> dict:
    return {
        "order_number": purchase.order_number,
        "prompt_title": prompt.title,
        "price": f"{purchase.price:.2f}",
        "seller_earnings": f"{purchase.seller_earnings:.2f}",
        "purchase_url": f"{settings.FRONTEND_URL}/purchases/{purchase.id}",
    }


def notify_purchase_completed(
    session: Session,
    purchase: Purchase,
    background_tasks: Optional[BackgroundTasks] = None,
):
    """Buyer confirmation plus seller sale alert, fired once per completed purchase."""
    prompt = session.get(Prompt, purchase.prompt_id)
    buyer = session.get(User, purchase.buyer_id)
    seller = session.get(User, prompt.seller_id) if prompt else None
    if prompt is None:
        return
    context = _purchase_context(purchase, prompt)

    dispatch_event(
        event=MarketplaceEvent.PURCHASE_CONFIRMED,
        session=session,
        related_id=purchase.id,
        user=buyer,
        recipient_role=RecipientRole.buyer,
        background_tasks=background_tasks,
        extra={
            "user_title": "Purchase confirmed",
            "user_content": f"You now own {prompt.title} (order {purchase.order_number})",
            "user_template": "emails/purchase_confirmation.html",
            "user_subject": f"Your purchase of {prompt.title}",
            "context": context,
        },
    )

    if seller and buyer and seller.id != buyer.id:
        dispatch_event(
            event=MarketplaceEvent.SELLER_SALE,
            session=session,
            related_id=purchase.id,
            user=seller,
            recipient_role=RecipientRole.seller,
            background_tasks=background_tasks,
            extra={
                "user_title": "New sale",
                "user_content": f"{prompt.title} sold for {purchase.price:.2f}",
                "user_template": "emails/seller_sale.html",
                "user_subject": f"You made a sale: {prompt.title}",
                "admin_title": "Sale completed",
                "admin_content": f"Order {purchase.order_number} for {prompt.title}",
                "context": context,
            },
        )


def notify_purchase_refunded(
    session: Session,
    purchase: Purchase,
    background_tasks: Optional[BackgroundTasks] = None,
):
    prompt = session.get(Prompt, purchase.prompt_id)
    buyer = session.get(User, purchase.buyer_id)
    if prompt is None:
        return

    dispatch_event(
        event=MarketplaceEvent.PURCHASE_REFUNDED,
        session=session,
        related_id=purchase.id,
        user=buyer,
        recipient_role=RecipientRole.buyer,
        background_tasks=background_tasks,
        extra={
            "user_title": "Purchase refunded",
            "user_content": f"Order {purchase.order_number} has been refunded",
            "user_template": "emails/purchase_refunded.html",
            "user_subject": f"Refund for order {purchase.order_number}",
            "admin_title": "Purchase refunded",
            "admin_content": f"Order {purchase.order_number} for {prompt.title} refunded",
            "context": _purchase_context(purchase, prompt),
        },
    )


def notify_purchase_disputed(
    session: Session,
    purchase: Purchase,
    reason: Optional[str] = None,
    background_tasks: Optional[BackgroundTasks] = None,
):
    prompt = session.get(Prompt, purchase.prompt_id)
    if prompt is None:
        return
    context = _purchase_context(purchase, prompt)
    context["reason"] = reason or "not given"

    dispatch_event(
        event=MarketplaceEvent.PURCHASE_DISPUTED,
        session=session,
        related_id=purchase.id,
        background_tasks=background_tasks,
        notify_user=False,
        extra={
            "admin_title": "Payment disputed",
            "admin_content": f"Order {purchase.order_number} disputed: {context['reason']}",
            "admin_template": "emails/admin_purchase_disputed.html",
            "admin_subject": f"Dispute opened for order {purchase.order_number}",
            "context": context,
        },
    )


def notify_prompt_approved(
    session: Session,
    prompt: Prompt,
    background_tasks: Optional[BackgroundTasks] = None,
):
    seller = session.get(User, prompt.seller_id)

    dispatch_event(
        event=MarketplaceEvent.PROMPT_APPROVED,
        session=session,
        related_id=prompt.id,
        user=seller,
        recipient_role=RecipientRole.seller,
        background_tasks=background_tasks,
        extra={
            "user_title": "Prompt approved",
            "user_content": f"{prompt.title} is now live",
            "user_template": "emails/prompt_approved.html",
            "user_subject": "Your prompt has been approved!",
            "context": {
                "prompt_title": prompt.title,
                "price": f"{prompt.effective_price:.2f}",
                "prompt_url": f"{settings.FRONTEND_URL}/prompts/{prompt.slug}",
            },
        },
    )


def notify_prompt_rejected(
    session: Session,
    prompt: Prompt,
    background_tasks: Optional[BackgroundTasks] = None,
):
    seller = session.get(User, prompt.seller_id)

    dispatch_event(
        event=MarketplaceEvent.PROMPT_REJECTED,
        session=session,
        related_id=prompt.id,
        user=seller,
        recipient_role=RecipientRole.seller,
        background_tasks=background_tasks,
        extra={
            "user_title": "Prompt rejected",
            "user_content": f"{prompt.title}: {prompt.rejection_reason or 'no reason given'}",
            "user_template": "emails/prompt_rejected.html",
            "user_subject": "Your prompt needs changes",
            "context": {
                "prompt_title": prompt.title,
                "reason": prompt.rejection_reason,
                "edit_url": f"{settings.FRONTEND_URL}/seller/prompts/{prompt.id}/edit",
            },
        },
    )
