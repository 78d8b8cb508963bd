import logging
from decimal import Decimal
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import delete
from sqlmodel import Session, select

from promptmarket.errors import (
    AlreadyInCart,
    AlreadyOwned,
    CannotPurchaseOwnPrompt,
    NotFound,
    PromptUnavailable,
)
from promptmarket.models.cart import CartItem
from promptmarket.models.prompt import Prompt
from promptmarket.models.user import User
from promptmarket.services import purchase_service

logger = logging.getLogger(__name__)


def _cart_price(prompt: Prompt) -> Decimal:
    # pay-what-you-want lands in the cart at its minimum
    if prompt.is_pay_what_you_want:
        return Decimal(prompt.min_price or 0)
    return prompt.effective_price


def _items(session: Session, user_id: int):
    return session.exec(
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.created_at, CartItem.id)
    ).all()


def add_to_cart(session: Session, user: User, prompt_id: int) -> CartItem:
    prompt = session.get(Prompt, prompt_id)
    if not prompt:
        raise NotFound("Prompt not found")
    if not prompt.is_approved:
        raise PromptUnavailable()
    if prompt.seller_id == user.id:
        raise CannotPurchaseOwnPrompt()
    if purchase_service.has_purchased(session, user.id, prompt.id):
        raise AlreadyOwned()

    existing = session.exec(
        select(CartItem).where(CartItem.user_id == user.id, CartItem.prompt_id == prompt.id)
    ).first()
    if existing:
        raise AlreadyInCart()

    item = CartItem(user_id=user.id, prompt_id=prompt.id, price=_cart_price(prompt))
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def remove_cart_item(session: Session, user: User, item_id: int):
    item = session.get(CartItem, item_id)
    if not item or item.user_id != user.id:
        raise NotFound("Cart item not found")

    session.delete(item)
    session.commit()


def clear_cart(session: Session, user_id: int):
    session.exec(delete(CartItem).where(CartItem.user_id == user_id))
    session.commit()


def _unavailable_reason(session: Session, user: User, prompt: Optional[Prompt]) -> Optional[str]:
    if prompt is None or not prompt.is_approved:
        return "no longer available"
    if prompt.seller_id == user.id:
        return "your own prompt"
    if purchase_service.has_purchased(session, user.id, prompt.id):
        return "already purchased"
    return None


def validate_cart(session: Session, user: User) -> dict:
    """Drop items that can no longer be bought and say why."""
    removed = []
    valid = []

    for item in _items(session, user.id):
        prompt = session.get(Prompt, item.prompt_id)
        reason = _unavailable_reason(session, user, prompt)
        if reason:
            removed.append({
                "prompt_id": item.prompt_id,
                "title": prompt.title if prompt else None,
                "reason": reason,
            })
            session.delete(item)
        else:
            valid.append(item)

    if removed:
        session.commit()
        logger.info(f"Removed {len(removed)} unavailable items from cart of user {user.id}")

    return {"items": valid, "removed": removed}


def cart_summary(session: Session, user: User) -> dict:
    items = []
    total = Decimal("0.00")

    for item in _items(session, user.id):
        prompt = session.get(Prompt, item.prompt_id)
        available = _unavailable_reason(session, user, prompt) is None
        if available:
            total += Decimal(item.price)
        items.append({
            "id": item.id,
            "prompt_id": item.prompt_id,
            "title": prompt.title if prompt else None,
            "slug": prompt.slug if prompt else None,
            "price": item.price,
            "available": available,
        })

    return {"items": items, "count": len(items), "total": total.quantize(Decimal("0.01"))}


def checkout_cart(
    session: Session,
    user: User,
    background_tasks: Optional[BackgroundTasks] = None,
) -> dict:
    """
    One purchase per cart line. Free prompts complete right away, the rest
    stay pending for payment.
    """
    validation = validate_cart(session, user)

    pending = []
    completed = []
    for item in validation["items"]:
        prompt = session.get(Prompt, item.prompt_id)
        chosen_price = Decimal(item.price) if prompt.is_pay_what_you_want else None
        purchase = purchase_service.initiate(session, user, prompt, chosen_price)

        # a line leaves the cart as soon as its purchase exists
        session.delete(item)
        session.commit()

        if Decimal(purchase.price) == 0:
            purchase = purchase_service.complete_free(session, purchase, background_tasks)
            completed.append(purchase)
        else:
            pending.append(purchase)

    logger.info(
        f"Cart checkout for user {user.id}: {len(pending)} pending, {len(completed)} free"
    )
    return {"pending": pending, "completed": completed, "removed": validation["removed"]}
