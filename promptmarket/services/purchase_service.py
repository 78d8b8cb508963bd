"""
Purchase workflow.

A purchase starts ``pending`` and is moved forward only through
conditional UPDATEs (``... WHERE status = <expected>``). Whichever caller
flips the row wins and runs the side effects: counters, seller
aggregates, the timeline entry and notifications. Every other caller
sees zero affected rows and treats the transition as already done, so
the browser confirmation and the provider webhook can race freely.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from promptmarket.config import settings
from promptmarket.constants.purchase_status import can_transition
from promptmarket.errors import (
    AlreadyOwned,
    CannotPurchaseOwnPrompt,
    GatewayError,
    InvalidPurchaseState,
    NotFound,
    NotPurchaseOwner,
    PaymentInitializationFailed,
    PaymentNotCompleted,
    PreconditionFailed,
    PriceBelowMinimum,
    PriceRequired,
    PromptUnavailable,
)
from promptmarket.gateways.base import (
    PaymentGateway,
    PurchaseMetadata,
    WebhookEvent,
    WebhookEventType,
    from_minor_units,
    to_minor_units,
)
from promptmarket.models.prompt import Prompt
from promptmarket.models.purchase import (
    OWNED_STATUSES,
    PaymentMethod,
    Purchase,
    PurchaseStatus,
    generate_order_number,
)
from promptmarket.models.user import User
from promptmarket.notifications import (
    notify_purchase_completed,
    notify_purchase_disputed,
    notify_purchase_refunded,
)
from promptmarket.services.profile_service import adjust_seller_stats
from promptmarket.services.purchase_event_service import log_purchase_event
from promptmarket.utils.pagination import paginate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class PaymentIntentResult:
    client_secret: str
    intent_id: str
    amount: int
    currency: str
    publishable_key: Optional[str] = None


class WebhookStatus(str, Enum):
    processed = "processed"
    duplicate = "duplicate"
    ignored = "ignored"
    invalid_signature = "invalid_signature"


@dataclass
class WebhookResult:
    status: WebhookStatus
    event_type: Optional[str] = None
    purchase_id: Optional[int] = None


@dataclass
class RefundResult:
    refund_id: str
    status: str
    amount: Decimal
    purchase: Purchase


# ---------------------------------------------------------
# Pricing
# ---------------------------------------------------------

def calculate_fees(price: Decimal) -> tuple:
    """(platform_fee, seller_earnings), both rounded to the cent."""
    price = Decimal(price).quantize(CENT, rounding=ROUND_HALF_UP)
    fee = (price * settings.PLATFORM_FEE_PERCENT / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    return fee, price - fee


def resolve_price(prompt: Prompt, chosen_price: Optional[Decimal] = None) -> Decimal:
    if prompt.is_pay_what_you_want:
        if chosen_price is None:
            raise PriceRequired()
        chosen = Decimal(chosen_price).quantize(CENT, rounding=ROUND_HALF_UP)
        minimum = Decimal(prompt.min_price or 0)
        if chosen < minimum:
            raise PriceBelowMinimum(
                f"The chosen price is below the minimum price of {minimum:.2f}."
            )
        return chosen

    return prompt.effective_price.quantize(CENT)


# ---------------------------------------------------------
# Lookups
# ---------------------------------------------------------

def has_purchased(session: Session, buyer_id: int, prompt_id: int) -> bool:
    return session.exec(
        select(Purchase.id).where(
            Purchase.buyer_id == buyer_id,
            Purchase.prompt_id == prompt_id,
            Purchase.status.in_(OWNED_STATUSES),
        )
    ).first() is not None


def get_purchase(session: Session, purchase_id: int) -> Purchase:
    purchase = session.get(Purchase, purchase_id)
    if not purchase:
        raise NotFound("Purchase not found")
    return purchase


def get_by_order_number(session: Session, order_number: str) -> Purchase:
    purchase = session.exec(
        select(Purchase).where(Purchase.order_number == order_number)
    ).first()
    if not purchase:
        raise NotFound("Purchase not found")
    return purchase


def list_buyer_purchases(
    session: Session,
    buyer_id: int,
    status: Optional[PurchaseStatus] = None,
    page: int = 1,
    limit: int = 15,
):
    query = select(Purchase).where(Purchase.buyer_id == buyer_id)
    if status:
        query = query.where(Purchase.status == status)
    query = query.order_by(Purchase.created_at.desc(), Purchase.id.desc())
    return paginate(session=session, query=query, page=page, limit=limit)


def list_seller_sales(session: Session, seller_id: int, page: int = 1, limit: int = 15):
    query = (
        select(Purchase)
        .join(Prompt, Prompt.id == Purchase.prompt_id)
        .where(
            Prompt.seller_id == seller_id,
            Purchase.status.in_(OWNED_STATUSES),
        )
        .order_by(Purchase.purchased_at.desc(), Purchase.id.desc())
    )
    return paginate(session=session, query=query, page=page, limit=limit)


def seller_stats(session: Session, seller_id: int) -> dict:
    count, gross, earnings = session.exec(
        select(
            func.count(Purchase.id),
            func.coalesce(func.sum(Purchase.price), 0),
            func.coalesce(func.sum(Purchase.seller_earnings), 0),
        )
        .join(Prompt, Prompt.id == Purchase.prompt_id)
        .where(
            Prompt.seller_id == seller_id,
            Purchase.status.in_(OWNED_STATUSES),
        )
    ).one()

    count = int(count)
    gross = Decimal(str(gross)).quantize(CENT)
    average = (gross / count).quantize(CENT, rounding=ROUND_HALF_UP) if count else Decimal("0.00")

    return {
        "total_sales": count,
        "gross_revenue": gross,
        "total_earnings": Decimal(str(earnings)).quantize(CENT),
        "average_order_value": average,
    }


def total_revenue(
    session: Session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    """Gross sales and platform fees over completed purchases."""
    query = select(
        func.coalesce(func.sum(Purchase.price), 0),
        func.coalesce(func.sum(Purchase.platform_fee), 0),
        func.count(Purchase.id),
    ).where(Purchase.status.in_(OWNED_STATUSES))
    if start:
        query = query.where(Purchase.purchased_at >= start)
    if end:
        query = query.where(Purchase.purchased_at < end)

    gross, fees, count = session.exec(query).one()
    return {
        "gross": Decimal(str(gross)).quantize(CENT),
        "platform_fees": Decimal(str(fees)).quantize(CENT),
        "purchases": int(count),
    }


# ---------------------------------------------------------
# Transitions
# ---------------------------------------------------------

def _transition(
    session: Session,
    purchase_id: int,
    expected: PurchaseStatus,
    target: PurchaseStatus,
    guard=None,
    **values,
) -> bool:
    """Conditional status change. True only for the caller that moved the row."""
    if not can_transition(expected, target):
        raise InvalidPurchaseState(
            f"Cannot move a purchase from {expected.value} to {target.value}."
        )

    statement = update(Purchase).where(Purchase.id == purchase_id, Purchase.status == expected)
    if guard is not None:
        statement = statement.where(guard)

    result = session.exec(statement.values(status=target, updated_at=datetime.utcnow(), **values))
    return result.rowcount == 1


def _not_owned_elsewhere():
    """WHERE clause: no other purchase of this buyer grants the same prompt."""
    other = aliased(Purchase)
    return ~(
        select(other.id)
        .where(
            other.buyer_id == Purchase.buyer_id,
            other.prompt_id == Purchase.prompt_id,
            other.id != Purchase.id,
            other.status.in_(OWNED_STATUSES),
        )
        .correlate(Purchase.__table__)
        .exists()
    )


def _bump_prompt_purchases(session: Session, prompt_id: int, delta: int):
    session.exec(
        update(Prompt)
        .where(Prompt.id == prompt_id)
        .values(purchases_count=Prompt.purchases_count + delta)
    )


def _apply_sale(session: Session, purchase: Purchase, sign: int):
    prompt = session.get(Prompt, purchase.prompt_id)
    _bump_prompt_purchases(session, purchase.prompt_id, sign)
    adjust_seller_stats(
        session,
        prompt.seller_id,
        sales_delta=sign,
        earnings_delta=sign * Decimal(purchase.seller_earnings),
    )


def _complete(
    session: Session,
    purchase: Purchase,
    payment_method: str,
    payment_id: str,
    source: str,
    background_tasks: Optional[BackgroundTasks] = None,
) -> tuple:
    """
    pending -> completed. Returns (purchase, won).

    The update only matches while the buyer owns the prompt through no
    other row. A pending purchase that loses that check is superseded
    instead of completed.
    """
    now = datetime.utcnow()
    try:
        won = _transition(
            session,
            purchase.id,
            PurchaseStatus.pending,
            PurchaseStatus.completed,
            guard=_not_owned_elsewhere(),
            payment_method=payment_method,
            payment_id=payment_id,
            purchased_at=now,
        )
    except IntegrityError:
        # a concurrent completion of the same buyer and prompt committed first
        won = False

    if not won:
        session.rollback()
        session.refresh(purchase)
        if purchase.is_pending:
            _supersede(session, purchase, payment_method, payment_id, source)
        else:
            logger.info(
                f"Purchase {purchase.order_number} already {purchase.status.value}, "
                f"{source} is a no-op"
            )
        return purchase, False

    _apply_sale(session, purchase, +1)
    log_purchase_event(
        session,
        purchase.id,
        "completed",
        "Purchase completed",
        created_by=source,
        meta={"payment_method": payment_method, "payment_id": payment_id},
    )
    session.commit()
    session.refresh(purchase)

    logger.info(
        f"Purchase {purchase.order_number} completed via {source} "
        f"({payment_method}, {purchase.price})"
    )

    notify_purchase_completed(session, purchase, background_tasks)
    return purchase, True


def _supersede(
    session: Session,
    purchase: Purchase,
    payment_method: Optional[str],
    payment_id: Optional[str],
    source: str,
):
    """Expire a pending purchase whose prompt the buyer already owns."""
    paid = bool(payment_id) and payment_method != PaymentMethod.free.value
    if not _transition(session, purchase.id, PurchaseStatus.pending, PurchaseStatus.expired):
        session.rollback()
        session.refresh(purchase)
        return

    log_purchase_event(
        session,
        purchase.id,
        "superseded",
        "Prompt already owned through another purchase",
        created_by=source,
        meta={
            "payment_method": payment_method,
            "payment_id": payment_id,
            "needs_refund": paid,
        },
    )
    session.commit()
    session.refresh(purchase)

    if paid:
        logger.error(
            f"Payment {payment_id} captured for purchase {purchase.order_number} "
            f"but buyer {purchase.buyer_id} already owns prompt {purchase.prompt_id}, "
            f"needs a manual refund"
        )
    else:
        logger.info(f"Purchase {purchase.order_number} superseded, prompt already owned")


# ---------------------------------------------------------
# Workflow
# ---------------------------------------------------------

def _unique_order_number(session: Session) -> str:
    while True:
        candidate = generate_order_number()
        taken = session.exec(
            select(Purchase.id).where(Purchase.order_number == candidate)
        ).first()
        if taken is None:
            return candidate


def initiate(
    session: Session,
    buyer: User,
    prompt: Prompt,
    chosen_price: Optional[Decimal] = None,
) -> Purchase:
    if prompt.seller_id == buyer.id:
        raise CannotPurchaseOwnPrompt()
    if not prompt.is_approved:
        raise PromptUnavailable()
    if has_purchased(session, buyer.id, prompt.id):
        raise AlreadyOwned()

    price = resolve_price(prompt, chosen_price)
    platform_fee, seller_earnings = calculate_fees(price)

    # one open purchase per buyer and prompt
    existing = session.exec(
        select(Purchase)
        .where(
            Purchase.buyer_id == buyer.id,
            Purchase.prompt_id == prompt.id,
            Purchase.status == PurchaseStatus.pending,
        )
        .order_by(Purchase.created_at.desc(), Purchase.id.desc())
    ).first()
    if existing is not None:
        if Decimal(existing.price) == price:
            logger.info(f"Reusing pending purchase {existing.order_number} for buyer {buyer.id}")
            return existing
        if _transition(session, existing.id, PurchaseStatus.pending, PurchaseStatus.expired):
            log_purchase_event(
                session,
                existing.id,
                "superseded",
                "Replaced by a purchase at a new price",
                created_by=f"user:{buyer.id}",
                meta={"old_price": str(existing.price), "new_price": str(price)},
            )

    purchase = Purchase(
        order_number=_unique_order_number(session),
        buyer_id=buyer.id,
        prompt_id=prompt.id,
        price=price,
        platform_fee=platform_fee,
        seller_earnings=seller_earnings,
        status=PurchaseStatus.pending,
    )
    session.add(purchase)
    session.flush()

    log_purchase_event(
        session,
        purchase.id,
        "created",
        "Purchase created",
        created_by=f"user:{buyer.id}",
        meta={"price": str(price)},
    )
    session.commit()
    session.refresh(purchase)

    logger.info(
        f"Purchase {purchase.order_number} created: buyer {buyer.id}, "
        f"prompt {prompt.id}, price {price}"
    )
    return purchase


def complete_free(
    session: Session,
    purchase: Purchase,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Purchase:
    if purchase.is_completed:
        return purchase
    if Decimal(purchase.price) > 0:
        raise InvalidPurchaseState("Only free purchases can be completed without payment.")
    if not purchase.is_pending:
        raise InvalidPurchaseState()

    purchase, _ = _complete(
        session,
        purchase,
        PaymentMethod.free.value,
        f"free_{purchase.order_number}",
        source="free",
        background_tasks=background_tasks,
    )
    if not purchase.is_owned:
        raise AlreadyOwned()
    return purchase


def _metadata(purchase: Purchase) -> PurchaseMetadata:
    return PurchaseMetadata(
        purchase_id=purchase.id,
        order_number=purchase.order_number,
        buyer_id=purchase.buyer_id,
        prompt_id=purchase.prompt_id,
    )


def create_payment_intent(
    session: Session,
    purchase: Purchase,
    gateway: PaymentGateway,
) -> PaymentIntentResult:
    if not purchase.is_pending:
        raise InvalidPurchaseState("Only pending purchases can be paid.")
    if Decimal(purchase.price) <= 0:
        raise InvalidPurchaseState("Free purchases do not need a payment.")
    if not gateway.is_configured():
        logger.error(f"{gateway.name} is not configured, cannot pay {purchase.order_number}")
        raise PaymentInitializationFailed("Payment processing is not configured.")

    prompt = session.get(Prompt, purchase.prompt_id)
    amount = to_minor_units(purchase.price)

    try:
        intent = gateway.create_intent(
            amount,
            settings.CURRENCY,
            _metadata(purchase),
            description=f"Purchase: {prompt.title if prompt else purchase.order_number}",
        )
    except GatewayError as e:
        logger.error(f"Payment intent for purchase {purchase.id} failed: {e.message}")
        raise PaymentInitializationFailed() from e

    log_purchase_event(
        session,
        purchase.id,
        "payment_intent_created",
        "Payment started",
        created_by=f"user:{purchase.buyer_id}",
        meta={"provider": gateway.name, "intent_id": intent.id},
    )
    purchase.payment_intent_id = intent.id
    purchase.updated_at = datetime.utcnow()
    session.add(purchase)
    session.commit()

    return PaymentIntentResult(
        client_secret=intent.client_secret,
        intent_id=intent.id,
        amount=amount,
        currency=settings.CURRENCY,
        publishable_key=gateway.publishable_key,
    )


def confirm_payment(
    session: Session,
    purchase: Purchase,
    buyer: User,
    intent_id: str,
    gateway: PaymentGateway,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Purchase:
    """Client-side confirmation after the provider reports success in the browser."""
    if purchase.buyer_id != buyer.id:
        raise NotPurchaseOwner()
    if purchase.is_completed:
        return purchase
    if not purchase.is_pending:
        raise InvalidPurchaseState()

    try:
        intent = gateway.retrieve_intent(intent_id)
    except GatewayError as e:
        logger.error(f"Could not verify payment {intent_id} for purchase {purchase.id}: {e.message}")
        raise PaymentNotCompleted("Failed to verify payment. Please contact support.") from e

    if purchase.payment_intent_id and intent.id != purchase.payment_intent_id and not intent.metadata:
        logger.warning(f"Payment {intent_id} is not the intent started for purchase {purchase.id}")
        raise PaymentNotCompleted("Payment does not match this purchase.")

    if intent.metadata and intent.metadata.purchase_id != purchase.id:
        logger.warning(
            f"Payment {intent_id} belongs to purchase {intent.metadata.purchase_id}, "
            f"not {purchase.id}"
        )
        raise PaymentNotCompleted("Payment does not match this purchase.")

    if not intent.succeeded:
        logger.info(f"Payment {intent_id} for purchase {purchase.id} is {intent.status.value}")
        raise PaymentNotCompleted()

    if intent.amount != to_minor_units(purchase.price):
        logger.warning(
            f"Payment {intent_id} amount {from_minor_units(intent.amount)} "
            f"does not match purchase {purchase.id} price {purchase.price}"
        )
        raise PaymentNotCompleted("Payment amount does not match the purchase price.")

    purchase, _ = _complete(
        session,
        purchase,
        gateway.name,
        intent.id,
        source="confirm",
        background_tasks=background_tasks,
    )
    if not purchase.is_owned:
        raise AlreadyOwned("You already own this prompt. This payment will be refunded.")
    return purchase


def _find_event_purchase(session: Session, event: WebhookEvent) -> Optional[Purchase]:
    if event.metadata:
        purchase = session.get(Purchase, event.metadata.purchase_id)
        if purchase:
            return purchase
    if event.intent_id:
        return session.exec(
            select(Purchase)
            .where(
                or_(
                    Purchase.payment_intent_id == event.intent_id,
                    Purchase.payment_id == event.intent_id,
                )
            )
            .order_by(Purchase.id.desc())
        ).first()
    return None


def handle_webhook_event(
    session: Session,
    payload: bytes,
    signature: Optional[str],
    secret: Optional[str],
    gateway: PaymentGateway,
    background_tasks: Optional[BackgroundTasks] = None,
) -> WebhookResult:
    event = gateway.verify_webhook_signature(payload, signature, secret)
    if event is None:
        logger.warning(f"Rejected {gateway.name} webhook with a bad signature")
        return WebhookResult(status=WebhookStatus.invalid_signature)

    logger.info(f"{gateway.name} webhook {event.raw_type} ({event.id})")

    if event.type == WebhookEventType.payment_succeeded:
        return _on_payment_succeeded(session, event, gateway, background_tasks)
    if event.type == WebhookEventType.payment_failed:
        return _on_payment_failed(session, event)
    if event.type == WebhookEventType.dispute_created:
        return _on_dispute_created(session, event, background_tasks)

    return WebhookResult(status=WebhookStatus.ignored, event_type=event.raw_type)


def _on_payment_succeeded(
    session: Session,
    event: WebhookEvent,
    gateway: PaymentGateway,
    background_tasks: Optional[BackgroundTasks],
) -> WebhookResult:
    purchase = _find_event_purchase(session, event)
    if purchase is None:
        logger.warning(f"No purchase for payment {event.intent_id} ({event.id})")
        return WebhookResult(status=WebhookStatus.ignored, event_type=event.raw_type)

    if purchase.is_owned:
        logger.info(f"Purchase {purchase.order_number} already {purchase.status.value}, duplicate {event.id}")
        return WebhookResult(
            status=WebhookStatus.duplicate, event_type=event.raw_type, purchase_id=purchase.id
        )

    if not purchase.is_pending:
        logger.error(
            f"Payment {event.intent_id} succeeded for purchase {purchase.order_number} "
            f"in state {purchase.status.value}, needs a manual refund"
        )
        return WebhookResult(
            status=WebhookStatus.ignored, event_type=event.raw_type, purchase_id=purchase.id
        )

    purchase, won = _complete(
        session,
        purchase,
        gateway.name,
        event.intent_id,
        source="webhook",
        background_tasks=background_tasks,
    )
    return WebhookResult(
        status=WebhookStatus.processed if won else WebhookStatus.duplicate,
        event_type=event.raw_type,
        purchase_id=purchase.id,
    )


def _on_payment_failed(session: Session, event: WebhookEvent) -> WebhookResult:
    purchase = _find_event_purchase(session, event)
    if purchase is None or not purchase.is_pending:
        return WebhookResult(status=WebhookStatus.ignored, event_type=event.raw_type)

    reason = event.failure_reason or "unknown"
    log_purchase_event(
        session,
        purchase.id,
        "payment_failed",
        "Payment failed",
        created_by="webhook",
        meta={"intent_id": event.intent_id, "reason": reason},
    )
    session.commit()

    logger.warning(f"Payment failed for purchase {purchase.order_number}: {reason}")
    return WebhookResult(
        status=WebhookStatus.processed, event_type=event.raw_type, purchase_id=purchase.id
    )


def _on_dispute_created(
    session: Session,
    event: WebhookEvent,
    background_tasks: Optional[BackgroundTasks],
) -> WebhookResult:
    purchase = _find_event_purchase(session, event)
    if purchase is None:
        logger.warning(f"Dispute {event.id} for unknown payment {event.intent_id}")
        return WebhookResult(status=WebhookStatus.ignored, event_type=event.raw_type)

    if purchase.status == PurchaseStatus.disputed:
        return WebhookResult(
            status=WebhookStatus.duplicate, event_type=event.raw_type, purchase_id=purchase.id
        )

    try:
        mark_disputed(
            session,
            purchase,
            reason=event.failure_reason,
            source="webhook",
            background_tasks=background_tasks,
        )
    except InvalidPurchaseState:
        logger.warning(
            f"Dispute {event.id} on purchase {purchase.order_number} "
            f"in state {purchase.status.value}"
        )
        return WebhookResult(
            status=WebhookStatus.ignored, event_type=event.raw_type, purchase_id=purchase.id
        )

    return WebhookResult(
        status=WebhookStatus.processed, event_type=event.raw_type, purchase_id=purchase.id
    )


def refund(
    session: Session,
    purchase: Purchase,
    gateway: PaymentGateway,
    amount: Optional[Decimal] = None,
    actor: str = "admin",
    background_tasks: Optional[BackgroundTasks] = None,
) -> RefundResult:
    """
    completed -> refunding -> refunded.

    The row is claimed before the provider is called, so concurrent
    refunds of one purchase reach the provider at most once. A provider
    failure hands the purchase back to ``completed``.
    """
    if not purchase.is_completed or not purchase.payment_id:
        raise InvalidPurchaseState("Only completed, paid purchases can be refunded.")

    price = Decimal(purchase.price)
    if amount is not None:
        amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
        if amount <= 0 or amount > price:
            raise PreconditionFailed("Refund amount must be positive and no more than the price.")

    claimed = _transition(session, purchase.id, PurchaseStatus.completed, PurchaseStatus.refunding)
    if not claimed:
        session.rollback()
        session.refresh(purchase)
        logger.warning(
            f"Refund of purchase {purchase.order_number} skipped, "
            f"it is already {purchase.status.value}"
        )
        raise InvalidPurchaseState(
            f"Purchase {purchase.order_number} is already {purchase.status.value}."
        )
    session.commit()

    if purchase.payment_method == PaymentMethod.free.value:
        refund_id, refund_status, refunded = f"free_refund_{purchase.order_number}", "succeeded", Decimal("0.00")
    else:
        try:
            gateway_refund = gateway.issue_refund(
                purchase.payment_id,
                to_minor_units(amount) if amount is not None else None,
                _metadata(purchase),
            )
        except GatewayError as e:
            _transition(session, purchase.id, PurchaseStatus.refunding, PurchaseStatus.completed)
            session.commit()
            session.refresh(purchase)
            logger.error(f"Refund for purchase {purchase.order_number} failed: {e.message}")
            raise GatewayError("Failed to process refund. Please contact support.") from e
        refund_id = gateway_refund.id
        refund_status = gateway_refund.status
        refunded = from_minor_units(gateway_refund.amount)

    _transition(
        session,
        purchase.id,
        PurchaseStatus.refunding,
        PurchaseStatus.refunded,
        refunded_at=datetime.utcnow(),
    )
    _apply_sale(session, purchase, -1)
    log_purchase_event(
        session,
        purchase.id,
        "refunded",
        "Purchase refunded",
        created_by=actor,
        meta={"refund_id": refund_id, "amount": str(refunded)},
    )
    session.commit()
    session.refresh(purchase)

    logger.info(f"Purchase {purchase.order_number} refunded ({refund_id}, {refunded})")
    if purchase.payout_id is not None:
        logger.warning(
            f"Purchase {purchase.order_number} was refunded after joining payout {purchase.payout_id}"
        )

    notify_purchase_refunded(session, purchase, background_tasks)
    return RefundResult(refund_id, refund_status, refunded, purchase)


def mark_disputed(
    session: Session,
    purchase: Purchase,
    reason: Optional[str] = None,
    source: str = "admin",
    background_tasks: Optional[BackgroundTasks] = None,
) -> Purchase:
    previous = PurchaseStatus(purchase.status)
    if not can_transition(previous, PurchaseStatus.disputed):
        raise InvalidPurchaseState(f"A {previous.value} purchase cannot be disputed.")

    won = _transition(session, purchase.id, previous, PurchaseStatus.disputed)
    if not won:
        session.rollback()
        session.refresh(purchase)
        raise InvalidPurchaseState(
            f"Purchase {purchase.order_number} changed to {purchase.status.value}."
        )

    if previous == PurchaseStatus.completed:
        _apply_sale(session, purchase, -1)

    log_purchase_event(
        session,
        purchase.id,
        "disputed",
        "Payment disputed",
        created_by=source,
        meta={"reason": reason, "previous_status": previous.value},
    )
    session.commit()
    session.refresh(purchase)

    logger.warning(f"Purchase {purchase.order_number} disputed: {reason or 'no reason'}")

    notify_purchase_disputed(session, purchase, reason, background_tasks)
    return purchase
