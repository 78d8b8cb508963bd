from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field
from sqlmodel import SQLModel

from promptmarket.models.purchase import PurchaseStatus


class PurchaseCreate(SQLModel):
    # only read for pay-what-you-want prompts
    chosen_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)


class ConfirmPaymentRequest(SQLModel):
    payment_intent_id: str


class RefundRequest(SQLModel):
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)


class DisputeRequest(SQLModel):
    reason: Optional[str] = None


class PurchaseRead(SQLModel):
    id: int
    order_number: str
    buyer_id: int
    prompt_id: int
    price: Decimal
    platform_fee: Decimal
    seller_earnings: Decimal
    payment_method: Optional[str] = None
    status: PurchaseStatus
    purchased_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime


class PaymentIntentRead(SQLModel):
    client_secret: str
    payment_intent_id: str
    publishable_key: Optional[str] = None
    amount: int
    currency: str
