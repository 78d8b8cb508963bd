from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Index, text
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from decimal import Decimal
from enum import Enum
import secrets
import string
import time

if TYPE_CHECKING:
    from .prompt import Prompt
    from .user import User
    from .review import Review


class PurchaseStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    refunded = "refunded"
    disputed = "disputed"
    expired = "expired"
    # refund claimed, provider call in flight
    refunding = "refunding"


# statuses that still grant access to the prompt
OWNED_STATUSES = (PurchaseStatus.completed, PurchaseStatus.refunding)


class PaymentMethod(str, Enum):
    free = "free"
    stripe = "stripe"
    razorpay = "razorpay"


ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number() -> str:
    random_part = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(10))
    return f"ORD-{random_part}-{int(time.time())}"


class Purchase(SQLModel, table=True):
    __table_args__ = (
        # at most one completed purchase per buyer and prompt
        Index(
            "uq_purchase_completed_owner",
            "buyer_id",
            "prompt_id",
            unique=True,
            postgresql_where=text("status = 'completed'"),
            sqlite_where=text("status = 'completed'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(
        default_factory=generate_order_number,
        max_length=50,
        index=True,
        unique=True,
    )

    buyer_id: int = Field(foreign_key="user.id", index=True)
    prompt_id: int = Field(foreign_key="prompt.id", index=True)

    price: Decimal = Field(max_digits=10, decimal_places=2)
    platform_fee: Decimal = Field(max_digits=10, decimal_places=2)
    seller_earnings: Decimal = Field(max_digits=10, decimal_places=2)

    payment_method: Optional[str] = Field(default=None, max_length=50)
    payment_id: Optional[str] = Field(default=None, index=True)
    payment_intent_id: Optional[str] = Field(default=None, index=True)

    status: PurchaseStatus = Field(default=PurchaseStatus.pending, index=True)

    purchased_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    payout_id: Optional[int] = Field(default=None, foreign_key="payout.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    buyer: Optional["User"] = Relationship()
    prompt: Optional["Prompt"] = Relationship()
    review: Optional["Review"] = Relationship(
        back_populates="purchase",
        sa_relationship_kwargs={"uselist": False},
    )

    @property
    def is_completed(self) -> bool:
        return self.status == PurchaseStatus.completed

    @property
    def is_pending(self) -> bool:
        return self.status == PurchaseStatus.pending

    @property
    def is_owned(self) -> bool:
        return self.status in OWNED_STATUSES
