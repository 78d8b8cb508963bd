from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

if TYPE_CHECKING:
    from .user import User


class PayoutStatus(str, Enum):
    pending = "pending"
    processed = "processed"
    failed = "failed"


class Payout(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=lambda: str(uuid4()), index=True, unique=True)

    seller_id: int = Field(foreign_key="user.id", index=True)
    amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    currency: str = Field(default="usd", max_length=3)

    status: PayoutStatus = Field(default=PayoutStatus.pending, index=True)
    transaction_id: Optional[str] = None
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    scheduled_for: datetime = Field(index=True)
    processed_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    seller: Optional["User"] = Relationship()

    @property
    def is_pending(self) -> bool:
        return self.status == PayoutStatus.pending
