from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlmodel import SQLModel

from promptmarket.models.payout import PayoutStatus


class PayoutRead(SQLModel):
    uuid: str
    seller_id: int
    amount: Decimal
    currency: str
    status: PayoutStatus
    transaction_id: Optional[str] = None
    scheduled_for: datetime
    processed_at: Optional[datetime] = None
    created_at: datetime
