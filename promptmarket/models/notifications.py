from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class RecipientRole(str, Enum):
    admin = "admin"
    buyer = "buyer"
    seller = "seller"


class RelatedObject(str, Enum):
    purchase = "purchase"
    prompt = "prompt"


class Notification(SQLModel, table=True):
    """In-app feed entry. Admin entries have no user_id and are shared by all moderators."""

    id: Optional[int] = Field(default=None, primary_key=True)

    recipient_role: RecipientRole
    user_id: Optional[int] = Field(default=None, index=True)

    trigger_source: str = Field(index=True)  # MarketplaceEvent value
    related_type: RelatedObject = RelatedObject.purchase
    related_id: int

    title: str
    content: str

    is_read: bool = False
    read_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
