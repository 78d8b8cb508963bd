from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, Text
from typing import Optional, TYPE_CHECKING, List
from datetime import datetime
from decimal import Decimal
from enum import Enum

from promptmarket.models.tag import PromptTagLink

if TYPE_CHECKING:
    from .category import Category
    from .tag import Tag
    from .user import User


class PricingModel(str, Enum):
    fixed = "fixed"
    pay_what_you_want = "pay_what_you_want"
    free = "free"


class PromptStatus(str, Enum):
    draft = "draft"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class Prompt(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    seller_id: int = Field(foreign_key="user.id", index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="category.id", index=True)

    title: str
    slug: str = Field(index=True, unique=True)
    description: str
    # the sellable text, never part of listings
    content: str = Field(sa_column=Column(Text, nullable=False))
    ai_model: Optional[str] = Field(default=None, index=True)

    # Pricing
    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    pricing_model: PricingModel = Field(default=PricingModel.fixed)
    min_price: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)

    version: int = Field(default=1)
    status: PromptStatus = Field(default=PromptStatus.draft, index=True)
    featured: bool = Field(default=False)
    rejection_reason: Optional[str] = None

    # Counters, only ever changed through atomic UPDATEs
    views_count: int = Field(default=0)
    purchases_count: int = Field(default=0)
    rating: Decimal = Field(default=Decimal("0"), max_digits=3, decimal_places=2)
    rating_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    seller: Optional["User"] = Relationship(back_populates="prompts")
    category: Optional["Category"] = Relationship(back_populates="prompts")
    tags: List["Tag"] = Relationship(back_populates="prompts", link_model=PromptTagLink)

    @property
    def is_free(self) -> bool:
        return self.pricing_model == PricingModel.free or self.price <= 0

    @property
    def is_pay_what_you_want(self) -> bool:
        return self.pricing_model == PricingModel.pay_what_you_want

    @property
    def is_approved(self) -> bool:
        return self.status == PromptStatus.approved

    @property
    def effective_price(self) -> Decimal:
        if self.pricing_model == PricingModel.free:
            return Decimal("0.00")
        return Decimal(self.price)
