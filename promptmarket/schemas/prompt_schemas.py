from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator
from sqlmodel import SQLModel

from promptmarket.models.prompt import PricingModel, PromptStatus


class PromptCreate(SQLModel):
    title: str = Field(min_length=3, max_length=200)
    description: str
    content: str
    ai_model: Optional[str] = None
    category_id: Optional[int] = None
    pricing_model: PricingModel = PricingModel.fixed
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    min_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    tags: List[str] = []

    @model_validator(mode="after")
    def validate_pricing(self):
        if self.pricing_model == PricingModel.fixed and self.price <= 0:
            raise ValueError("Fixed price prompts need a price above zero")
        return self


class PromptUpdate(SQLModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = None
    content: Optional[str] = None
    ai_model: Optional[str] = None
    category_id: Optional[int] = None
    pricing_model: Optional[PricingModel] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    min_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    tags: Optional[List[str]] = None


class PromptRejectRequest(SQLModel):
    reason: str = Field(min_length=3)


class PromptRead(SQLModel):
    id: int
    seller_id: int
    category_id: Optional[int] = None
    title: str
    slug: str
    description: str
    ai_model: Optional[str] = None
    price: Decimal
    pricing_model: PricingModel
    min_price: Optional[Decimal] = None
    status: PromptStatus
    featured: bool
    views_count: int
    purchases_count: int
    rating: Decimal
    rating_count: int
    created_at: datetime


# seller's own view, includes the sellable text
class PromptOwnerRead(PromptRead):
    content: str
    version: int
    rejection_reason: Optional[str] = None
    updated_at: datetime
