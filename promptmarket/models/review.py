from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, Text
from typing import Optional, TYPE_CHECKING
from datetime import datetime

if TYPE_CHECKING:
    from .prompt import Prompt
    from .purchase import Purchase
    from .user import User


class Review(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    prompt_id: int = Field(foreign_key="prompt.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    purchase_id: int = Field(foreign_key="purchase.id", unique=True)

    rating: int = Field(ge=1, le=5, index=True)
    title: Optional[str] = None
    content: Optional[str] = Field(default=None, sa_column=Column(Text))
    helpful_count: int = Field(default=0)

    seller_response: Optional[str] = Field(default=None, sa_column=Column(Text))
    seller_responded_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    prompt: Optional["Prompt"] = Relationship()
    user: Optional["User"] = Relationship()
    purchase: Optional["Purchase"] = Relationship(back_populates="review")

    @property
    def has_seller_response(self) -> bool:
        return bool(self.seller_response)
