from datetime import datetime
from typing import Optional

from pydantic import Field
from sqlmodel import SQLModel


class ReviewCreate(SQLModel):
    # range is checked in the service so the error stays typed
    rating: int
    title: Optional[str] = Field(default=None, max_length=200)
    content: Optional[str] = None


class ReviewUpdate(SQLModel):
    rating: int | None = None
    title: str | None = None
    content: str | None = None


class ReviewRespond(SQLModel):
    response: str = Field(min_length=1)


class ReviewRead(SQLModel):
    id: int
    prompt_id: int
    user_id: int
    purchase_id: int
    rating: int
    title: Optional[str] = None
    content: Optional[str] = None
    helpful_count: int
    seller_response: Optional[str] = None
    seller_responded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime | None = None
