from typing import Optional

from sqlmodel import SQLModel


class CategoryCreate(SQLModel):
    name: str
    description: Optional[str] = None


class CategoryRead(SQLModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    is_active: bool


class TagRead(SQLModel):
    id: int
    name: str
    slug: str
