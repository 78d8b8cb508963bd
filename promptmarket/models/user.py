from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON
from typing import List, Optional, TYPE_CHECKING
from datetime import datetime
from decimal import Decimal
from enum import Enum

if TYPE_CHECKING:
    from .prompt import Prompt


class UserRole(str, Enum):
    buyer = "buyer"
    seller = "seller"
    admin = "admin"


class Capability(str, Enum):
    can_buy = "can_buy"
    can_sell = "can_sell"
    can_moderate = "can_moderate"


ROLE_CAPABILITIES = {
    UserRole.buyer: frozenset({Capability.can_buy}),
    UserRole.seller: frozenset({Capability.can_buy, Capability.can_sell}),
    UserRole.admin: frozenset(
        {Capability.can_buy, Capability.can_sell, Capability.can_moderate}
    ),
}


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    password: str
    role: UserRole = Field(default=UserRole.buyer)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    profile: Optional["UserProfile"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"uselist": False},
    )
    prompts: List["Prompt"] = Relationship(back_populates="seller")

    @property
    def capabilities(self) -> frozenset:
        return ROLE_CAPABILITIES.get(UserRole(self.role), frozenset())

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


class UserProfile(SQLModel, table=True):
    __tablename__ = "user_profile"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)

    bio: Optional[str] = None
    website: Optional[str] = None

    # cached seller aggregates, source of truth is the purchase table
    seller_verified: bool = Field(default=False)
    total_sales: int = Field(default=0)
    total_earnings: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)

    payout_method: Optional[str] = None
    payout_details: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    user: Optional[User] = Relationship(back_populates="profile")
