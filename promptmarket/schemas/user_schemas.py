from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional

from promptmarket.models.user import UserRole


class UserRegister(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=8)
    confirm_password: str
    # admins are never self-registered
    role: UserRole = UserRole.buyer

    @model_validator(mode="after")
    def validate_passwords(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        if self.role == UserRole.admin:
            raise ValueError("Cannot register as admin")
        return self


class UserResponse(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: UserRole
    capabilities: list[str]


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str


class ProfileUpdate(BaseModel):
    bio: Optional[str] = None
    website: Optional[str] = None
    payout_method: Optional[str] = None
    payout_details: Optional[dict] = None


class ProfileRead(BaseModel):
    bio: Optional[str] = None
    website: Optional[str] = None
    seller_verified: bool
    total_sales: int
    total_earnings: Decimal
    payout_method: Optional[str] = None

    model_config = {"from_attributes": True}
