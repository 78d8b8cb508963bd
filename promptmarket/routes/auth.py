from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.models.user import User
from promptmarket.schemas.user_schemas import (
    ProfileRead,
    ProfileUpdate,
    Token,
    UserLogin,
    UserRegister,
    UserResponse,
)
from promptmarket.services import profile_service, user_service
from promptmarket.utils.token import create_access_token, get_current_user

router = APIRouter()


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        capabilities=sorted(c.value for c in user.capabilities),
    )


@router.post("/register", response_model=UserResponse, status_code=201)
def register_user(payload: UserRegister, session: Session = Depends(get_session)):
    user = user_service.register_user(
        session,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
    )
    return _user_response(user)


@router.post("/login", response_model=Token)
def login(payload: UserLogin, session: Session = Depends(get_session)):
    user = user_service.authenticate(session, payload.email, payload.password)

    if not user:
        raise HTTPException(401, "Invalid email or password")

    token = create_access_token({"user_id": user.id})
    return Token(access_token=token, token_type="bearer")


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return _user_response(current_user)


# -------- PROFILE --------

@router.get("/me/profile", response_model=ProfileRead)
def get_my_profile(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return profile_service.get_or_create_profile(session, current_user.id)


@router.patch("/me/profile", response_model=ProfileRead)
def update_my_profile(
    data: ProfileUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return profile_service.update_profile(
        session, current_user.id, data.model_dump(exclude_unset=True)
    )
