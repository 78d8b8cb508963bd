import logging
from typing import Optional

from sqlmodel import Session, select

from promptmarket.errors import PreconditionFailed
from promptmarket.models.user import User, UserRole
from promptmarket.services.profile_service import get_or_create_profile
from promptmarket.utils.hash import hash_password, verify_password

logger = logging.getLogger(__name__)


def get_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == email.lower())).first()


def register_user(
    session: Session,
    name: str,
    email: str,
    password: str,
    role: UserRole = UserRole.buyer,
) -> User:
    if get_by_email(session, email):
        raise PreconditionFailed("Email already registered")

    user = User(
        name=name,
        email=email.lower(),
        password=hash_password(password),
        role=role,
    )
    session.add(user)
    session.flush()
    get_or_create_profile(session, user.id)
    session.commit()
    session.refresh(user)

    logger.info(f"User {user.id} registered as {user.role.value}")
    return user


def authenticate(session: Session, email: str, password: str) -> Optional[User]:
    user = get_by_email(session, email)
    if not user or not verify_password(password, user.password):
        return None
    if not user.is_active:
        return None
    return user
