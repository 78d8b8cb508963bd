from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.dependencies.roles import require_seller
from promptmarket.models.user import User
from promptmarket.schemas.payout_schemas import PayoutRead
from promptmarket.services import payout_service
from promptmarket.utils.pagination import serialize_page

router = APIRouter()


@router.get("/me")
def my_payouts(
    page: int = Query(1, ge=1),
    limit: int = Query(15, ge=1, le=100),
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller),
):
    result = payout_service.payout_history(session, seller.id, page=page, limit=limit)
    return serialize_page(result, PayoutRead)


@router.get("/earnings")
def my_earnings(
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller),
):
    return payout_service.earnings_summary(session, seller.id)
