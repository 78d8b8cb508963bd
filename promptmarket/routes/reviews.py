from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.models.user import User
from promptmarket.schemas.review_schemas import ReviewCreate, ReviewRead, ReviewRespond, ReviewUpdate
from promptmarket.services import prompt_service, purchase_service, review_service
from promptmarket.utils.pagination import serialize_page
from promptmarket.utils.token import get_current_user

router = APIRouter()


@router.post("/purchases/{purchase_id}", response_model=ReviewRead, status_code=201)
def create_review(
    purchase_id: int,
    data: ReviewCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    purchase = purchase_service.get_purchase(session, purchase_id)
    return review_service.create_review(
        session,
        current_user,
        purchase,
        rating=data.rating,
        title=data.title,
        content=data.content,
    )


@router.get("/prompts/{prompt_id}")
def prompt_reviews(
    prompt_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    prompt_service.get_prompt(session, prompt_id)

    result = review_service.list_prompt_reviews(session, prompt_id, page=page, limit=limit)
    result = serialize_page(result, ReviewRead)
    result["stats"] = review_service.rating_stats(session, prompt_id)
    return result


@router.put("/{review_id}", response_model=ReviewRead)
def update_review(
    review_id: int,
    data: ReviewUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    review = review_service.get_review(session, review_id)
    return review_service.update_review(
        session,
        review,
        current_user,
        rating=data.rating,
        title=data.title,
        content=data.content,
    )


@router.delete("/{review_id}")
def delete_review(
    review_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    review = review_service.get_review(session, review_id)
    review_service.delete_review(session, review, current_user)
    return {"message": "Review deleted"}


@router.post("/{review_id}/respond", response_model=ReviewRead)
def respond_to_review(
    review_id: int,
    data: ReviewRespond,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    review = review_service.get_review(session, review_id)
    return review_service.respond(session, review, current_user, data.response)


@router.post("/{review_id}/helpful", response_model=ReviewRead)
def mark_helpful(
    review_id: int,
    session: Session = Depends(get_session),
):
    review = review_service.get_review(session, review_id)
    return review_service.mark_helpful(session, review)
