from fastapi import APIRouter, Depends
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.schemas.category_schemas import CategoryRead, TagRead
from promptmarket.services import prompt_service

router = APIRouter()


@router.get("/categories", response_model=list[CategoryRead])
def list_categories(session: Session = Depends(get_session)):
    return prompt_service.list_categories(session)


@router.get("/tags", response_model=list[TagRead])
def list_tags(session: Session = Depends(get_session)):
    return prompt_service.list_tags(session)
