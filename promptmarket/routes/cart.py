from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session

from promptmarket.database import get_session
from promptmarket.models.user import User
from promptmarket.schemas.purchase_schemas import PurchaseRead
from promptmarket.services import cart_service
from promptmarket.utils.token import get_current_user

router = APIRouter()


@router.get("")
def get_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return cart_service.cart_summary(session, current_user)


@router.post("/add/{prompt_id}", status_code=201)
def add_to_cart(
    prompt_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    item = cart_service.add_to_cart(session, current_user, prompt_id)
    return {"message": "Added to cart", "item": item}


@router.delete("/clear")
def clear_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    cart_service.clear_cart(session, current_user.id)
    return {"message": "Cart cleared"}


@router.delete("/{item_id}")
def remove_item(
    item_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    cart_service.remove_cart_item(session, current_user, item_id)
    return {"message": "Item removed"}


@router.post("/validate")
def validate_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    result = cart_service.validate_cart(session, current_user)
    return {"items": len(result["items"]), "removed": result["removed"]}


@router.post("/checkout")
def checkout(
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    result = cart_service.checkout_cart(session, current_user, background_tasks)
    return {
        "pending": [PurchaseRead.model_validate(p) for p in result["pending"]],
        "completed": [PurchaseRead.model_validate(p) for p in result["completed"]],
        "removed": result["removed"],
    }
