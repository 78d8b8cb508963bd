from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlmodel import Session

from promptmarket.config import settings
from promptmarket.database import get_session
from promptmarket.errors import InvalidSignature
from promptmarket.gateways import SIGNATURE_HEADERS, PaymentGateway, get_webhook_gateway
from promptmarket.services import purchase_service
from promptmarket.services.purchase_service import WebhookStatus

router = APIRouter()


@router.post("/webhook/{provider}")
async def payment_webhook(
    provider: str,
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_webhook_gateway),
):
    # signature is computed over the exact bytes, never re-serialize
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADERS[provider])

    result = purchase_service.handle_webhook_event(
        session,
        payload,
        signature,
        settings.webhook_secrets.get(provider),
        gateway,
        background_tasks,
    )

    if result.status == WebhookStatus.invalid_signature:
        raise InvalidSignature()

    return {"status": result.status.value}
