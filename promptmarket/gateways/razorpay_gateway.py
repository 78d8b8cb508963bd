import json
import logging
from typing import Optional

import razorpay
import requests

from promptmarket.errors import GatewayError
from promptmarket.gateways.base import (
    GatewayIntent,
    GatewayRefund,
    IntentState,
    IntentStatus,
    PaymentGateway,
    PurchaseMetadata,
    WebhookEvent,
    WebhookEventType,
)

logger = logging.getLogger(__name__)

RAZORPAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.ServerError,
    razorpay.errors.GatewayError,
    requests.RequestException,
)

RAZORPAY_EVENT_TYPES = {
    "order.paid": WebhookEventType.payment_succeeded,
    "payment.captured": WebhookEventType.payment_succeeded,
    "payment.failed": WebhookEventType.payment_failed,
    "payment.dispute.created": WebhookEventType.dispute_created,
}

# Razorpay orders stand in for payment intents
RAZORPAY_ORDER_STATES = {
    "paid": IntentState.succeeded,
    "attempted": IntentState.processing,
    "created": IntentState.requires_action,
}


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    def __init__(self, key_id: Optional[str], key_secret: Optional[str]):
        self.key_id = key_id
        self.key_secret = key_secret
        self.client = razorpay.Client(auth=(key_id or "", key_secret or ""))

    def is_configured(self) -> bool:
        return bool(self.key_id) and bool(self.key_secret)

    @property
    def publishable_key(self) -> Optional[str]:
        return self.key_id

    def _require_configured(self):
        if not self.is_configured():
            raise GatewayError("Payment processing is not configured.")

    def create_intent(
        self, amount: int, currency: str, metadata: PurchaseMetadata, description: str = ""
    ) -> GatewayIntent:
        self._require_configured()
        try:
            order = self.client.order.create({
                "amount": amount,
                "currency": currency.upper(),
                "receipt": metadata.order_number,
                "notes": metadata.to_dict(),
            })
        except RAZORPAY_ERRORS as e:
            logger.error(f"Razorpay order creation failed for purchase {metadata.purchase_id}: {e}")
            raise GatewayError(str(e)) from e

        # checkout.js opens with the order id, there is no separate secret
        return GatewayIntent(id=order["id"], client_secret=order["id"])

    def _captured_payment_id(self, order_id: str) -> Optional[str]:
        payments = self.client.order.payments(order_id)
        for payment in payments.get("items", []):
            if payment.get("status") == "captured":
                return payment["id"]
        return None

    def retrieve_intent(self, intent_id: str) -> IntentStatus:
        self._require_configured()
        try:
            order = self.client.order.fetch(intent_id)
        except RAZORPAY_ERRORS as e:
            logger.error(f"Razorpay order lookup failed for {intent_id}: {e}")
            raise GatewayError(str(e)) from e

        return IntentStatus(
            id=order["id"],
            status=RAZORPAY_ORDER_STATES.get(order.get("status"), IntentState.failed),
            amount=order["amount"],
            currency=order["currency"].lower(),
            metadata=PurchaseMetadata.from_dict(order.get("notes") or {}),
        )

    def verify_webhook_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str]
    ) -> Optional[WebhookEvent]:
        if not signature or not secret:
            logger.warning("Razorpay webhook without signature or secret")
            return None

        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            self.client.utility.verify_webhook_signature(body, signature, secret)
            event = json.loads(body)
        except razorpay.errors.SignatureVerificationError as e:
            logger.warning(f"Invalid Razorpay webhook signature: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Invalid Razorpay webhook payload: {e}")
            return None

        raw_type = event.get("event", "")
        event_type = RAZORPAY_EVENT_TYPES.get(raw_type, WebhookEventType.other)
        entities = event.get("payload", {})
        payment = entities.get("payment", {}).get("entity", {})
        order = entities.get("order", {}).get("entity", {})

        notes = payment.get("notes") or order.get("notes") or {}
        failure_reason = payment.get("error_description")
        if event_type == WebhookEventType.dispute_created:
            failure_reason = entities.get("dispute", {}).get("entity", {}).get("reason_code")

        return WebhookEvent(
            id=f"{raw_type}:{payment.get('id') or order.get('id')}",
            type=event_type,
            raw_type=raw_type,
            intent_id=payment.get("order_id") or order.get("id"),
            metadata=PurchaseMetadata.from_dict(notes),
            failure_reason=failure_reason,
        )

    def issue_refund(
        self, intent_id: str, amount: Optional[int], metadata: PurchaseMetadata
    ) -> GatewayRefund:
        self._require_configured()
        try:
            payment_id = self._captured_payment_id(intent_id)
            if payment_id is None:
                raise GatewayError(f"No captured payment for order {intent_id}")

            data = {
                "receipt": f"refund-{metadata.purchase_id}",
                "notes": {**metadata.to_dict(), "reason": "Customer requested refund"},
            }
            if amount is not None:
                data["amount"] = amount
            refund = self.client.payment.refund(payment_id, data)
        except RAZORPAY_ERRORS as e:
            logger.error(f"Razorpay refund failed for purchase {metadata.purchase_id}: {e}")
            raise GatewayError(str(e)) from e

        return GatewayRefund(id=refund["id"], status=refund["status"], amount=refund["amount"])
