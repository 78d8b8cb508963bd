import logging
from typing import Optional

import stripe

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

STRIPE_EVENT_TYPES = {
    "payment_intent.succeeded": WebhookEventType.payment_succeeded,
    "payment_intent.payment_failed": WebhookEventType.payment_failed,
    "charge.dispute.created": WebhookEventType.dispute_created,
}

STRIPE_INTENT_STATES = {
    "succeeded": IntentState.succeeded,
    "processing": IntentState.processing,
    "requires_payment_method": IntentState.requires_action,
    "requires_confirmation": IntentState.requires_action,
    "requires_action": IntentState.requires_action,
    "requires_capture": IntentState.requires_action,
    "canceled": IntentState.canceled,
}


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(
        self,
        secret_key: Optional[str],
        publishable_key: Optional[str],
        timeout: int = 20,
    ):
        self._publishable_key = publishable_key
        self.client = None
        if secret_key:
            # one attempt per call, the caller decides whether to try again
            self.client = stripe.StripeClient(
                secret_key,
                max_network_retries=0,
                http_client=stripe.RequestsClient(timeout=timeout),
            )

    def is_configured(self) -> bool:
        return self.client is not None and bool(self._publishable_key)

    @property
    def publishable_key(self) -> Optional[str]:
        return self._publishable_key

    def _require_configured(self):
        if not self.is_configured():
            raise GatewayError("Payment processing is not configured.")

    def create_intent(
        self, amount: int, currency: str, metadata: PurchaseMetadata, description: str = ""
    ) -> GatewayIntent:
        self._require_configured()
        try:
            intent = self.client.payment_intents.create(
                params={
                    "amount": amount,
                    "currency": currency,
                    "metadata": metadata.to_dict(),
                    "description": description or f"Purchase {metadata.order_number}",
                }
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe intent creation failed for purchase {metadata.purchase_id}: {e}")
            raise GatewayError(str(e)) from e

        return GatewayIntent(id=intent["id"], client_secret=intent["client_secret"])

    def retrieve_intent(self, intent_id: str) -> IntentStatus:
        self._require_configured()
        try:
            intent = self.client.payment_intents.retrieve(intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe intent lookup failed for {intent_id}: {e}")
            raise GatewayError(str(e)) from e

        return IntentStatus(
            id=intent["id"],
            status=STRIPE_INTENT_STATES.get(intent["status"], IntentState.failed),
            amount=intent["amount"],
            currency=intent["currency"],
            metadata=PurchaseMetadata.from_dict(dict(intent.get("metadata") or {})),
        )

    def verify_webhook_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str]
    ) -> Optional[WebhookEvent]:
        if not signature or not secret:
            logger.warning("Stripe webhook without signature or secret")
            return None
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as e:
            logger.warning(f"Invalid Stripe webhook payload: {e}")
            return None
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid Stripe webhook signature: {e}")
            return None

        obj = event["data"]["object"]
        event_type = STRIPE_EVENT_TYPES.get(event["type"], WebhookEventType.other)

        failure_reason = None
        last_error = obj.get("last_payment_error")
        if last_error:
            failure_reason = last_error.get("message")

        if event_type == WebhookEventType.dispute_created:
            intent_id = obj.get("payment_intent")
            failure_reason = obj.get("reason")
        else:
            intent_id = obj.get("id")

        return WebhookEvent(
            id=event["id"],
            type=event_type,
            raw_type=event["type"],
            intent_id=intent_id,
            metadata=PurchaseMetadata.from_dict(dict(obj.get("metadata") or {})),
            failure_reason=failure_reason,
        )

    def issue_refund(
        self, intent_id: str, amount: Optional[int], metadata: PurchaseMetadata
    ) -> GatewayRefund:
        self._require_configured()
        params = {
            "payment_intent": intent_id,
            "metadata": {**metadata.to_dict(), "reason": "Customer requested refund"},
        }
        if amount is not None:
            params["amount"] = amount
        try:
            refund = self.client.refunds.create(
                params=params,
                options={"idempotency_key": f"refund-{metadata.purchase_id}"},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for purchase {metadata.purchase_id}: {e}")
            raise GatewayError(str(e)) from e

        return GatewayRefund(id=refund["id"], status=refund["status"], amount=refund["amount"])
