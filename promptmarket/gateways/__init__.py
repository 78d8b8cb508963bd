from functools import lru_cache

from promptmarket.config import settings
from promptmarket.errors import NotFound
from promptmarket.gateways.base import (
    PaymentGateway,
    PurchaseMetadata,
    WebhookEvent,
    WebhookEventType,
    to_minor_units,
    from_minor_units,
)
from promptmarket.gateways.razorpay_gateway import RazorpayGateway
from promptmarket.gateways.stripe_gateway import StripeGateway

# header carrying the webhook signature, per provider
SIGNATURE_HEADERS = {
    "stripe": "Stripe-Signature",
    "razorpay": "X-Razorpay-Signature",
}


def build_gateway(provider: str) -> PaymentGateway:
    if provider == "stripe":
        return StripeGateway(
            settings.STRIPE_SECRET_KEY,
            settings.STRIPE_PUBLISHABLE_KEY,
            timeout=settings.PAYMENT_HTTP_TIMEOUT,
        )
    if provider == "razorpay":
        return RazorpayGateway(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
    raise ValueError(f"Unknown payment provider: {provider}")


@lru_cache(maxsize=4)
def get_gateway_for(provider: str) -> PaymentGateway:
    return build_gateway(provider)


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency: the configured checkout provider."""
    return get_gateway_for(settings.PAYMENT_PROVIDER)


def get_webhook_gateway(provider: str) -> PaymentGateway:
    """FastAPI dependency: the provider named in the webhook path."""
    if provider not in SIGNATURE_HEADERS:
        raise NotFound("Unknown payment provider")
    return get_gateway_for(provider)


__all__ = [
    "PaymentGateway",
    "PurchaseMetadata",
    "WebhookEvent",
    "WebhookEventType",
    "RazorpayGateway",
    "StripeGateway",
    "SIGNATURE_HEADERS",
    "build_gateway",
    "get_gateway_for",
    "get_payment_gateway",
    "get_webhook_gateway",
    "to_minor_units",
    "from_minor_units",
]
