from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    """Decimal currency amount -> integer cents."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(CENT)


@dataclass(frozen=True)
class PurchaseMetadata:
    """What every gateway object created for a purchase carries back to us."""

    purchase_id: int
    order_number: str
    buyer_id: int
    prompt_id: int

    def to_dict(self) -> dict:
        # providers only store strings
        return {key: str(value) for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["PurchaseMetadata"]:
        if not data:
            return None
        try:
            return cls(
                purchase_id=int(data["purchase_id"]),
                order_number=str(data.get("order_number", "")),
                buyer_id=int(data.get("buyer_id") or 0),
                prompt_id=int(data.get("prompt_id") or 0),
            )
        except (KeyError, TypeError, ValueError):
            return None


class IntentState(str, Enum):
    succeeded = "succeeded"
    processing = "processing"
    requires_action = "requires_action"
    failed = "failed"
    canceled = "canceled"


class WebhookEventType(str, Enum):
    payment_succeeded = "payment_succeeded"
    payment_failed = "payment_failed"
    dispute_created = "dispute_created"
    other = "other"


@dataclass
class GatewayIntent:
    id: str
    client_secret: str


@dataclass
class IntentStatus:
    id: str
    status: IntentState
    amount: int
    currency: str
    metadata: Optional[PurchaseMetadata] = None

    @property
    def succeeded(self) -> bool:
        return self.status == IntentState.succeeded


@dataclass
class WebhookEvent:
    id: str
    type: WebhookEventType
    raw_type: str
    intent_id: Optional[str] = None
    metadata: Optional[PurchaseMetadata] = None
    failure_reason: Optional[str] = None
    data: dict = field(default_factory=dict)


@dataclass
class GatewayRefund:
    id: str
    status: str
    amount: int


class PaymentGateway(ABC):
    """
    Thin wrapper over a hosted payment provider.

    Amounts are integer minor units in both directions. Provider errors are
    raised as ``GatewayError``; nothing here retries.
    """

    name: str = "gateway"

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @property
    def publishable_key(self) -> Optional[str]:
        return None

    @abstractmethod
    def create_intent(
        self, amount: int, currency: str, metadata: PurchaseMetadata, description: str = ""
    ) -> GatewayIntent:
        ...

    @abstractmethod
    def retrieve_intent(self, intent_id: str) -> IntentStatus:
        ...

    @abstractmethod
    def verify_webhook_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str]
    ) -> Optional[WebhookEvent]:
        """Return the parsed event, or None when the signature does not check out."""

    @abstractmethod
    def issue_refund(
        self, intent_id: str, amount: Optional[int], metadata: PurchaseMetadata
    ) -> GatewayRefund:
        ...
