from enum import Enum

from promptmarket.models.notifications import RelatedObject


class MarketplaceEvent(str, Enum):
    PURCHASE_CONFIRMED = "purchase_confirmed"
    SELLER_SALE = "seller_sale"
    PURCHASE_REFUNDED = "purchase_refunded"
    PURCHASE_DISPUTED = "purchase_disputed"

    PROMPT_APPROVED = "prompt_approved"
    PROMPT_REJECTED = "prompt_rejected"

    @property
    def related_type(self) -> RelatedObject:
        if self.value.startswith("prompt_"):
            return RelatedObject.prompt
        return RelatedObject.purchase
