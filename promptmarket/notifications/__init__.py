from .events import MarketplaceEvent
from .dispatcher import dispatch_event
from .senders import (
    notify_purchase_completed,
    notify_purchase_refunded,
    notify_purchase_disputed,
    notify_prompt_approved,
    notify_prompt_rejected,
)

__all__ = [
    "MarketplaceEvent",
    "dispatch_event",
    "notify_purchase_completed",
    "notify_purchase_refunded",
    "notify_purchase_disputed",
    "notify_prompt_approved",
    "notify_prompt_rejected",
]
