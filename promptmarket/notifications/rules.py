from enum import Enum

from promptmarket.notifications.events import MarketplaceEvent


class Channel(str, Enum):
    INAPP_USER = "inapp_user"
    EMAIL_USER = "email_user"
    INAPP_ADMIN = "inapp_admin"
    EMAIL_ADMIN = "email_admin"


# which channels each event fans out to; anything missing is off
NOTIFICATION_RULES = {

    # buyer side
    MarketplaceEvent.PURCHASE_CONFIRMED: {
        Channel.INAPP_USER,
        Channel.EMAIL_USER,
    },
    MarketplaceEvent.PURCHASE_REFUNDED: {
        Channel.INAPP_USER,
        Channel.EMAIL_USER,
        Channel.INAPP_ADMIN,
    },

    # seller side
    MarketplaceEvent.SELLER_SALE: {
        Channel.INAPP_USER,
        Channel.EMAIL_USER,
        Channel.INAPP_ADMIN,
    },
    MarketplaceEvent.PROMPT_APPROVED: {
        Channel.INAPP_USER,
        Channel.EMAIL_USER,
    },
    MarketplaceEvent.PROMPT_REJECTED: {
        Channel.INAPP_USER,
        Channel.EMAIL_USER,
    },

    # moderators only
    MarketplaceEvent.PURCHASE_DISPUTED: {
        Channel.INAPP_ADMIN,
        Channel.EMAIL_ADMIN,
    },
}


def enabled(event: MarketplaceEvent, channel: Channel) -> bool:
    return channel in NOTIFICATION_RULES.get(event, set())
