"""
Typed errors raised by the marketplace services.

Routes never see raw exceptions from the workflows: every failure that
crosses a service boundary is one of these, and ``main.py`` maps them to
JSON responses through a single exception handler.
"""


class MarketplaceError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------- preconditions ----------

class PreconditionFailed(MarketplaceError):
    pass


class AlreadyOwned(PreconditionFailed):
    default_message = "You have already purchased this prompt."


class PriceBelowMinimum(PreconditionFailed):
    default_message = "The chosen price is below the minimum price."


class PriceRequired(PreconditionFailed):
    default_message = "A price must be specified for pay-what-you-want prompts."


class CannotPurchaseOwnPrompt(PreconditionFailed):
    default_message = "You cannot purchase your own prompt."


class PromptUnavailable(PreconditionFailed):
    default_message = "This prompt is not available for purchase."


class InvalidPurchaseState(PreconditionFailed):
    status_code = 409
    default_message = "The purchase is not in a valid state for this action."


class NotPurchaseOwner(PreconditionFailed):
    status_code = 403
    default_message = "This purchase belongs to another user."


class AlreadyReviewed(PreconditionFailed):
    status_code = 409
    default_message = "You have already reviewed this purchase."


class ReviewedBeforeCompletion(PreconditionFailed):
    default_message = "You can only review completed purchases."


class InvalidRating(PreconditionFailed):
    status_code = 422
    default_message = "Rating must be between 1 and 5."


class NotPromptSeller(PreconditionFailed):
    status_code = 403
    default_message = "Only the prompt seller can do this."


class AlreadyResponded(PreconditionFailed):
    status_code = 409
    default_message = "You have already responded to this review."


class AlreadyInCart(PreconditionFailed):
    status_code = 409
    default_message = "This prompt is already in your cart."


class InvalidPromptState(PreconditionFailed):
    status_code = 409
    default_message = "The prompt is not in a valid state for this action."


class PermissionDenied(PreconditionFailed):
    status_code = 403
    default_message = "You do not have permission to do this."


# ---------- gateway ----------

class GatewayError(MarketplaceError):
    status_code = 502
    default_message = "The payment provider could not process the request. Please try again."


class PaymentInitializationFailed(GatewayError):
    default_message = "Failed to initialize payment. Please try again."


class PaymentNotCompleted(GatewayError):
    status_code = 400
    default_message = "Payment not completed. Please try again."


class InvalidSignature(GatewayError):
    status_code = 400
    default_message = "Invalid webhook signature."


# ---------- lookups ----------

class NotFound(MarketplaceError):
    status_code = 404
    default_message = "Not found"
