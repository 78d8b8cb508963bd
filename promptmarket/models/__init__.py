from promptmarket.models.user import User, UserProfile, UserRole, Capability
from promptmarket.models.category import Category
from promptmarket.models.tag import Tag, PromptTagLink
from promptmarket.models.prompt import Prompt, PricingModel, PromptStatus
from promptmarket.models.purchase import Purchase, PurchaseStatus, PaymentMethod
from promptmarket.models.purchase_event import PurchaseEvent
from promptmarket.models.payout import Payout, PayoutStatus
from promptmarket.models.review import Review
from promptmarket.models.cart import CartItem
from promptmarket.models.notifications import Notification

# add ALL models here
