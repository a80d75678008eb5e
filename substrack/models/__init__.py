# Database models package

from .base import Base
from .merchant import Merchant
from .subscription_plan import SubscriptionPlan, BillingCycle
from .subscriber import Subscriber, SubscriberStatus
from .payment_transaction import PaymentTransaction, PaymentStatus
from .access_token import AccessToken
from .stripe_webhook import StripeWebhook

__all__ = [
    'Base',
    'Merchant',
    'SubscriptionPlan',
    'BillingCycle',
    'Subscriber',
    'SubscriberStatus',
    'PaymentTransaction',
    'PaymentStatus',
    'AccessToken',
    'StripeWebhook'
]
