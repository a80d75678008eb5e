# CRUD operations package

from .merchant import merchant_crud
from .subscription_plan import subscription_plan_crud
from .subscriber import subscriber_crud
from .payment_transaction import payment_transaction_crud
from .access_token import access_token_crud
from .stripe_webhook import stripe_webhook_crud

__all__ = [
    'merchant_crud',
    'subscription_plan_crud',
    'subscriber_crud',
    'payment_transaction_crud',
    'access_token_crud',
    'stripe_webhook_crud'
]
