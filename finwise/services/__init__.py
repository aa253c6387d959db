"""Services package."""

from finwise.services.billing import BillingService, StripeGateway, get_stripe_gateway
from finwise.services.currency import CurrencyService, get_currency_service
from finwise.services.subscriptions import SubscriptionRepository

__all__ = [
    "BillingService",
    "CurrencyService",
    "StripeGateway",
    "SubscriptionRepository",
    "get_currency_service",
    "get_stripe_gateway",
]
