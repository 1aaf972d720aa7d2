"""
Shared billing building blocks: package catalog, exceptions, cache helpers
and the credit event bus.
"""

from .config import (
    Package,
    PACKAGES,
    PROFIT_MARGIN,
    CREDIT_VALUE_USD,
    FREE_PACKAGE_ID,
    get_package_by_id,
    get_package_by_price_id,
)
from .exceptions import (
    BillingError,
    InsufficientCreditsError,
    CreditAccountNotFoundError,
    PricingError,
    SubscriptionError,
    WebhookError,
)
from .events import (
    CreditEvent,
    CreditEventBus,
    credit_event_bus,
    CREDIT_DEDUCTED,
    CREDIT_REFILLED,
    CREDIT_RESET,
    CREDIT_CREATED,
    CREDIT_MIGRATED,
)

__all__ = [
    'Package',
    'PACKAGES',
    'PROFIT_MARGIN',
    'CREDIT_VALUE_USD',
    'FREE_PACKAGE_ID',
    'get_package_by_id',
    'get_package_by_price_id',
    'BillingError',
    'InsufficientCreditsError',
    'CreditAccountNotFoundError',
    'PricingError',
    'SubscriptionError',
    'WebhookError',
    'CreditEvent',
    'CreditEventBus',
    'credit_event_bus',
    'CREDIT_DEDUCTED',
    'CREDIT_REFILLED',
    'CREDIT_RESET',
    'CREDIT_CREATED',
    'CREDIT_MIGRATED',
]
