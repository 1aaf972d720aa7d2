"""
Subscription billing-cycle handling.
"""

from .event_log import BillingEventLog, billing_event_log
from .repository import SubscriptionRepository, subscription_repository
from .period_handler import SubscriptionPeriodHandler, subscription_period_handler
from .user_initialization import initialize_user, ensure_user_initialized

__all__ = [
    'BillingEventLog',
    'billing_event_log',
    'SubscriptionRepository',
    'subscription_repository',
    'SubscriptionPeriodHandler',
    'subscription_period_handler',
    'initialize_user',
    'ensure_user_initialized',
]
