"""
Billing Module

Credit ledger, pricing and subscription billing for the generation
marketplace. Integrates with Stripe for subscription payments.

Submodules:
- shared: Package catalog, exceptions, cache utilities, credit events
- domain: Core entities (CreditAccount, pricing rules, Subscription)
- credits: Ledger store, credit management service, pricing calculator
- subscriptions: Billing-period handling, event dedup, user initialization
- external: Payment provider integrations (Stripe)
- endpoints: API routes

Usage:
    from marketplace.src.billing import (
        credit_management_service,
        pricing_calculator,
        subscription_period_handler,
    )
"""

from .shared import (
    Package,
    PACKAGES,
    get_package_by_id,
    get_package_by_price_id,
    BillingError,
    InsufficientCreditsError,
    CreditAccountNotFoundError,
    PricingError,
    SubscriptionError,
    WebhookError,
    CreditEvent,
    CreditEventBus,
    credit_event_bus,
)
from .domain import (
    CreditAccount,
    CreditBalance,
    CreditUsageReport,
    CreditType,
    CreditSource,
    CreditDeductionRequest,
    CreditRefillRequest,
    CreditResetRequest,
    DeductionResult,
    DeductionFailure,
    PricingRule,
    PricingResult,
    parse_pricing_rule,
    Subscription,
    SubscriptionStatus,
)
from .credits import (
    PricingCalculator,
    pricing_calculator,
    UserCreditsStore,
    user_credits_store,
    CreditManagementService,
    credit_management_service,
    register_credit_listeners,
)
from .subscriptions import (
    SubscriptionPeriodHandler,
    subscription_period_handler,
    initialize_user,
    ensure_user_initialized,
)

__all__ = [
    # Shared
    'Package',
    'PACKAGES',
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
    # Domain
    'CreditAccount',
    'CreditBalance',
    'CreditUsageReport',
    'CreditType',
    'CreditSource',
    'CreditDeductionRequest',
    'CreditRefillRequest',
    'CreditResetRequest',
    'DeductionResult',
    'DeductionFailure',
    'PricingRule',
    'PricingResult',
    'parse_pricing_rule',
    'Subscription',
    'SubscriptionStatus',
    # Credits
    'PricingCalculator',
    'pricing_calculator',
    'UserCreditsStore',
    'user_credits_store',
    'CreditManagementService',
    'credit_management_service',
    'register_credit_listeners',
    # Subscriptions
    'SubscriptionPeriodHandler',
    'subscription_period_handler',
    'initialize_user',
    'ensure_user_initialized',
]
