"""
Billing domain entities.
"""

from .credit_account import (
    CreditAccount,
    CreditBalance,
    CreditUsageReport,
    CreditType,
    CreditSource,
    CreditOperation,
)
from .credit_operations import (
    CreditDeductionRequest,
    CreditRefillRequest,
    CreditResetRequest,
    DeductionResult,
    DeductionFailure,
)
from .pricing import (
    PricingType,
    PricingRule,
    FixedPricing,
    PerUnitPricing,
    ConditionalPricing,
    ConditionalRule,
    PricingResult,
    PriceBreakdown,
    CreditEstimate,
    CreditBreakdown,
    parse_pricing_rule,
)
from .subscription import (
    Subscription,
    SubscriptionStatus,
    SubscriptionSignal,
    next_status,
)

__all__ = [
    'CreditAccount',
    'CreditBalance',
    'CreditUsageReport',
    'CreditType',
    'CreditSource',
    'CreditOperation',
    'CreditDeductionRequest',
    'CreditRefillRequest',
    'CreditResetRequest',
    'DeductionResult',
    'DeductionFailure',
    'PricingType',
    'PricingRule',
    'FixedPricing',
    'PerUnitPricing',
    'ConditionalPricing',
    'ConditionalRule',
    'PricingResult',
    'PriceBreakdown',
    'CreditEstimate',
    'CreditBreakdown',
    'parse_pricing_rule',
    'Subscription',
    'SubscriptionStatus',
    'SubscriptionSignal',
    'next_status',
]
