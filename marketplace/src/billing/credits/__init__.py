"""
Credit ledger and pricing.

Usage:
    from marketplace.src.billing.credits import (
        credit_management_service,
        pricing_calculator,
    )

    credits = pricing_calculator.resolve_required_credits(service.pricing_rule, user_input)
    result = await credit_management_service.deduct_credits(
        CreditDeductionRequest(user_id=user_id, amount=credits)
    )
"""

from .allocation import DeductionPlan, plan_deduction
from .calculator import (
    PricingCalculator,
    PriceEstimation,
    pricing_calculator,
    calculate_price,
    calculate_required_credits,
)
from .store import AtomicDeductionResult, UserCreditsStore, user_credits_store
from .manager import CreditManagementService, credit_management_service
from .listeners import register_credit_listeners

__all__ = [
    'DeductionPlan',
    'plan_deduction',
    'PricingCalculator',
    'PriceEstimation',
    'pricing_calculator',
    'calculate_price',
    'calculate_required_credits',
    'AtomicDeductionResult',
    'UserCreditsStore',
    'user_credits_store',
    'CreditManagementService',
    'credit_management_service',
    'register_credit_listeners',
]
