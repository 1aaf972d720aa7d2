"""
Billing Endpoints Module

API routes for billing operations.

Routers:
- credits: Balance, usage, checks and deductions
- pricing: Credit estimates
- webhooks: Stripe webhook processing

Usage:
    from marketplace.src.billing.endpoints import billing_router

    app.include_router(billing_router, prefix="/billing")
"""

from fastapi import APIRouter

from .credits import router as credits_router
from .pricing import router as pricing_router
from .webhooks import router as webhooks_router
from .dependencies import get_current_user_id, get_initialized_user_id, verify_billing_enabled

# Create main billing router
billing_router = APIRouter()

# Include all sub-routers
billing_router.include_router(credits_router)
billing_router.include_router(pricing_router)
billing_router.include_router(webhooks_router)

__all__ = [
    'billing_router',
    'credits_router',
    'pricing_router',
    'webhooks_router',
    'get_current_user_id',
    'get_initialized_user_id',
    'verify_billing_enabled',
]
