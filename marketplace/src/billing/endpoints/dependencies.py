"""
Endpoint Dependencies

Shared dependencies for billing API endpoints. Services are resolved through
dependencies so tests can swap them with ``app.dependency_overrides``.
"""

import logging
from typing import Optional

import jwt

from fastapi import Depends, HTTPException, Header

from marketplace.core.conf import settings
from marketplace.src.billing.credits.calculator import PricingCalculator, pricing_calculator
from marketplace.src.billing.credits.manager import CreditManagementService, credit_management_service
from marketplace.src.billing.subscriptions.repository import SubscriptionRepository, subscription_repository
from marketplace.src.billing.subscriptions.user_initialization import ensure_user_initialized

logger = logging.getLogger(__name__)


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> str:
    """
    Extract and verify the user ID from a bearer JWT (``sub`` claim).
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization header"
        )

    token = authorization
    if authorization.startswith("Bearer "):
        token = authorization[7:]

    if not settings.TOKEN_SECRET_KEY:
        logger.error("[AUTH] TOKEN_SECRET_KEY not configured")
        raise HTTPException(status_code=500, detail="Auth not configured")

    try:
        decoded = jwt.decode(
            token,
            settings.TOKEN_SECRET_KEY,
            algorithms=[settings.TOKEN_ALGORITHM],
        )
    except jwt.InvalidTokenError as e:
        logger.warning(f"[AUTH] Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = decoded.get('sub') or decoded.get('user_id')
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return str(user_id)


def get_credit_service() -> CreditManagementService:
    return credit_management_service


def get_pricing_calculator() -> PricingCalculator:
    return pricing_calculator


def get_subscription_repository() -> SubscriptionRepository:
    return subscription_repository


async def get_initialized_user_id(
    user_id: str = Depends(get_current_user_id),
    credit_service: CreditManagementService = Depends(get_credit_service),
    subscriptions: SubscriptionRepository = Depends(get_subscription_repository),
) -> str:
    """Authenticated user id; creates the user's credit account on first use."""
    await ensure_user_initialized(user_id, credit_service=credit_service, subscriptions=subscriptions)
    return user_id


async def verify_billing_enabled():
    """
    Dependency to check if billing is enabled.

    Returns True if billing is enabled, raises HTTPException otherwise.
    """
    if not settings.BILLING_ENABLED:
        raise HTTPException(
            status_code=503,
            detail="Billing is currently disabled"
        )
    return True
