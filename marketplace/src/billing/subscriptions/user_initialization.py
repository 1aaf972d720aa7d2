"""
User initialization: every user gets a credit account with the free
package's monthly playground credits the first time they authenticate.
"""

import logging
from typing import Optional

from marketplace.src.billing.credits.manager import CreditManagementService, credit_management_service
from marketplace.src.billing.domain.subscription import Subscription
from marketplace.src.billing.shared.config import FREE_PACKAGE_ID, get_package_by_id
from marketplace.src.billing.subscriptions.repository import SubscriptionRepository, subscription_repository

logger = logging.getLogger(__name__)


async def initialize_user(
    user_id: str,
    credit_service: Optional[CreditManagementService] = None,
    subscriptions: Optional[SubscriptionRepository] = None,
) -> bool:
    """
    Create the user's credit account on the free package. Idempotent.

    Returns:
        True if the account was created by this call
    """
    credit_service = credit_service or credit_management_service
    subscriptions = subscriptions or subscription_repository
    package = get_package_by_id(FREE_PACKAGE_ID)

    created = await credit_service.create_user_credits(
        user_id,
        initial_playground=package.monthly_credits,
        initial_api=0,
    )
    if created:
        if await subscriptions.get(user_id) is None:
            await subscriptions.save(Subscription(user_id=user_id, package_id=package.id))
        logger.info(f"[INIT] ✅ Initialized user {user_id} on the {package.name} package")
    return created


async def ensure_user_initialized(
    user_id: str,
    credit_service: Optional[CreditManagementService] = None,
    subscriptions: Optional[SubscriptionRepository] = None,
) -> bool:
    """Initialize the user unless an active credit account already exists."""
    credit_service = credit_service or credit_management_service
    if await credit_service.get_credit_balance(user_id) is not None:
        return False
    return await initialize_user(user_id, credit_service, subscriptions)
