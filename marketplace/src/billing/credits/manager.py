"""
Credit Management Service

Business operations over the credit ledger:
- Balance reads (optionally cached) and advisory sufficiency checks
- Atomic deduction with typed results
- Refills and playground resets
- Billing-period start / cancellation semantics
- Account creation and legacy balance migration

Every successful state change publishes a ``credit.*`` event.
"""

import logging
from datetime import datetime
from typing import Optional

from marketplace.src.billing.credits.store import UserCreditsStore, user_credits_store
from marketplace.src.billing.domain.credit_account import (
    CreditAccount,
    CreditBalance,
    CreditSource,
    CreditType,
    CreditUsageReport,
)
from marketplace.src.billing.domain.credit_operations import (
    CreditDeductionRequest,
    CreditRefillRequest,
    CreditResetRequest,
    DeductionFailure,
    DeductionResult,
)
from marketplace.src.billing.shared.cache_utils import (
    cache_credit_balance,
    get_cached_credit_balance,
    invalidate_credit_caches,
)
from marketplace.src.billing.shared.events import (
    CREDIT_CREATED,
    CREDIT_DEDUCTED,
    CREDIT_MIGRATED,
    CREDIT_REFILLED,
    CREDIT_RESET,
    CreditEvent,
    CreditEventBus,
    credit_event_bus,
)
from marketplace.src.billing.shared.exceptions import (
    BillingError,
    CreditAccountNotFoundError,
    InsufficientCreditsError,
)
from marketplace.utils.timezone import timezone

logger = logging.getLogger(__name__)


class CreditManagementService:
    """
    Manages credit operations for user accounts.

    Usage:
        from marketplace.src.billing.credits import credit_management_service

        result = await credit_management_service.deduct_credits(
            CreditDeductionRequest(user_id=user_id, amount=15, description="kling-v2.1 video")
        )
        if not result.success:
            ...  # insufficient credits, result.error explains why
    """

    def __init__(
        self,
        store: Optional[UserCreditsStore] = None,
        event_bus: Optional[CreditEventBus] = None,
    ):
        self.store = store or user_credits_store
        self.event_bus = event_bus or credit_event_bus

    async def _changed(self, name: str, user_id: str, **payload) -> None:
        # drop the cached balance before listeners run
        await invalidate_credit_caches(user_id)
        self.event_bus.publish(CreditEvent(name=name, user_id=user_id, payload=payload))

    # =========================================================================
    # READS
    # =========================================================================

    async def get_credit_balance(self, user_id: str, use_cache: bool = False) -> Optional[CreditBalance]:
        """
        Get the user's balance.

        Args:
            user_id: User ID
            use_cache: Serve from / populate the Redis balance cache

        Returns:
            CreditBalance, or None when the user has no active account
        """
        if use_cache:
            cached = await get_cached_credit_balance(user_id)
            if cached:
                logger.debug(f"[CREDITS] Balance cache hit for {user_id}")
                return CreditBalance.from_dict(cached)

        account = await self.store.get_balance(user_id)
        if account is None:
            return None

        balance = account.to_balance()
        if use_cache:
            await cache_credit_balance(user_id, balance.to_dict())
        return balance

    async def has_sufficient_credits(
        self,
        user_id: str,
        amount: int,
        credit_type: Optional[CreditType] = None,
    ) -> bool:
        """
        Advisory check without locking; ``deduct_credits`` is authoritative.
        """
        try:
            account = await self.store.get_balance(user_id)
            if account is None:
                return False
            return account.available_for(credit_type) >= amount
        except Exception as e:
            logger.error(f"[CREDITS] Error checking credits for user {user_id}: {e}", exc_info=True)
            return False

    async def get_credit_usage_report(self, user_id: str) -> Optional[CreditUsageReport]:
        account = await self.store.get_balance(user_id)
        if account is None:
            return None
        return CreditUsageReport.from_account(account)

    async def get_legacy_balance(self, user_id: str) -> int:
        return await self.store.get_legacy_balance(user_id)

    # =========================================================================
    # DEDUCT
    # =========================================================================

    async def deduct_credits(self, request: CreditDeductionRequest) -> DeductionResult:
        """
        Deduct credits for a charged operation.

        Insufficient credits, a missing account and invalid amounts come back
        as a failed ``DeductionResult``.

        Raises:
            BillingError: unexpected persistence failure
        """
        try:
            outcome = await self.store.deduct_atomic(request)
        except BillingError:
            raise
        except Exception as e:
            logger.error(f"[CREDITS] Error deducting {request.amount} credits for user {request.user_id}: {e}", exc_info=True)
            raise BillingError(
                code="CREDIT_DEDUCT_FAILED",
                message=f"Failed to deduct credits: {str(e)}",
                details={"user_id": request.user_id, "amount": request.amount}
            ) from e

        if not outcome.success:
            account = outcome.account
            if outcome.reason == DeductionFailure.ACCOUNT_NOT_FOUND:
                logger.warning(f"[CREDITS] Deduction for unknown user {request.user_id}")
            else:
                logger.info(f"[CREDITS] Deduction rejected for user {request.user_id}: {outcome.error}")
            return DeductionResult.failed(
                error=outcome.error,
                error_code=outcome.reason,
                remaining_playground_credits=account.available_playground_credits if account else 0,
                remaining_api_credits=account.available_api_credits if account else 0,
            )

        account = outcome.account
        plan = outcome.plan
        result = DeductionResult(
            success=True,
            deducted_amount=request.amount,
            remaining_playground_credits=account.available_playground_credits,
            remaining_api_credits=account.available_api_credits,
            credit_type_used=plan.credit_type_used,
            playground_deducted=plan.from_playground,
            api_deducted=plan.from_api,
        )

        logger.info(
            f"[CREDITS] ✅ Deducted {request.amount} credits from user {request.user_id} "
            f"(playground: {plan.from_playground}, api: {plan.from_api})"
        )
        await self._changed(
            CREDIT_DEDUCTED,
            request.user_id,
            amount=request.amount,
            credit_type=plan.credit_type_used.value,
            playground_deducted=plan.from_playground,
            api_deducted=plan.from_api,
            remaining_playground_credits=result.remaining_playground_credits,
            remaining_api_credits=result.remaining_api_credits,
            description=request.description,
            metadata=request.metadata,
        )
        return result

    async def charge_credits(self, request: CreditDeductionRequest) -> DeductionResult:
        """
        Deduct credits, raising when the deduction is refused.

        For handlers that gate work on payment and let the app's
        ``BillingError`` handler produce the error response.

        Raises:
            InsufficientCreditsError: not enough credits in the eligible buckets
            CreditAccountNotFoundError: no active account
            BillingError: invalid amount or unexpected persistence failure
        """
        result = await self.deduct_credits(request)
        if result.success:
            return result

        if result.error_code == DeductionFailure.ACCOUNT_NOT_FOUND:
            raise CreditAccountNotFoundError(request.user_id)
        if result.error_code == DeductionFailure.INSUFFICIENT_CREDITS:
            if request.credit_type == CreditType.PLAYGROUND:
                available = result.remaining_playground_credits
            elif request.credit_type == CreditType.API:
                available = result.remaining_api_credits
            else:
                available = result.remaining_playground_credits + result.remaining_api_credits
            raise InsufficientCreditsError(
                message=result.error,
                required=request.amount,
                available=available,
                credit_type=request.credit_type.value if request.credit_type else None,
            )
        raise BillingError(message=result.error, code=result.error_code.value)

    # =========================================================================
    # REFILL / RESET
    # =========================================================================

    async def refill_credits(self, request: CreditRefillRequest) -> CreditAccount:
        """
        Add playground and/or API credits.

        Raises:
            CreditAccountNotFoundError: no active account
            BillingError: unexpected persistence failure
        """
        try:
            account = await self.store.refill(request)
        except (BillingError, ValueError):
            raise
        except Exception as e:
            logger.error(f"[CREDITS] Error refilling credits for user {request.user_id}: {e}", exc_info=True)
            raise BillingError(
                code="CREDIT_REFILL_FAILED",
                message=f"Failed to refill credits: {str(e)}",
                details={"user_id": request.user_id}
            ) from e

        logger.info(
            f"[CREDITS] ✅ Refilled user {request.user_id}: +{request.playground_credits} playground, "
            f"+{request.api_credits} api ({CreditSource(request.source).value})"
        )
        await self._changed(
            CREDIT_REFILLED,
            request.user_id,
            playground_credits_added=request.playground_credits,
            api_credits_added=request.api_credits,
            source=CreditSource(request.source).value,
            new_playground_balance=account.available_playground_credits,
            new_api_balance=account.available_api_credits,
            description=request.description,
            metadata=request.metadata,
        )
        return account

    async def reset_playground_credits(self, request: CreditResetRequest) -> CreditAccount:
        """
        Set the playground allocation.

        Raises:
            CreditAccountNotFoundError: no active account
            BillingError: unexpected persistence failure
        """
        try:
            account = await self.store.reset_playground(request)
        except (BillingError, ValueError):
            raise
        except Exception as e:
            logger.error(f"[CREDITS] Error resetting playground credits for user {request.user_id}: {e}", exc_info=True)
            raise BillingError(
                code="CREDIT_RESET_FAILED",
                message=f"Failed to reset playground credits: {str(e)}",
                details={"user_id": request.user_id}
            ) from e

        logger.info(
            f"[CREDITS] ✅ Reset playground credits for user {request.user_id} to {request.playground_credits} "
            f"(usage reset: {request.reset_usage_counters})"
        )
        await self._changed(
            CREDIT_RESET,
            request.user_id,
            new_playground_credits=request.playground_credits,
            usage_counters_reset=request.reset_usage_counters,
            source=CreditSource(request.source).value,
            description=request.description,
            metadata=request.metadata,
        )
        return account

    # =========================================================================
    # SUBSCRIPTION PERIODS
    # =========================================================================

    async def handle_subscription_period_start(
        self,
        user_id: str,
        package_id: str,
        package_name: str,
        monthly_credits: int,
        period_start: datetime,
        period_end: datetime,
    ) -> CreditAccount:
        """
        Start a billing period: playground allocation becomes
        ``monthly_credits`` with zero usage, API credits are untouched, and
        the next reset is the period end.
        """
        logger.info(
            f"[CREDITS] Period start for user {user_id}: {package_name} ({monthly_credits} credits) "
            f"{period_start.isoformat()} -> {period_end.isoformat()}"
        )
        account = await self.reset_playground_credits(CreditResetRequest(
            user_id=user_id,
            playground_credits=monthly_credits,
            reset_usage_counters=True,
            source=CreditSource.SUBSCRIPTION_RESET,
            description=f"Monthly playground credit reset for {package_name}",
            metadata={
                'package_id': package_id,
                'package_name': package_name,
                'period_start': period_start.isoformat(),
                'period_end': period_end.isoformat(),
            },
        ))
        await self.store.set_next_reset(user_id, period_end)
        account.playground_credits_next_reset = period_end
        return account

    async def handle_subscription_cancellation(self, user_id: str, package_id: str) -> CreditAccount:
        """
        Cancel: playground allocation drops to 0, period usage is kept for
        reporting, API credits are untouched and no further reset is scheduled.
        """
        logger.info(f"[CREDITS] Subscription cancelled for user {user_id} (package {package_id})")
        account = await self.reset_playground_credits(CreditResetRequest(
            user_id=user_id,
            playground_credits=0,
            reset_usage_counters=False,
            source=CreditSource.SUBSCRIPTION_RESET,
            description="Subscription cancelled - playground credits reset",
            metadata={
                'package_id': package_id,
                'cancellation_date': timezone.now().isoformat(),
            },
        ))
        await self.store.set_next_reset(user_id, None)
        account.playground_credits_next_reset = None
        return account

    async def process_scheduled_playground_resets(self) -> int:
        """
        Resets are driven by billing events only; nothing is polled.

        Returns:
            Number of accounts reset (always 0)
        """
        logger.info("[CREDITS] Scheduled playground resets are event-driven; nothing to do")
        return 0

    # =========================================================================
    # ACCOUNT LIFECYCLE
    # =========================================================================

    async def create_user_credits(self, user_id: str, initial_playground: int = 0, initial_api: int = 0) -> bool:
        """
        Create the user's credit account if it does not exist.

        Returns:
            True if a new account was created
        """
        created = await self.store.create_account(user_id, initial_playground, initial_api)
        if created:
            logger.info(
                f"[CREDITS] ✅ Created credit account for user {user_id} "
                f"({initial_playground} playground, {initial_api} api)"
            )
            await self._changed(
                CREDIT_CREATED,
                user_id,
                initial_playground_credits=initial_playground,
                initial_api_credits=initial_api,
            )
        return created

    async def migrate_user_credits(self, user_id: str) -> Optional[CreditAccount]:
        """Move the legacy single balance into playground credits."""
        account, migrated = await self.store.migrate_existing_balance(user_id)
        if account is None:
            logger.warning(f"[CREDITS] No credit account to migrate for user {user_id}")
            return None

        metadata = account.metadata
        if migrated:
            logger.info(f"[CREDITS] ✅ Migrated legacy balance {metadata.get('original_balance')} for user {user_id}")
            await self._changed(
                CREDIT_MIGRATED,
                user_id,
                original_balance=metadata.get('original_balance'),
                new_playground_credits=account.playground_credits,
                migration_date=metadata.get('migration_date'),
            )
        return account

    async def deactivate_user_credits(self, user_id: str) -> bool:
        deactivated = await self.store.deactivate_account(user_id)
        if deactivated:
            logger.info(f"[CREDITS] Deactivated credit account for user {user_id}")
        return deactivated


credit_management_service = CreditManagementService()
