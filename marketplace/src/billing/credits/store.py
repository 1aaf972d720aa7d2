"""
Credit Ledger Store

Persistence for the ``user_credits`` table. Every read-then-write runs in a
single transaction that first takes an exclusive lock on the user's row
(``SELECT ... FOR UPDATE`` on PostgreSQL, ``BEGIN IMMEDIATE`` on SQLite), so
concurrent deductions for the same user serialize and can never overdraw.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.src.billing.credits.allocation import DeductionPlan, plan_deduction
from marketplace.src.billing.domain.credit_account import CreditAccount, CreditOperation, CreditSource, CreditType
from marketplace.src.billing.domain.credit_operations import (
    CreditDeductionRequest,
    CreditRefillRequest,
    CreditResetRequest,
    DeductionFailure,
)
from marketplace.src.billing.models import UserCredit
from marketplace.src.billing.shared.exceptions import CreditAccountNotFoundError
from marketplace.utils.timezone import timezone

logger = logging.getLogger(__name__)


@dataclass
class AtomicDeductionResult:
    success: bool
    account: Optional[CreditAccount] = None
    plan: Optional[DeductionPlan] = None
    error: Optional[str] = None
    reason: Optional[DeductionFailure] = None


def _insufficient_message(plan: DeductionPlan, credit_type: Optional[CreditType]) -> str:
    if credit_type == CreditType.PLAYGROUND:
        return f"Insufficient playground credits. Available: {plan.available}, Required: {plan.amount}"
    if credit_type == CreditType.API:
        return f"Insufficient API credits. Available: {plan.available}, Required: {plan.amount}"
    return f"Insufficient credits. Available: {plan.available}, Required: {plan.amount}"


class UserCreditsStore:
    """
    Ledger store for dual-bucket credit accounts.

    Usage:
        store = UserCreditsStore()
        outcome = await store.deduct_atomic(
            CreditDeductionRequest(user_id="u1", amount=15)
        )
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        """
        Args:
            session_factory: ``async_sessionmaker`` to use; defaults to the
                application's ``async_db_session``
        """
        self._session_factory = session_factory

    @property
    def session_factory(self) -> Callable[[], AsyncSession]:
        if self._session_factory is None:
            from marketplace.database.db import async_db_session
            self._session_factory = async_db_session
        return self._session_factory

    @staticmethod
    async def _lock_account(session: AsyncSession, user_id: str) -> Optional[UserCredit]:
        result = await session.execute(
            select(UserCredit)
            .where(UserCredit.user_id == user_id, UserCredit.is_active.is_(True))
            .with_for_update()
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _sync_legacy_balance(row: UserCredit) -> None:
        available_playground = max(0, row.playground_credits - row.playground_credits_used_current_period)
        row.balance = available_playground + row.api_credits

    @staticmethod
    async def _snapshot(session: AsyncSession, row: UserCredit) -> CreditAccount:
        await session.flush()
        return CreditAccount.from_model(row)

    # =========================================================================
    # READS
    # =========================================================================

    async def get_balance(self, user_id: str) -> Optional[CreditAccount]:
        """Current account state without locking; None when missing or inactive."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserCredit).where(UserCredit.user_id == user_id, UserCredit.is_active.is_(True))
            )
            row = result.scalar_one_or_none()
            return CreditAccount.from_model(row) if row else None

    async def get_legacy_balance(self, user_id: str) -> int:
        async with self.session_factory() as session:
            balance = await session.scalar(
                select(UserCredit.balance).where(UserCredit.user_id == user_id, UserCredit.is_active.is_(True))
            )
            return balance or 0

    # =========================================================================
    # DEDUCT
    # =========================================================================

    async def deduct_atomic(self, request: CreditDeductionRequest) -> AtomicDeductionResult:
        """
        Deduct ``request.amount`` credits in one locked transaction.

        Insufficient credits, a missing account and a non-positive amount are
        reported on the result; nothing is written in those cases.
        """
        if request.amount <= 0:
            return AtomicDeductionResult(
                success=False,
                error=f"Deduction amount must be positive, got {request.amount}",
                reason=DeductionFailure.INVALID_AMOUNT,
            )

        async with self.session_factory() as session:
            async with session.begin():
                row = await self._lock_account(session, request.user_id)
                if row is None:
                    logger.warning(f"[CREDITS] No active credit account for user {request.user_id}")
                    return AtomicDeductionResult(
                        success=False,
                        error="User credits not found",
                        reason=DeductionFailure.ACCOUNT_NOT_FOUND,
                    )

                account = CreditAccount.from_model(row)
                plan = plan_deduction(
                    account.available_playground_credits,
                    account.available_api_credits,
                    request.amount,
                    request.credit_type,
                )
                if not plan.is_covered:
                    return AtomicDeductionResult(
                        success=False,
                        account=account,
                        plan=plan,
                        error=_insufficient_message(plan, request.credit_type),
                        reason=DeductionFailure.INSUFFICIENT_CREDITS,
                    )

                row.playground_credits_used_current_period += plan.from_playground
                row.api_credits -= plan.from_api
                row.api_credits_used_total += plan.from_api
                self._sync_legacy_balance(row)
                row.credit_metadata = {
                    **(row.credit_metadata or {}),
                    'last_operation': CreditOperation.DEDUCT.value,
                    'last_deduction': timezone.now().isoformat(),
                    'last_deduction_amount': request.amount,
                    'last_deduction_type': plan.credit_type_used.value,
                    'last_deduction_description': request.description,
                    **(request.metadata or {}),
                }
                account = await self._snapshot(session, row)

        return AtomicDeductionResult(success=True, account=account, plan=plan)

    # =========================================================================
    # REFILL / RESET
    # =========================================================================

    async def refill(self, request: CreditRefillRequest) -> CreditAccount:
        """
        Add credits to the account totals; usage counters are untouched.

        Not idempotent: callers must dedupe upstream.

        Raises:
            ValueError: negative refill amounts
            CreditAccountNotFoundError: no active account for the user
        """
        if request.playground_credits < 0 or request.api_credits < 0:
            raise ValueError("Refill amounts must be non-negative")

        async with self.session_factory() as session:
            async with session.begin():
                row = await self._lock_account(session, request.user_id)
                if row is None:
                    raise CreditAccountNotFoundError(request.user_id)

                row.playground_credits += request.playground_credits
                row.api_credits += request.api_credits
                self._sync_legacy_balance(row)
                row.credit_metadata = {
                    **(row.credit_metadata or {}),
                    'last_operation': CreditOperation.REFILL.value,
                    'last_refill': timezone.now().isoformat(),
                    'last_refill_playground': request.playground_credits,
                    'last_refill_api': request.api_credits,
                    'last_refill_source': CreditSource(request.source).value,
                    'last_refill_description': request.description,
                    **(request.metadata or {}),
                }
                return await self._snapshot(session, row)

    async def reset_playground(self, request: CreditResetRequest) -> CreditAccount:
        """
        Set the playground allocation to ``request.playground_credits``.

        With ``reset_usage_counters`` the period usage is zeroed and the reset
        time stamped; otherwise usage is left as is.

        Raises:
            ValueError: negative allocation
            CreditAccountNotFoundError: no active account for the user
        """
        if request.playground_credits < 0:
            raise ValueError("Playground allocation must be non-negative")

        async with self.session_factory() as session:
            async with session.begin():
                row = await self._lock_account(session, request.user_id)
                if row is None:
                    raise CreditAccountNotFoundError(request.user_id)

                now = timezone.now()
                row.playground_credits = request.playground_credits
                if request.reset_usage_counters:
                    row.playground_credits_used_current_period = 0
                    row.playground_credits_last_reset = now
                self._sync_legacy_balance(row)
                row.credit_metadata = {
                    **(row.credit_metadata or {}),
                    'last_operation': CreditOperation.RESET.value,
                    'last_reset': now.isoformat(),
                    'last_reset_amount': request.playground_credits,
                    'last_reset_source': CreditSource(request.source).value,
                    'last_reset_description': request.description,
                    'usage_counters_reset': request.reset_usage_counters,
                    **(request.metadata or {}),
                }
                return await self._snapshot(session, row)

    async def set_next_reset(self, user_id: str, next_reset) -> bool:
        """Record the end of the current billing period; None clears it."""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(UserCredit)
                    .where(UserCredit.user_id == user_id, UserCredit.is_active.is_(True))
                    .values(playground_credits_next_reset=next_reset, updated_time=timezone.now())
                )
                return result.rowcount > 0

    # =========================================================================
    # ACCOUNT LIFECYCLE
    # =========================================================================

    async def create_account(self, user_id: str, initial_playground: int = 0, initial_api: int = 0) -> bool:
        """
        Create the user's credit account.

        Returns:
            True if created, False when an account already existed
        """
        if initial_playground < 0 or initial_api < 0:
            raise ValueError("Initial credits must be non-negative")

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    existing = await session.scalar(select(UserCredit.id).where(UserCredit.user_id == user_id))
                    if existing is not None:
                        logger.debug(f"[CREDITS] Credit account already exists for user {user_id}")
                        return False

                    session.add(UserCredit(
                        user_id=user_id,
                        playground_credits=initial_playground,
                        api_credits=initial_api,
                        balance=initial_playground + initial_api,
                        credit_metadata={
                            'created_by': 'system',
                            'initial_playground_credits': initial_playground,
                            'initial_api_credits': initial_api,
                        },
                    ))
        except IntegrityError:
            # concurrent first request for the same user won the insert
            logger.info(f"[CREDITS] Credit account for user {user_id} created concurrently")
            return False

        return True

    async def migrate_existing_balance(self, user_id: str) -> Tuple[Optional[CreditAccount], bool]:
        """
        Move the legacy single ``balance`` into playground credits, once.

        Returns:
            (account, migrated) where ``migrated`` is False when the account
            was already migrated; account is None when the user has no
            active account
        """
        async with self.session_factory() as session:
            async with session.begin():
                row = await self._lock_account(session, user_id)
                if row is None:
                    return None, False

                metadata = row.credit_metadata or {}
                if metadata.get('migrated'):
                    logger.info(f"[CREDITS] Credits for user {user_id} already migrated")
                    return CreditAccount.from_model(row), False

                # the legacy balance already includes API credits; folding it
                # into playground empties the API bucket
                original_balance = row.balance or 0
                row.playground_credits = original_balance
                row.playground_credits_used_current_period = 0
                row.api_credits = 0
                row.api_credits_used_total = 0
                self._sync_legacy_balance(row)
                row.credit_metadata = {
                    **metadata,
                    'migrated': True,
                    'migration_date': timezone.now().isoformat(),
                    'original_balance': original_balance,
                }
                return await self._snapshot(session, row), True

    async def deactivate_account(self, user_id: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(UserCredit)
                    .where(UserCredit.user_id == user_id, UserCredit.is_active.is_(True))
                    .values(is_active=False, updated_time=timezone.now())
                )
                return result.rowcount > 0


user_credits_store = UserCreditsStore()
