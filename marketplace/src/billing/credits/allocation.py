"""
Deduction decision table.

Decides how a deduction is drawn from the two credit buckets:

    credit_type   | draws from                         | fails when
    --------------+------------------------------------+----------------------------
    playground    | playground only                    | playground < amount
    api           | api only                           | api < amount
    None          | playground first, rest from api    | playground + api < amount
"""

from dataclasses import dataclass
from typing import Optional

from marketplace.src.billing.domain.credit_account import CreditType


@dataclass(frozen=True)
class DeductionPlan:
    amount: int
    from_playground: int = 0
    from_api: int = 0
    shortfall: int = 0
    available: int = 0

    @property
    def is_covered(self) -> bool:
        return self.shortfall == 0

    @property
    def credit_type_used(self) -> Optional[CreditType]:
        if not self.is_covered:
            return None
        if self.from_api == 0:
            return CreditType.PLAYGROUND
        if self.from_playground == 0:
            return CreditType.API
        return CreditType.MIXED


def plan_deduction(
    available_playground: int,
    available_api: int,
    amount: int,
    credit_type: Optional[CreditType] = None,
) -> DeductionPlan:
    """
    Compute the bucket draw for ``amount``.

    A plan that is not covered draws nothing; ``shortfall`` reports how many
    credits were missing from the eligible buckets.
    """
    if amount <= 0:
        raise ValueError("Deduction amount must be positive")

    available_playground = max(0, available_playground)
    available_api = max(0, available_api)

    if credit_type == CreditType.PLAYGROUND:
        if available_playground >= amount:
            return DeductionPlan(amount=amount, from_playground=amount, available=available_playground)
        return DeductionPlan(
            amount=amount, shortfall=amount - available_playground, available=available_playground
        )

    if credit_type == CreditType.API:
        if available_api >= amount:
            return DeductionPlan(amount=amount, from_api=amount, available=available_api)
        return DeductionPlan(amount=amount, shortfall=amount - available_api, available=available_api)

    if credit_type not in (None, CreditType.MIXED):
        raise ValueError(f"Unsupported credit type: {credit_type}")

    combined = available_playground + available_api
    if combined < amount:
        return DeductionPlan(amount=amount, shortfall=amount - combined, available=combined)

    from_playground = min(amount, available_playground)
    return DeductionPlan(
        amount=amount,
        from_playground=from_playground,
        from_api=amount - from_playground,
        available=combined,
    )
