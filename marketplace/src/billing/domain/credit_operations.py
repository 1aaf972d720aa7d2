"""
Credit ledger operation requests and results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .credit_account import CreditSource, CreditType


class DeductionFailure(str, Enum):
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"


@dataclass
class CreditDeductionRequest:
    """
    Attributes:
        credit_type: Restrict the draw to one bucket. ``None`` drains
            playground credits first and takes the remainder from API credits.
    """
    user_id: str
    amount: int
    credit_type: Optional[CreditType] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreditRefillRequest:
    user_id: str
    source: CreditSource
    playground_credits: int = 0
    api_credits: int = 0
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreditResetRequest:
    user_id: str
    playground_credits: int
    source: CreditSource
    reset_usage_counters: bool = True
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeductionResult:
    """
    Outcome of a deduction as seen by request handlers.

    Ledger failures (insufficient credits, unknown account, invalid amount)
    are reported here rather than raised.
    """
    success: bool
    deducted_amount: int
    remaining_playground_credits: int
    remaining_api_credits: int
    credit_type_used: Optional[CreditType] = None
    playground_deducted: int = 0
    api_deducted: int = 0
    error: Optional[str] = None
    error_code: Optional[DeductionFailure] = None

    @classmethod
    def failed(
        cls,
        error: str,
        error_code: DeductionFailure,
        remaining_playground_credits: int = 0,
        remaining_api_credits: int = 0,
    ) -> 'DeductionResult':
        return cls(
            success=False,
            deducted_amount=0,
            remaining_playground_credits=remaining_playground_credits,
            remaining_api_credits=remaining_api_credits,
            error=error,
            error_code=error_code,
        )

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'deducted_amount': self.deducted_amount,
            'remaining_playground_credits': self.remaining_playground_credits,
            'remaining_api_credits': self.remaining_api_credits,
            'credit_type_used': self.credit_type_used.value if self.credit_type_used else None,
            'playground_deducted': self.playground_deducted,
            'api_deducted': self.api_deducted,
            'error': self.error,
            'error_code': self.error_code.value if self.error_code else None,
        }
