"""
Credit Account Domain Entity

Represents a user's dual-bucket credit account: playground credits that are
re-allocated every billing period, and API credits that persist until spent.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class CreditType(str, Enum):
    """Credit bucket. ``MIXED`` only ever appears on results of split draws."""
    PLAYGROUND = "playground"
    API = "api"
    MIXED = "mixed"


class CreditOperation(str, Enum):
    DEDUCT = "deduct"
    REFILL = "refill"
    RESET = "reset"


class CreditSource(str, Enum):
    """Provenance tag stored with refills and resets."""
    SUBSCRIPTION_REFILL = "subscription_refill"
    SUBSCRIPTION_RESET = "subscription_reset"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    API_PURCHASE = "api_purchase"
    PROMOTION = "promotion"
    MIGRATION = "migration"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class CreditAccount:
    """
    Snapshot of a user's credit account.

    Credit Structure:
    - playground_credits: allocation for the current billing period
    - playground_credits_used_current_period: consumed from that allocation
    - api_credits: persistent balance, decremented directly on use
    - api_credits_used_total: lifetime API consumption counter

    Available credits are derived, never stored.
    """
    user_id: str
    playground_credits: int = 0
    playground_credits_used_current_period: int = 0
    api_credits: int = 0
    api_credits_used_total: int = 0
    playground_credits_last_reset: Optional[datetime] = None
    playground_credits_next_reset: Optional[datetime] = None
    is_active: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def available_playground_credits(self) -> int:
        return max(0, self.playground_credits - self.playground_credits_used_current_period)

    @property
    def available_api_credits(self) -> int:
        return self.api_credits

    @property
    def total_available_credits(self) -> int:
        return self.available_playground_credits + self.available_api_credits

    def available_for(self, credit_type: Optional[CreditType]) -> int:
        """Credits a deduction restricted to ``credit_type`` could draw on."""
        if credit_type == CreditType.PLAYGROUND:
            return self.available_playground_credits
        if credit_type == CreditType.API:
            return self.available_api_credits
        return self.total_available_credits

    @classmethod
    def from_model(cls, row) -> 'CreditAccount':
        """Build a snapshot from a ``UserCredit`` ORM row."""
        return cls(
            id=row.id,
            user_id=row.user_id,
            playground_credits=row.playground_credits,
            playground_credits_used_current_period=row.playground_credits_used_current_period,
            api_credits=row.api_credits,
            api_credits_used_total=row.api_credits_used_total,
            playground_credits_last_reset=row.playground_credits_last_reset,
            playground_credits_next_reset=row.playground_credits_next_reset,
            is_active=row.is_active,
            metadata=dict(row.credit_metadata or {}),
            created_at=row.created_time,
            updated_at=row.updated_time,
        )

    def to_balance(self) -> 'CreditBalance':
        return CreditBalance(
            playground_credits=self.playground_credits,
            playground_credits_used_current_period=self.playground_credits_used_current_period,
            playground_credits_next_reset=self.playground_credits_next_reset,
            api_credits=self.api_credits,
            available_playground_credits=self.available_playground_credits,
            available_api_credits=self.available_api_credits,
            total_available_credits=self.total_available_credits,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'playground_credits': self.playground_credits,
            'playground_credits_used_current_period': self.playground_credits_used_current_period,
            'api_credits': self.api_credits,
            'api_credits_used_total': self.api_credits_used_total,
            'available_playground_credits': self.available_playground_credits,
            'available_api_credits': self.available_api_credits,
            'total_available_credits': self.total_available_credits,
            'playground_credits_last_reset': _iso(self.playground_credits_last_reset),
            'playground_credits_next_reset': _iso(self.playground_credits_next_reset),
            'is_active': self.is_active,
            'metadata': self.metadata,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


@dataclass
class CreditBalance:
    """Read model returned to request handlers."""
    playground_credits: int
    playground_credits_used_current_period: int
    playground_credits_next_reset: Optional[datetime]
    api_credits: int
    available_playground_credits: int
    available_api_credits: int
    total_available_credits: int

    @classmethod
    def from_dict(cls, data: dict) -> 'CreditBalance':
        next_reset = data.get('playground_credits_next_reset')
        if isinstance(next_reset, str):
            next_reset = datetime.fromisoformat(next_reset.replace('Z', '+00:00'))
        return cls(
            playground_credits=int(data.get('playground_credits', 0)),
            playground_credits_used_current_period=int(data.get('playground_credits_used_current_period', 0)),
            playground_credits_next_reset=next_reset,
            api_credits=int(data.get('api_credits', 0)),
            available_playground_credits=int(data.get('available_playground_credits', 0)),
            available_api_credits=int(data.get('available_api_credits', 0)),
            total_available_credits=int(data.get('total_available_credits', 0)),
        )

    def to_dict(self) -> dict:
        return {
            'playground_credits': self.playground_credits,
            'playground_credits_used_current_period': self.playground_credits_used_current_period,
            'playground_credits_next_reset': _iso(self.playground_credits_next_reset),
            'api_credits': self.api_credits,
            'available_playground_credits': self.available_playground_credits,
            'available_api_credits': self.available_api_credits,
            'total_available_credits': self.total_available_credits,
        }


@dataclass
class CreditUsageReport:
    """Per-period usage summary for a user."""
    user_id: str
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    playground_credits_allocated: int
    playground_credits_used: int
    playground_credits_remaining: int
    api_credits_total: int
    api_credits_used_lifetime: int
    api_credits_remaining: int

    @classmethod
    def from_account(cls, account: CreditAccount) -> 'CreditUsageReport':
        return cls(
            user_id=account.user_id,
            current_period_start=account.playground_credits_last_reset,
            current_period_end=account.playground_credits_next_reset,
            playground_credits_allocated=account.playground_credits,
            playground_credits_used=account.playground_credits_used_current_period,
            playground_credits_remaining=account.available_playground_credits,
            api_credits_total=account.api_credits + account.api_credits_used_total,
            api_credits_used_lifetime=account.api_credits_used_total,
            api_credits_remaining=account.available_api_credits,
        )

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'current_period_start': _iso(self.current_period_start),
            'current_period_end': _iso(self.current_period_end),
            'playground_credits_allocated': self.playground_credits_allocated,
            'playground_credits_used': self.playground_credits_used,
            'playground_credits_remaining': self.playground_credits_remaining,
            'api_credits_total': self.api_credits_total,
            'api_credits_used_lifetime': self.api_credits_used_lifetime,
            'api_credits_remaining': self.api_credits_remaining,
        }
