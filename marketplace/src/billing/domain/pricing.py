"""
Pricing Rule Domain Types

A service's pricing rule is one of three immutable variants. The wire form is
the JSON persisted on the service record::

    {"type": "fixed", "price": 0.5}
    {"type": "per_second", "parameter": "mode", "rates": {"standard": 0.05, "pro": 0.09}}
    {"type": "conditional", "rules": [{"conditions": {"resolution": "768p", "duration": 10}, "price": 0.45}]}
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union


class PricingType(str, Enum):
    FIXED = "fixed"
    PER_UNIT = "per_second"
    CONDITIONAL = "conditional"


# Accepted spellings of the ``type`` discriminator
_TYPE_ALIASES = {
    "fixed": PricingType.FIXED,
    "per_second": PricingType.PER_UNIT,
    "per_unit": PricingType.PER_UNIT,
    "conditional": PricingType.CONDITIONAL,
}


def to_decimal(value: Any) -> Decimal:
    """Convert a JSON number or numeric string to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"not a number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return result


@dataclass(frozen=True)
class FixedPricing:
    price: Decimal
    type: PricingType = field(default=PricingType.FIXED, init=False)


@dataclass(frozen=True)
class PerUnitPricing:
    """``rates`` maps a value of ``params[parameter]`` to a per-unit (per-second) rate."""
    parameter: str
    rates: Tuple[Tuple[str, Decimal], ...]
    type: PricingType = field(default=PricingType.PER_UNIT, init=False)

    def rate_map(self) -> Dict[str, Decimal]:
        return dict(self.rates)


@dataclass(frozen=True)
class ConditionalRule:
    conditions: Tuple[Tuple[str, Any], ...]
    price: Decimal

    def conditions_dict(self) -> Dict[str, Any]:
        return dict(self.conditions)


@dataclass(frozen=True)
class ConditionalPricing:
    """Ordered rules; the first rule whose conditions all match wins."""
    rules: Tuple[ConditionalRule, ...]
    type: PricingType = field(default=PricingType.CONDITIONAL, init=False)


PricingRule = Union[FixedPricing, PerUnitPricing, ConditionalPricing]


def parse_pricing_rule(data: Union[PricingRule, Mapping[str, Any]]) -> PricingRule:
    """
    Parse the persisted JSON form of a pricing rule.

    Raises:
        ValueError: unknown ``type`` or malformed fields
    """
    if isinstance(data, (FixedPricing, PerUnitPricing, ConditionalPricing)):
        return data
    if not isinstance(data, Mapping):
        raise ValueError("pricing rule must be an object")

    pricing_type = _TYPE_ALIASES.get(str(data.get("type", "")).lower())
    if pricing_type is None:
        raise ValueError(f"Unknown pricing rule type: {data.get('type')!r}")

    if pricing_type == PricingType.FIXED:
        if "price" not in data:
            raise ValueError("fixed pricing requires 'price'")
        return FixedPricing(price=to_decimal(data["price"]))

    if pricing_type == PricingType.PER_UNIT:
        parameter = data.get("parameter")
        rates = data.get("rates")
        if not parameter or not isinstance(rates, Mapping):
            raise ValueError("per-unit pricing requires 'parameter' and 'rates'")
        return PerUnitPricing(
            parameter=str(parameter),
            rates=tuple((str(key), to_decimal(rate)) for key, rate in rates.items()),
        )

    rules = data.get("rules")
    if not isinstance(rules, list):
        raise ValueError("conditional pricing requires a 'rules' list")
    parsed = []
    for rule in rules:
        if not isinstance(rule, Mapping) or not isinstance(rule.get("conditions"), Mapping) or "price" not in rule:
            raise ValueError("each conditional rule requires 'conditions' and 'price'")
        parsed.append(ConditionalRule(
            conditions=tuple(rule["conditions"].items()),
            price=to_decimal(rule["price"]),
        ))
    return ConditionalPricing(rules=tuple(parsed))



@dataclass
class PriceBreakdown:
    rule: str
    base_price: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    duration: Optional[Decimal] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {'rule': self.rule}
        if self.base_price is not None:
            data['base_price'] = float(self.base_price)
        if self.rate is not None:
            data['rate'] = float(self.rate)
        if self.duration is not None:
            data['duration'] = float(self.duration)
        return data


@dataclass
class PricingResult:
    """Provider cost in USD. ``error`` is set instead of raising."""
    total_price: Decimal
    breakdown: Optional[PriceBreakdown] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: str) -> 'PricingResult':
        return cls(total_price=Decimal('0'), error=error)

    def to_dict(self) -> dict:
        return {
            'total_price': float(self.total_price),
            'breakdown': self.breakdown.to_dict() if self.breakdown else None,
            'error': self.error,
        }


@dataclass
class CreditBreakdown:
    provider_cost_usd: Decimal
    profit_margin: Decimal
    total_cost_usd: Decimal
    credit_value_usd: Decimal
    estimated_credits_raw: Decimal
    estimated_credits_rounded: int

    def to_dict(self) -> dict:
        return {
            'provider_cost_usd': float(self.provider_cost_usd),
            'profit_margin': float(self.profit_margin),
            'total_cost_usd': float(self.total_cost_usd),
            'credit_value_usd': float(self.credit_value_usd),
            'estimated_credits_raw': float(self.estimated_credits_raw),
            'estimated_credits_rounded': self.estimated_credits_rounded,
        }


@dataclass
class CreditEstimate:
    estimated_credits: int
    breakdown: Optional[CreditBreakdown] = None
    error: Optional[str] = None
    price: Optional[PricingResult] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            'estimated_credits': self.estimated_credits,
            'breakdown': self.breakdown.to_dict() if self.breakdown else None,
            'error': self.error,
        }
