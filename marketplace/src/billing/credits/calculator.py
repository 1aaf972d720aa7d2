"""
Pricing Calculator

Prices a model invocation from the service's pricing rule and the request
parameters, then converts the provider cost (USD) into credits:

    total_cost_usd = provider_cost_usd * PROFIT_MARGIN
    credits        = ceil(total_cost_usd / CREDIT_VALUE_USD)

All arithmetic is Decimal; rounding up means a charge is never below cost.
The calculator is pure: failures are reported on the result, never raised.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional, Union

from marketplace.src.billing.domain.pricing import (
    ConditionalPricing,
    CreditBreakdown,
    CreditEstimate,
    FixedPricing,
    PerUnitPricing,
    PriceBreakdown,
    PricingResult,
    PricingRule,
    parse_pricing_rule,
    to_decimal,
)
from marketplace.src.billing.shared.config import CREDIT_VALUE_USD, PROFIT_MARGIN

logger = logging.getLogger(__name__)

RAW_CREDITS_PRECISION = Decimal('0.000001')

RuleInput = Union[PricingRule, Mapping[str, Any]]


def _values_match(expected: Any, actual: Any) -> bool:
    """Loose equality: numeric when both sides are numbers, string otherwise."""
    if actual is None:
        return False
    try:
        return to_decimal(expected) == to_decimal(actual)
    except ValueError:
        return str(expected) == str(actual)


@dataclass
class PriceEstimation:
    """Price estimate returned to clients before a generation is started."""
    estimated_credits: int
    breakdown: Optional[CreditBreakdown]
    service_details: Dict[str, Any] = field(default_factory=dict)
    used_default_price: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'estimated_credits': self.estimated_credits,
            'breakdown': self.breakdown.to_dict() if self.breakdown else None,
            'service_details': self.service_details,
            'used_default_price': self.used_default_price,
            'error': self.error,
        }


class PricingCalculator:
    """
    Calculate provider prices and credit costs for generation services.

    Usage:
        calculator = PricingCalculator()
        result = calculator.calculate_price(
            {"type": "per_second", "parameter": "mode", "rates": {"standard": 0.05}},
            {"mode": "standard", "duration": 10},
        )
        result.total_price  # Decimal('0.50')
    """

    def __init__(
        self,
        profit_margin: Decimal = PROFIT_MARGIN,
        credit_value_usd: Decimal = CREDIT_VALUE_USD,
    ):
        """
        Args:
            profit_margin: Multiplier applied to the provider cost
            credit_value_usd: USD value of a single credit
        """
        self.profit_margin = Decimal(str(profit_margin))
        self.credit_value_usd = Decimal(str(credit_value_usd))
        if self.credit_value_usd <= 0:
            raise ValueError("credit_value_usd must be positive")

    # =========================================================================
    # PROVIDER PRICE
    # =========================================================================

    def calculate_price(self, rule: RuleInput, params: Mapping[str, Any]) -> PricingResult:
        """
        Price one invocation.

        Args:
            rule: Parsed pricing rule or its persisted JSON form
            params: Request parameters (see ``prepare_calculation_params``)

        Returns:
            PricingResult with ``total_price`` in USD, or ``error`` set
        """
        try:
            parsed = parse_pricing_rule(rule)
        except ValueError as e:
            return PricingResult.failed(str(e))

        params = params or {}
        if isinstance(parsed, FixedPricing):
            return self._calculate_fixed(parsed)
        if isinstance(parsed, PerUnitPricing):
            return self._calculate_per_unit(parsed, params)
        if isinstance(parsed, ConditionalPricing):
            return self._calculate_conditional(parsed, params)
        return PricingResult.failed("Unknown pricing rule type")

    @staticmethod
    def _calculate_fixed(rule: FixedPricing) -> PricingResult:
        return PricingResult(
            total_price=rule.price,
            breakdown=PriceBreakdown(rule="Fixed pricing", base_price=rule.price),
        )

    @staticmethod
    def _calculate_per_unit(rule: PerUnitPricing, params: Mapping[str, Any]) -> PricingResult:
        value = params.get(rule.parameter)
        if value is None or value == "":
            return PricingResult.failed(f"Required parameter '{rule.parameter}' is missing")

        rates = rule.rate_map()
        rate = rates.get(str(value))
        if rate is None:
            rate = next((r for key, r in rates.items() if _values_match(key, value)), None)
        if rate is None:
            return PricingResult.failed(f"unsupported {rule.parameter} value")

        raw_duration = params.get("duration")
        if raw_duration is None or raw_duration == "":
            duration = Decimal('1')
        else:
            try:
                duration = to_decimal(raw_duration)
            except ValueError:
                return PricingResult.failed(f"Invalid duration value: {raw_duration}")
            if duration < 0:
                return PricingResult.failed(f"Invalid duration value: {raw_duration}")

        return PricingResult(
            total_price=rate * duration,
            breakdown=PriceBreakdown(
                rule=f"Per second pricing ({rule.parameter}={value})",
                rate=rate,
                duration=duration,
            ),
        )

    @staticmethod
    def _calculate_conditional(rule: ConditionalPricing, params: Mapping[str, Any]) -> PricingResult:
        for conditional_rule in rule.rules:
            if all(_values_match(expected, params.get(name)) for name, expected in conditional_rule.conditions):
                return PricingResult(
                    total_price=conditional_rule.price,
                    breakdown=PriceBreakdown(
                        rule=f"Conditional pricing: {json.dumps(conditional_rule.conditions_dict(), default=str)}",
                        base_price=conditional_rule.price,
                    ),
                )
        return PricingResult.failed("No matching conditional rule found for given parameters")

    @staticmethod
    def prepare_calculation_params(service_params: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Normalize user input for pricing: drop nulls, parse a string duration.
        """
        params: Dict[str, Any] = {}
        for key, value in (service_params or {}).items():
            if value is None:
                continue
            if key == "duration" and isinstance(value, str):
                try:
                    params[key] = int(Decimal(value.strip()))
                except (ArithmeticError, ValueError):
                    params[key] = value
            else:
                params[key] = value
        return params

    @staticmethod
    def get_default_price(rule: RuleInput) -> Decimal:
        """
        Fallback price: the fixed price, the first rate, or the first
        conditional rule's price.
        """
        try:
            parsed = parse_pricing_rule(rule)
        except ValueError:
            return Decimal('0')

        if isinstance(parsed, FixedPricing):
            return parsed.price
        if isinstance(parsed, PerUnitPricing):
            return parsed.rates[0][1] if parsed.rates else Decimal('0')
        if isinstance(parsed, ConditionalPricing):
            return parsed.rules[0].price if parsed.rules else Decimal('0')
        return Decimal('0')

    # =========================================================================
    # CREDIT CONVERSION
    # =========================================================================

    def credits_for_cost(self, provider_cost_usd: Decimal) -> CreditBreakdown:
        provider_cost_usd = Decimal(str(provider_cost_usd))
        total_cost_usd = provider_cost_usd * self.profit_margin
        raw = total_cost_usd / self.credit_value_usd
        rounded = int(raw.to_integral_value(rounding=ROUND_CEILING))
        return CreditBreakdown(
            provider_cost_usd=provider_cost_usd,
            profit_margin=self.profit_margin,
            total_cost_usd=total_cost_usd,
            credit_value_usd=self.credit_value_usd,
            estimated_credits_raw=raw.quantize(RAW_CREDITS_PRECISION, rounding=ROUND_HALF_UP),
            estimated_credits_rounded=max(0, rounded),
        )

    def calculate_required_credits(self, rule: RuleInput, params: Mapping[str, Any]) -> CreditEstimate:
        price = self.calculate_price(rule, params)
        if not price.ok:
            return CreditEstimate(estimated_credits=0, error=price.error, price=price)

        breakdown = self.credits_for_cost(price.total_price)
        logger.debug(
            f"[PRICING] ${price.total_price} x {self.profit_margin} / ${self.credit_value_usd} "
            f"= {breakdown.estimated_credits_raw} -> {breakdown.estimated_credits_rounded} credits"
        )
        return CreditEstimate(
            estimated_credits=breakdown.estimated_credits_rounded,
            breakdown=breakdown,
            price=price,
        )

    def get_default_credits(self, rule: RuleInput) -> int:
        return self.credits_for_cost(self.get_default_price(rule)).estimated_credits_rounded

    def resolve_required_credits(self, rule: RuleInput, params: Mapping[str, Any]) -> int:
        """
        Credits to charge for an invocation, falling back to the rule's
        default price when the parameters cannot be priced.
        """
        estimate = self.calculate_required_credits(rule, self.prepare_calculation_params(params))
        if estimate.ok:
            return estimate.estimated_credits

        default_credits = self.get_default_credits(rule)
        logger.warning(f"[PRICING] {estimate.error}; falling back to default price ({default_credits} credits)")
        return default_credits

    def create_price_estimation(
        self,
        rule: RuleInput,
        params: Mapping[str, Any],
        model: Optional[str] = None,
        model_version: Optional[str] = None,
    ) -> PriceEstimation:
        try:
            pricing_type = parse_pricing_rule(rule).type.value
        except ValueError:
            pricing_type = None

        service_details = {
            'model': model,
            'model_version': model_version,
            'pricing_type': pricing_type,
        }

        estimate = self.calculate_required_credits(rule, self.prepare_calculation_params(params))
        if estimate.ok:
            return PriceEstimation(
                estimated_credits=estimate.estimated_credits,
                breakdown=estimate.breakdown,
                service_details=service_details,
            )

        if pricing_type is None:
            return PriceEstimation(
                estimated_credits=0,
                breakdown=None,
                service_details=service_details,
                error=estimate.error,
            )

        breakdown = self.credits_for_cost(self.get_default_price(rule))
        logger.info(f"[PRICING] Estimation for {model or 'unknown model'} fell back to default price: {estimate.error}")
        return PriceEstimation(
            estimated_credits=breakdown.estimated_credits_rounded,
            breakdown=breakdown,
            service_details=service_details,
            used_default_price=True,
            error=estimate.error,
        )


# Global instance
pricing_calculator = PricingCalculator()


# Convenience functions
def calculate_price(rule: RuleInput, params: Mapping[str, Any]) -> PricingResult:
    """Price one invocation in USD."""
    return pricing_calculator.calculate_price(rule, params)


def calculate_required_credits(rule: RuleInput, params: Mapping[str, Any]) -> CreditEstimate:
    """Credits for one invocation, including profit margin."""
    return pricing_calculator.calculate_required_credits(rule, params)
