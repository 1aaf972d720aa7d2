"""Tests for the two-bucket deduction decision table."""

import pytest

from marketplace.src.billing.credits.allocation import plan_deduction
from marketplace.src.billing.domain.credit_account import CreditType


class TestRestrictedDeductions:

    def test_playground_only(self):
        plan = plan_deduction(50, 100, 30, CreditType.PLAYGROUND)

        assert plan.is_covered
        assert (plan.from_playground, plan.from_api) == (30, 0)
        assert plan.credit_type_used == CreditType.PLAYGROUND

    def test_playground_only_does_not_spill_into_api(self):
        plan = plan_deduction(20, 100, 30, CreditType.PLAYGROUND)

        assert not plan.is_covered
        assert plan.shortfall == 10
        assert plan.available == 20
        assert (plan.from_playground, plan.from_api) == (0, 0)
        assert plan.credit_type_used is None

    def test_api_only(self):
        plan = plan_deduction(100, 40, 40, CreditType.API)

        assert plan.is_covered
        assert (plan.from_playground, plan.from_api) == (0, 40)
        assert plan.credit_type_used == CreditType.API

    def test_api_only_insufficient(self):
        plan = plan_deduction(100, 5, 10, CreditType.API)

        assert plan.shortfall == 5
        assert plan.available == 5


class TestUnrestrictedDeductions:

    def test_playground_drawn_first(self):
        plan = plan_deduction(20, 15, 25)

        assert (plan.from_playground, plan.from_api) == (20, 5)
        assert plan.credit_type_used == CreditType.MIXED

    def test_playground_covers_everything(self):
        plan = plan_deduction(50, 15, 25)

        assert (plan.from_playground, plan.from_api) == (25, 0)
        assert plan.credit_type_used == CreditType.PLAYGROUND

    def test_api_only_when_playground_exhausted(self):
        plan = plan_deduction(0, 15, 10)

        assert (plan.from_playground, plan.from_api) == (0, 10)
        assert plan.credit_type_used == CreditType.API

    def test_combined_insufficient(self):
        plan = plan_deduction(5, 4, 10)

        assert not plan.is_covered
        assert plan.shortfall == 1
        assert plan.available == 9

    def test_exact_total(self):
        plan = plan_deduction(5, 5, 10)

        assert plan.is_covered
        assert plan.from_playground + plan.from_api == 10

    def test_negative_availability_is_clamped(self):
        plan = plan_deduction(-3, 10, 10)

        assert (plan.from_playground, plan.from_api) == (0, 10)


class TestInvalidAmounts:

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount(self, amount):
        with pytest.raises(ValueError):
            plan_deduction(10, 10, amount)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
