"""
Pricing Endpoints

Credit estimates for a generation before it is started.
"""

from fastapi import APIRouter, Depends

from marketplace.src.billing.credits.calculator import PricingCalculator
from marketplace.src.billing.endpoints.dependencies import get_current_user_id, get_pricing_calculator
from marketplace.src.billing.endpoints.schemas import PriceEstimateRequest, PriceEstimateResponse
from marketplace.src.billing.shared.exceptions import PricingError

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post("/estimate", response_model=PriceEstimateResponse)
async def estimate_price(
    body: PriceEstimateRequest,
    user_id: str = Depends(get_current_user_id),
    calculator: PricingCalculator = Depends(get_pricing_calculator),
):
    """Estimate the credits a generation with ``input`` would cost."""
    estimation = calculator.create_price_estimation(
        body.pricing_rule,
        body.input,
        model=body.model,
        model_version=body.model_version,
    )
    if estimation.error and not estimation.used_default_price:
        raise PricingError(message=estimation.error, pricing_type=body.pricing_rule.get("type"))
    return PriceEstimateResponse(**estimation.to_dict())
