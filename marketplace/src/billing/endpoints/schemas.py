"""Request and response models for the billing API."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class CreditBalanceResponse(BaseModel):
    """User's credit balance."""

    playground_credits: int = Field(..., description="Playground allocation for the current period")
    playground_credits_used_current_period: int = Field(..., description="Playground credits used this period")
    playground_credits_next_reset: Optional[datetime] = Field(None, description="End of the current billing period")
    api_credits: int = Field(..., description="Persistent API credit balance")
    available_playground_credits: int = Field(..., description="Playground credits still available")
    available_api_credits: int = Field(..., description="API credits available")
    total_available_credits: int = Field(..., description="Playground plus API credits available")


class CreditUsageResponse(BaseModel):
    """Credit usage for the current period."""

    user_id: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    playground_credits_allocated: int
    playground_credits_used: int
    playground_credits_remaining: int
    api_credits_total: int
    api_credits_used_lifetime: int
    api_credits_remaining: int


class CreditCheckRequest(BaseModel):
    amount: int = Field(..., ge=1, description="Credits the operation needs")
    credit_type: Optional[Literal['playground', 'api']] = Field(None, description="Restrict to one bucket")


class CreditCheckResponse(BaseModel):
    sufficient: bool
    amount: int
    credit_type: Optional[str] = None


class DeductCreditsRequest(BaseModel):
    amount: int = Field(..., ge=1, description="Credits to deduct")
    credit_type: Optional[Literal['playground', 'api']] = Field(
        None, description="Restrict to one bucket; omitted drains playground first"
    )
    description: Optional[str] = Field(None, max_length=500)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DeductionResponse(BaseModel):
    success: bool
    deducted_amount: int
    remaining_playground_credits: int
    remaining_api_credits: int
    credit_type_used: Optional[str] = None
    playground_deducted: int = 0
    api_deducted: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None


class PriceEstimateRequest(BaseModel):
    pricing_rule: Dict[str, Any] = Field(..., description="Service pricing rule as stored in the catalog")
    input: Dict[str, Any] = Field(default_factory=dict, description="Generation parameters")
    model: Optional[str] = None
    model_version: Optional[str] = None


class PriceEstimateResponse(BaseModel):
    estimated_credits: int
    breakdown: Optional[Dict[str, Any]] = None
    service_details: Dict[str, Any] = Field(default_factory=dict)
    used_default_price: bool = False
    error: Optional[str] = None
