"""
Credit Endpoints

Balance, usage, sufficiency checks and deductions for the calling user.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from marketplace.src.billing.credits.manager import CreditManagementService
from marketplace.src.billing.domain.credit_account import CreditType
from marketplace.src.billing.domain.credit_operations import CreditDeductionRequest, DeductionFailure
from marketplace.src.billing.endpoints.dependencies import get_credit_service, get_initialized_user_id
from marketplace.src.billing.endpoints.schemas import (
    CreditBalanceResponse,
    CreditCheckRequest,
    CreditCheckResponse,
    CreditUsageResponse,
    DeductCreditsRequest,
    DeductionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["Credits"])

_FAILURE_STATUS = {
    DeductionFailure.INSUFFICIENT_CREDITS: 402,
    DeductionFailure.ACCOUNT_NOT_FOUND: 404,
    DeductionFailure.INVALID_AMOUNT: 422,
}


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_credit_balance(
    user_id: str = Depends(get_initialized_user_id),
    credit_service: CreditManagementService = Depends(get_credit_service),
):
    """Get the calling user's credit balance."""
    balance = await credit_service.get_credit_balance(user_id, use_cache=True)
    if balance is None:
        raise HTTPException(status_code=404, detail="User credits not found")
    return CreditBalanceResponse(**balance.to_dict())


@router.get("/usage", response_model=CreditUsageResponse)
async def get_credit_usage(
    user_id: str = Depends(get_initialized_user_id),
    credit_service: CreditManagementService = Depends(get_credit_service),
):
    """Get the calling user's usage for the current billing period."""
    report = await credit_service.get_credit_usage_report(user_id)
    if report is None:
        raise HTTPException(status_code=404, detail="User credits not found")
    return CreditUsageResponse(**report.to_dict())


@router.post("/check", response_model=CreditCheckResponse)
async def check_credits(
    body: CreditCheckRequest,
    user_id: str = Depends(get_initialized_user_id),
    credit_service: CreditManagementService = Depends(get_credit_service),
):
    """Advisory check; the deduction itself is authoritative."""
    credit_type = CreditType(body.credit_type) if body.credit_type else None
    sufficient = await credit_service.has_sufficient_credits(user_id, body.amount, credit_type)
    return CreditCheckResponse(sufficient=sufficient, amount=body.amount, credit_type=body.credit_type)


@router.post("/deduct", response_model=DeductionResponse)
async def deduct_credits(
    body: DeductCreditsRequest,
    user_id: str = Depends(get_initialized_user_id),
    credit_service: CreditManagementService = Depends(get_credit_service),
):
    """
    Deduct credits from the calling user.

    Returns 402 with the deduction result when credits are insufficient.
    """
    result = await credit_service.deduct_credits(CreditDeductionRequest(
        user_id=user_id,
        amount=body.amount,
        credit_type=CreditType(body.credit_type) if body.credit_type else None,
        description=body.description,
        metadata=body.metadata,
    ))

    if not result.success:
        return JSONResponse(
            status_code=_FAILURE_STATUS.get(result.error_code, 400),
            content=result.to_dict(),
        )
    return DeductionResponse(**result.to_dict())
