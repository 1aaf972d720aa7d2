"""
Webhook Endpoints

Stripe webhook endpoint for processing billing events.
"""

from fastapi import APIRouter, Depends, Request

from marketplace.src.billing.endpoints.dependencies import verify_billing_enabled
from marketplace.src.billing.external.stripe import webhook_service

router = APIRouter(tags=["billing-webhooks"])


@router.post("/webhook", dependencies=[Depends(verify_billing_enabled)])
async def stripe_webhook(request: Request):
    """
    Process Stripe webhook events.

    Handles:
    - invoice.paid / invoice.payment_succeeded
    - invoice.payment_failed
    - customer.subscription.created
    - customer.subscription.deleted
    """
    return await webhook_service.process_stripe_webhook(request)
