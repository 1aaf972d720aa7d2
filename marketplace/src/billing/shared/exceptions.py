"""
Billing Exceptions

Custom exception classes for billing-related errors.
These provide structured error handling across the billing module.
"""


class BillingError(Exception):
    """
    Base exception for all billing-related errors.

    All billing exceptions inherit from this class, allowing for
    broad exception handling when needed.
    """

    def __init__(self, message: str, code: str = "BILLING_ERROR", details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


class InsufficientCreditsError(BillingError):
    """
    Raised when a user doesn't have enough credits for an operation.

    Attributes:
        required: Credits required for the operation
        available: Credits currently available
    """

    def __init__(
        self,
        message: str = "Insufficient credits for this operation",
        required: int = 0,
        available: int = 0,
        credit_type: str = None
    ):
        details = {
            'required': required,
            'available': available,
            'shortfall': max(0, required - available)
        }
        if credit_type:
            details['credit_type'] = credit_type

        super().__init__(
            message=message,
            code="INSUFFICIENT_CREDITS",
            details=details
        )
        self.required = required
        self.available = available
        self.credit_type = credit_type


class CreditAccountNotFoundError(BillingError):
    """Raised when a user has no active credit account."""

    def __init__(self, user_id: str):
        super().__init__(
            message="User credits not found",
            code="ACCOUNT_NOT_FOUND",
            details={'user_id': user_id}
        )
        self.user_id = user_id


class PricingError(BillingError):
    """
    Raised when a pricing rule cannot be parsed or evaluated.

    The calculator itself reports failures through ``PricingResult.error``;
    this is raised by callers that need a hard failure.
    """

    def __init__(
        self,
        message: str = "Pricing calculation failed",
        pricing_type: str = None
    ):
        super().__init__(
            message=message,
            code="PRICING_ERROR",
            details={'pricing_type': pricing_type} if pricing_type else {}
        )
        self.pricing_type = pricing_type


class SubscriptionError(BillingError):
    """
    Raised when there's an issue with subscription management.

    Examples:
        - Unknown package
        - Transition not allowed from the current status
    """

    def __init__(
        self,
        message: str = "Subscription error",
        code: str = "SUBSCRIPTION_ERROR",
        subscription_id: str = None
    ):
        super().__init__(
            message=message,
            code=code,
            details={'subscription_id': subscription_id} if subscription_id else {}
        )
        self.subscription_id = subscription_id


class WebhookError(BillingError):
    """
    Raised when there's an issue processing a webhook.

    Examples:
        - Invalid signature
        - Missing user/package metadata
        - Processing failed
    """

    def __init__(
        self,
        message: str = "Webhook processing error",
        code: str = "WEBHOOK_ERROR",
        event_id: str = None,
        event_type: str = None
    ):
        details = {}
        if event_id:
            details['event_id'] = event_id
        if event_type:
            details['event_type'] = event_type

        super().__init__(
            message=message,
            code=code,
            details=details
        )
        self.event_id = event_id
        self.event_type = event_type
