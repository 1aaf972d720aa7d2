"""
Stripe integration: webhook verification and routing.
"""

from .webhooks import WebhookService, webhook_service

__all__ = ['WebhookService', 'webhook_service']
