"""
Refund domain models.

- RefundRequest: Customer-initiated refund request with review workflow
- Refund: Refund confirmed by Stripe, with order bookkeeping outbox
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from refunds.models.refund import Refund
from refunds.models.refund_request import RefundRequest
from refunds.models.webhook_event import WebhookEvent

__all__ = [
    "Refund",
    "RefundRequest",
    "WebhookEvent",
]
