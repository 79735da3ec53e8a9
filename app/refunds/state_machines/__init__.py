"""
State machine enums and helpers for refund models.
"""

from refunds.state_machines.states import (
    RefundRequestStatus,
    RefundStatus,
    RefundType,
    WebhookEventStatus,
    map_stripe_refund_status,
)

__all__ = [
    "RefundRequestStatus",
    "RefundStatus",
    "RefundType",
    "WebhookEventStatus",
    "map_stripe_refund_status",
]
