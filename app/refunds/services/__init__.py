"""
Refund services.

- RefundRequestService: Customer refund requests and admin review
- RefundService: Stripe refund processing and order bookkeeping
"""

from refunds.services.refund_request_service import RefundRequestService
from refunds.services.refund_service import RefundExecutionResult, RefundService

__all__ = [
    "RefundExecutionResult",
    "RefundRequestService",
    "RefundService",
]
