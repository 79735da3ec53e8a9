"""
Payment processor adapters for refunds.

All Stripe refund calls go through StripeAdapter to ensure consistent
error handling, timeouts, idempotency and logging.

Usage:
    from refunds.adapters import StripeAdapter, StripeConfig

    adapter = StripeAdapter(StripeConfig.from_settings())
    result = adapter.refund_full("pi_123", idempotency_key="refund:...")
"""

from refunds.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    RefundResult,
    StripeAdapter,
    StripeConfig,
)

__all__ = [
    "IdempotencyKeyGenerator",
    "RefundResult",
    "StripeAdapter",
    "StripeConfig",
]
