"""
Status enumerations for orders and payment transactions.

Usage:
    from orders.states import OrderStatus, TransactionStatus

    if order.status == OrderStatus.CANCELLED:
        ...
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    Order lifecycle states.

    PARTIALLY_REFUNDED and REFUNDED are derived from total_refunded_cents;
    they are never set by hand.
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"


class TransactionStatus(models.TextChoices):
    """Payment transaction states."""

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class PaymentMethod(models.TextChoices):
    """
    How a transaction was paid.

    Only STRIPE payments can be refunded through the processor.
    """

    STRIPE = "stripe", "Stripe"
    MANUAL = "manual", "Manual"
