"""
State enums for refund models.

These are Django TextChoices for database storage and admin integration;
RefundRequestStatus and RefundStatus back django-fsm fields.

State Machines Overview:

RefundRequest:
    pending → approved (admin) → consumed once a Refund is linked
    pending → rejected (admin)
    pending → cancelled (requesting customer)

Refund:
    processing → completed
    processing → failed
    completed ↔ failed ↔ processing (corrections from Stripe webhooks)

Refunds are only created after Stripe accepted the refund, so there is no
"requested" state: a Refund row records money that already moved.
"""

from django.db import models


class RefundType(models.TextChoices):
    """Whether a refund covers the whole refundable amount or part of it."""

    FULL = "full", "Full"
    PARTIAL = "partial", "Partial"


class RefundRequestStatus(models.TextChoices):
    """
    States for the RefundRequest lifecycle.

    Terminal states: REJECTED, CANCELLED. APPROVED is terminal once the
    request has a linked Refund.
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"


class RefundStatus(models.TextChoices):
    """
    States for the Refund lifecycle.

    Initial state is COMPLETED when Stripe reports the refund succeeded at
    creation time, otherwise PROCESSING until a webhook settles it.
    """

    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent records.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED → PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


# Stripe refund statuses mapped onto local Refund statuses. Anything not
# listed (pending, requires_action) means the refund is still in flight.
STRIPE_REFUND_STATUS_MAP = {
    "succeeded": RefundStatus.COMPLETED,
    "failed": RefundStatus.FAILED,
    "canceled": RefundStatus.FAILED,
}


def map_stripe_refund_status(stripe_status: str | None) -> str:
    """Translate a Stripe refund status into a RefundStatus value."""
    return STRIPE_REFUND_STATUS_MAP.get(stripe_status or "", RefundStatus.PROCESSING)
