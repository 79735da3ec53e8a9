"""
RefundRequest model for customer-initiated refund requests.

A customer (or guest, identified by the checkout email) asks for a full or
partial refund of an order. An administrator approves or rejects it; the
customer may cancel it while it is still pending. An approved request is
consumed when a Refund is processed from it.

State Machine:
    pending → approved (admin) → consumed (refund linked)
    pending → rejected (admin)
    pending → cancelled (requesting customer)

Usage:
    from refunds.models import RefundRequest

    refund_request.approve(admin_user)
    refund_request.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from refunds.state_machines import RefundRequestStatus, RefundType

DEFAULT_REJECTION_REASON = "Refund request rejected"


class RefundRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer's request for a refund of an order.

    Fields:
        order: Order the refund is requested for
        customer: Requesting account (null for guest requests)
        customer_email: Requesting email (the order email for guests)
        type: FULL or PARTIAL
        amount_cents: Requested amount (derived for FULL requests)
        currency: Copied from the order
        reason: Customer-supplied reason
        items: Line items covered by a partial request
        status: Current state (FSM protected)
        rejection_reason: Why the request was rejected
        approved_by/approved_at: Approving administrator and time
        rejected_by/rejected_at: Rejecting administrator and time
        cancelled_at: When the customer cancelled the request
        refund: Refund processed from this request

    Invariants:
        At most one open request (pending, or approved without a refund)
        per order; enforced by a partial unique index.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refund_requests",
        help_text="Order this refund is requested for",
    )
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="refund_requests",
        help_text="Requesting customer account (null for guests)",
    )
    customer_email = models.EmailField(
        db_index=True,
        help_text="Email of the requester",
    )

    # ==========================================================================
    # Request Details
    # ==========================================================================

    type = models.CharField(
        max_length=10,
        choices=RefundType.choices,
        default=RefundType.FULL,
        help_text="Full or partial refund",
    )
    amount_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Requested amount in minor units (derived for full refunds)",
    )
    currency = models.CharField(
        max_length=3,
        default="gbp",
        help_text="Three-letter ISO currency code (copied from the order)",
    )
    reason = models.TextField(
        help_text="Customer's reason for requesting the refund",
    )
    items = models.JSONField(
        default=list,
        blank=True,
        help_text="Line items covered by a partial refund",
    )

    # ==========================================================================
    # State Machine
    # ==========================================================================

    status = FSMField(
        default=RefundRequestStatus.PENDING,
        choices=RefundRequestStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current request status",
    )

    # ==========================================================================
    # Review Audit Trail
    # ==========================================================================

    rejection_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given when the request was rejected",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Administrator who approved the request",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Administrator who rejected the request",
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    refund = models.OneToOneField(
        "refunds.Refund",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="refund_request",
        help_text="Refund processed from this request",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund Request"
        verbose_name_plural = "Refund Requests"
        indexes = [
            models.Index(fields=["order", "status"], name="refund_req_order_status_idx"),
            models.Index(
                fields=["customer_email", "created_at"],
                name="refund_req_email_created_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=(
                    models.Q(status=RefundRequestStatus.PENDING)
                    | models.Q(status=RefundRequestStatus.APPROVED, refund__isnull=True)
                ),
                name="refund_request_one_open_per_order",
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(type=RefundType.FULL)
                    | models.Q(amount_cents__gt=0)
                ),
                name="refund_request_partial_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"RefundRequest {self.id} ({self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == RefundRequestStatus.PENDING

    @property
    def is_consumed(self) -> bool:
        """Approved and already turned into a Refund."""
        return self.status == RefundRequestStatus.APPROVED and self.refund_id is not None

    @property
    def is_open(self) -> bool:
        """Pending, or approved and still waiting to be processed."""
        return self.is_pending or (
            self.status == RefundRequestStatus.APPROVED and self.refund_id is None
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundRequestStatus.PENDING,
        target=RefundRequestStatus.APPROVED,
    )
    def approve(self, admin=None) -> None:
        """
        Approve the request for processing.

        Note: Does not save - caller must save after calling.
        """
        self.approved_by = admin
        self.approved_at = timezone.now()

    @transition(
        field=status,
        source=RefundRequestStatus.PENDING,
        target=RefundRequestStatus.REJECTED,
    )
    def reject(self, admin=None, reason: str | None = None) -> None:
        """
        Reject the request.

        Note: Does not save - caller must save after calling.
        """
        self.rejection_reason = reason or DEFAULT_REJECTION_REASON
        self.rejected_by = admin
        self.rejected_at = timezone.now()

    @transition(
        field=status,
        source=RefundRequestStatus.PENDING,
        target=RefundRequestStatus.CANCELLED,
    )
    def cancel(self) -> None:
        """
        Cancel the request on behalf of the requesting customer.

        Note: Does not save - caller must save after calling.
        """
        self.cancelled_at = timezone.now()
