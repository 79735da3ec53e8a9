"""
Refund model recording money returned to a customer through Stripe.

A Refund row is written only after Stripe accepted the refund, so every
row carries the Stripe refund ID that proves the money movement. The
order-side bookkeeping (order total/status and transaction status) is
applied in a separate transaction; until that succeeds the refund keeps
its order_update_pending marker and the reconciliation sweep retries it.

State Machine:
    processing → completed
    processing → failed
    completed/failed → processing, completed ↔ failed (Stripe corrections)

Usage:
    from refunds.models import Refund

    refund.complete()
    refund.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from refunds.state_machines import RefundStatus, RefundType


class Refund(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A refund confirmed by Stripe.

    Fields:
        order: Order the refund applies to
        transaction: Payment transaction that was refunded
        amount_cents: Refund amount in minor units
        currency: Three-letter ISO currency code (matches the order)
        type: FULL or PARTIAL
        status: Current state (FSM protected)
        stripe_refund_id: Stripe Refund ID (re_xxx), unique
        stripe_charge_id: Stripe Charge ID (ch_xxx)
        stripe_payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
        reason: Why the refund was issued
        processed_by/processed_at: Who issued the refund and when
        order_update_pending: Order/transaction bookkeeping not yet applied
        order_update_attempts: Bookkeeping attempts so far
        last_order_update_error: Error from the latest failed attempt
        completed_at/failed_at/failure_reason: Settlement details
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Order this refund applies to",
    )
    transaction = models.ForeignKey(
        "orders.Transaction",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment transaction that was refunded",
    )

    # ==========================================================================
    # Amount
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refund amount in minor currency units",
    )
    currency = models.CharField(
        max_length=3,
        default="gbp",
        help_text="Three-letter ISO currency code",
    )
    type = models.CharField(
        max_length=10,
        choices=RefundType.choices,
        help_text="Full or partial refund",
    )

    # ==========================================================================
    # State Machine
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PROCESSING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current refund status",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_refund_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Refund ID (re_xxx)",
    )
    stripe_charge_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Charge ID (ch_xxx)",
    )
    stripe_payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    # ==========================================================================
    # Audit
    # ==========================================================================

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the refund was issued",
    )
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Administrator who issued the refund",
    )
    processed_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the refund was issued",
    )

    # ==========================================================================
    # Order Bookkeeping Outbox
    # ==========================================================================

    order_update_pending = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Order total/status and transaction status not yet updated",
    )
    order_update_attempts = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of attempts to apply the order update",
    )
    last_order_update_error = models.TextField(
        blank=True,
        default="",
        help_text="Error from the most recent failed order update",
    )

    # ==========================================================================
    # Settlement
    # ==========================================================================

    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe failure reason when the refund failed",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["order", "status"], name="refund_order_status_idx"),
            models.Index(
                fields=["order_update_pending", "created_at"],
                name="refund_update_pending_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="refund_amount_positive",
            ),
            models.CheckConstraint(
                condition=~models.Q(stripe_refund_id=""),
                name="refund_has_stripe_refund_id",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund {self.stripe_refund_id} ({self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[RefundStatus.PROCESSING, RefundStatus.FAILED],
        target=RefundStatus.COMPLETED,
    )
    def complete(self) -> None:
        """Mark the refund as settled by Stripe."""
        self.completed_at = timezone.now()
        self.failure_reason = ""

    @transition(
        field=status,
        source=[RefundStatus.PROCESSING, RefundStatus.COMPLETED],
        target=RefundStatus.FAILED,
    )
    def fail(self, reason: str = "") -> None:
        """Mark the refund as failed or canceled at Stripe."""
        self.failed_at = timezone.now()
        self.failure_reason = reason[:255]

    @transition(
        field=status,
        source=[RefundStatus.COMPLETED, RefundStatus.FAILED],
        target=RefundStatus.PROCESSING,
    )
    def reopen(self) -> None:
        """Stripe reports the refund as in flight again."""

    def transition_to(self, target: str, reason: str = "") -> bool:
        """
        Move to target status using the matching transition.

        Returns:
            True if the status changed, False if already in target state

        Note: Does not save - caller must save after calling.
        """
        if self.status == target:
            return False

        if target == RefundStatus.COMPLETED:
            self.complete()
        elif target == RefundStatus.FAILED:
            self.fail(reason)
        else:
            self.reopen()
        return True
