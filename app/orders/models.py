"""
Order, line item and payment transaction models.

Money is stored as integer minor units (pence for GBP) to avoid rounding
drift. An Order owns its refund aggregate (total_refunded_cents and the
refund-derived statuses); refund requests and refunds reference the order
from the refunds app.

Usage:
    from orders.models import Order, Transaction

    order = Order.objects.prefetch_related("transactions").get(pk=order_id)
    order.refundable_amount_cents
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from orders.states import OrderStatus, PaymentMethod, TransactionStatus

DEFAULT_CURRENCY = "gbp"


class Order(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A customer order placed at checkout.

    Fields:
        customer: Account that placed the order (null for guest checkout)
        customer_email: Email recorded at checkout (used for guest access)
        amount_cents: Order total in minor units
        currency: Three-letter ISO currency code (lowercase)
        status: Order status (see OrderStatus)
        total_refunded_cents: Sum of refunds applied to this order

    Invariants:
        - 0 <= total_refunded_cents <= amount_cents
        - status is REFUNDED iff total_refunded_cents >= amount_cents and
          PARTIALLY_REFUNDED iff 0 < total_refunded_cents < amount_cents
          once a refund has been applied
    """

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
        help_text="Customer account that placed the order (null for guests)",
    )
    customer_email = models.EmailField(
        db_index=True,
        help_text="Email address captured at checkout",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Order total in minor currency units",
    )
    currency = models.CharField(
        max_length=3,
        default=DEFAULT_CURRENCY,
        help_text="Three-letter ISO currency code",
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
        help_text="Current order status",
    )
    total_refunded_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Total refunded so far in minor currency units",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(
                fields=["customer", "created_at"], name="order_customer_created_idx"
            ),
            models.Index(
                fields=["customer_email", "created_at"], name="order_email_created_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    total_refunded_cents__lte=models.F("amount_cents")
                ),
                name="order_refunded_not_above_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"Order {self.id} ({self.status})"

    @property
    def refundable_amount_cents(self) -> int:
        """Amount still available for refund."""
        from refunds.validation import get_refundable_amount

        return get_refundable_amount(self.amount_cents, self.total_refunded_cents)

    def is_owned_by_email(self, email: str | None) -> bool:
        """Case-insensitive match against the checkout email."""
        if not email or not self.customer_email:
            return False
        return self.customer_email.strip().lower() == email.strip().lower()

    def apply_refund(self, amount_cents: int) -> None:
        """
        Add a refund to the refunded total and re-derive the status.

        Capped at amount_cents so the check constraint always holds.
        Note: Does not save - caller must save (under select_for_update).
        """
        self.total_refunded_cents = min(
            self.amount_cents, (self.total_refunded_cents or 0) + amount_cents
        )
        self.sync_refund_status()

    def sync_refund_status(self) -> bool:
        """
        Re-derive status from total_refunded_cents.

        Returns:
            True if the status changed
        """
        from refunds.validation import derive_order_status

        new_status = derive_order_status(
            self.amount_cents, self.total_refunded_cents, self.status
        )
        if new_status == self.status:
            return False
        self.status = new_status
        return True


class OrderItem(models.Model):
    """
    A line item on an order.

    Kept in insertion order so refund requests can reference items the
    way the customer saw them at checkout.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
        help_text="Order this line belongs to",
    )
    product_name = models.CharField(
        max_length=255,
        help_text="Product name at time of purchase",
    )
    variant = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Variant label (size, colour) at time of purchase",
    )
    quantity = models.PositiveIntegerField(default=1)
    unit_amount_cents = models.PositiveBigIntegerField(
        help_text="Unit price in minor currency units",
    )

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product_name}"

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_amount_cents


class Transaction(BaseModel):
    """
    A payment attempt against an order.

    Integer primary keys keep transactions in insertion order, which is the
    order used to pick the primary (refund source) transaction.

    Fields:
        order: Order this payment belongs to
        amount_cents: Amount charged in minor units
        currency: Three-letter ISO currency code
        status: Payment status (see TransactionStatus)
        payment_method: How the payment was taken (see PaymentMethod)
        stripe_payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
        customer_email: Payer email recorded with the payment
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Order this transaction pays for",
    )
    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount charged in minor currency units",
    )
    currency = models.CharField(
        max_length=3,
        default=DEFAULT_CURRENCY,
        help_text="Three-letter ISO currency code",
    )
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.PENDING,
        db_index=True,
        help_text="Current payment status",
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.STRIPE,
        help_text="Payment method used for this transaction",
    )
    stripe_payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )
    customer_email = models.EmailField(
        blank=True,
        default="",
        help_text="Payer email recorded with the payment",
    )

    class Meta:
        ordering = ["id"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"

    def __str__(self) -> str:
        return f"Transaction {self.pk} ({self.status})"
