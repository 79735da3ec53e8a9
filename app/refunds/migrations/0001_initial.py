import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Refund",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Refund amount in minor currency units"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="gbp",
                        help_text="Three-letter ISO currency code",
                        max_length=3,
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=[("full", "Full"), ("partial", "Partial")],
                        help_text="Full or partial refund",
                        max_length=10,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="processing",
                        help_text="Current refund status",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "stripe_refund_id",
                    models.CharField(
                        help_text="Stripe Refund ID (re_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "stripe_charge_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe Charge ID (ch_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "stripe_payment_intent_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Why the refund was issued",
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the refund was issued",
                    ),
                ),
                (
                    "order_update_pending",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="Order total/status and transaction status not yet updated",
                    ),
                ),
                (
                    "order_update_attempts",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of attempts to apply the order update",
                    ),
                ),
                (
                    "last_order_update_error",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Error from the most recent failed order update",
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "failure_reason",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe failure reason when the refund failed",
                        max_length=255,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this refund applies to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="orders.order",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        help_text="Payment transaction that was refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="orders.transaction",
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who issued the refund",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "status"], name="refund_order_status_idx"
                    ),
                    models.Index(
                        fields=["order_update_pending", "created_at"],
                        name="refund_update_pending_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="refund_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("stripe_refund_id", ""), _negated=True),
                        name="refund_has_stripe_refund_id",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundRequest",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "customer_email",
                    models.EmailField(
                        db_index=True,
                        help_text="Email of the requester",
                        max_length=254,
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=[("full", "Full"), ("partial", "Partial")],
                        default="full",
                        help_text="Full or partial refund",
                        max_length=10,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Requested amount in minor units (derived for full refunds)",
                        null=True,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="gbp",
                        help_text="Three-letter ISO currency code (copied from the order)",
                        max_length=3,
                    ),
                ),
                (
                    "reason",
                    models.TextField(
                        help_text="Customer's reason for requesting the refund"
                    ),
                ),
                (
                    "items",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Line items covered by a partial refund",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current request status",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "rejection_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Reason given when the request was rejected",
                    ),
                ),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this refund is requested for",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund_requests",
                        to="orders.order",
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Requesting customer account (null for guests)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="refund_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who approved the request",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "rejected_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who rejected the request",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "refund",
                    models.OneToOneField(
                        blank=True,
                        help_text="Refund processed from this request",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="refund_request",
                        to="refunds.refund",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund Request",
                "verbose_name_plural": "Refund Requests",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "status"], name="refund_req_order_status_idx"
                    ),
                    models.Index(
                        fields=["customer_email", "created_at"],
                        name="refund_req_email_created_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("status", "pending"),
                            models.Q(("refund__isnull", True), ("status", "approved")),
                            _connector="OR",
                        ),
                        fields=("order",),
                        name="refund_request_one_open_per_order",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("type", "full"),
                            ("amount_cents__gt", 0),
                            _connector="OR",
                        ),
                        name="refund_request_partial_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe event type (e.g., 'refund.updated')",
                        max_length=100,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        help_text="Full webhook payload from Stripe (JSON)"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When event was successfully processed",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if processing failed",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of processing attempts",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "retry_count"],
                        name="webhook_status_retry_idx",
                    ),
                ],
            },
        ),
    ]
