"""
Django admin configuration for refunds.

Refunds and webhook events are an audit trail: Stripe fields, statuses and
payloads are read-only and rows cannot be deleted. Request review happens
through the API so approvals are recorded with the acting admin.
"""

from django.contrib import admin

from refunds.models import Refund, RefundRequest, WebhookEvent


def _format_amount(amount_cents: int | None, currency: str) -> str:
    if amount_cents is None:
        return "-"
    return f"{amount_cents / 100:.2f} {currency.upper()}"


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    """Refund requests with their review trail."""

    list_display = [
        "id",
        "order",
        "customer_email",
        "type",
        "amount_display",
        "status",
        "created_at",
    ]
    list_filter = ["status", "type", "created_at"]
    search_fields = ["id", "order__id", "customer_email"]
    readonly_fields = [
        "id",
        "status",
        "approved_by",
        "approved_at",
        "rejected_by",
        "rejected_at",
        "cancelled_at",
        "refund",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["order", "customer"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "order", "customer", "customer_email", "status")}),
        ("Request", {"fields": ("type", "amount_cents", "currency", "reason", "items")}),
        (
            "Review",
            {
                "fields": (
                    "approved_by",
                    "approved_at",
                    "rejected_by",
                    "rejected_at",
                    "rejection_reason",
                    "cancelled_at",
                    "refund",
                ),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: RefundRequest) -> str:
        return _format_amount(obj.amount_cents, obj.currency)


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Issued refunds.

    Rows with order_update_pending set are waiting for the reconciliation
    sweep to apply the order total.
    """

    list_display = [
        "id",
        "order",
        "amount_display",
        "type",
        "status",
        "stripe_refund_id",
        "order_update_pending",
        "created_at",
    ]
    list_filter = ["status", "type", "order_update_pending", "currency", "created_at"]
    search_fields = ["id", "stripe_refund_id", "stripe_payment_intent_id", "order__id"]
    readonly_fields = [
        "id",
        "order",
        "transaction",
        "amount_cents",
        "currency",
        "type",
        "status",
        "stripe_refund_id",
        "stripe_charge_id",
        "stripe_payment_intent_id",
        "processed_by",
        "processed_at",
        "completed_at",
        "failed_at",
        "failure_reason",
        "order_update_pending",
        "order_update_attempts",
        "last_order_update_error",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "order", "transaction", "status")}),
        ("Amount", {"fields": ("amount_cents", "currency", "type", "reason")}),
        (
            "Stripe",
            {"fields": ("stripe_refund_id", "stripe_charge_id", "stripe_payment_intent_id")},
        ),
        (
            "Status Timestamps",
            {"fields": ("processed_by", "processed_at", "completed_at", "failed_at")},
        ),
        (
            "Failure Info",
            {"fields": ("failure_reason",), "classes": ("collapse",)},
        ),
        (
            "Order Update",
            {
                "fields": (
                    "order_update_pending",
                    "order_update_attempts",
                    "last_order_update_error",
                ),
                "classes": ("collapse",),
            },
        ),
        ("Timestamps", {"fields": ("version", "created_at", "updated_at")}),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Refund) -> str:
        return _format_amount(obj.amount_cents, obj.currency)

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """Received Stripe webhook events. Immutable once received."""

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False
