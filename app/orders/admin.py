"""
Django admin configuration for orders.

Refund aggregate fields are read-only here: they are maintained by the
refund processing engine and the Stripe webhook reconciler.
"""

from django.contrib import admin

from orders.models import Order, OrderItem, Transaction


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


class TransactionInline(admin.TabularInline):
    model = Transaction
    extra = 0
    readonly_fields = ("status", "stripe_payment_intent_id", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin for orders with their items and payments inline."""

    list_display = (
        "id",
        "customer_email",
        "amount_cents",
        "currency",
        "status",
        "total_refunded_cents",
        "created_at",
    )
    list_filter = ("status", "currency")
    search_fields = ("id", "customer_email")
    readonly_fields = ("total_refunded_cents", "version", "created_at", "updated_at")
    inlines = [OrderItemInline, TransactionInline]
