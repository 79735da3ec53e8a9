"""
Orders app configuration.

Orders, their line items and payment transactions are created at checkout
(outside this service). Refund processing reads them and is the only
writer of the refund aggregate fields on Order and of the refunded status
on Transaction.
"""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    """Configuration for the orders application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
