"""
Refunds app configuration.

This app provides:
- Customer and guest refund requests with admin review
- Refund processing through Stripe under a per-order lock
- Stripe webhook reconciliation of refund status
- Background sweeps for webhook retries and deferred order updates
"""

from django.apps import AppConfig


class RefundsConfig(AppConfig):
    """Configuration for the refunds application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "refunds"
    verbose_name = "Refunds"

    def ready(self):
        # Populates WEBHOOK_HANDLERS
        import refunds.webhooks.handlers  # noqa: F401
