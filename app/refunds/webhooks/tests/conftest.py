"""
Pytest fixtures for webhook tests.

Provides stored WebhookEvent records in each processing state, refunds
that Stripe events can be reconciled against, and a mock adapter for the
signature check in the webhook view.
"""

from unittest.mock import MagicMock

import pytest

from orders.states import OrderStatus
from orders.tests.factories import OrderFactory, TransactionFactory
from refunds.adapters import StripeAdapter
from refunds.services import RefundService
from refunds.state_machines import RefundStatus, WebhookEventStatus
from refunds.tests.factories import RefundFactory, WebhookEventFactory


# =============================================================================
# Refund Fixtures
# =============================================================================


@pytest.fixture
def refunded_order(db):
    """Order whose 100.00 refund has already been applied."""
    order = OrderFactory(
        amount_cents=10000,
        total_refunded_cents=10000,
        status=OrderStatus.REFUNDED,
    )
    TransactionFactory(order=order, stripe_payment_intent_id="pi_test_webhook_123")
    return order


@pytest.fixture
def processing_refund(refunded_order):
    """Refund Stripe reported as pending; order bookkeeping already applied."""
    return RefundFactory(
        order=refunded_order,
        transaction=refunded_order.transactions.get(),
        stripe_refund_id="re_test_webhook_123",
        status=RefundStatus.PROCESSING,
    )


@pytest.fixture
def unapplied_refund(db):
    """Refund recorded while its order update is still waiting for the sweep."""
    order = OrderFactory(amount_cents=10000)
    return RefundFactory(
        order=order,
        amount_cents=4000,
        stripe_refund_id="re_test_unapplied_123",
        status=RefundStatus.PROCESSING,
        order_update_pending=True,
    )


# =============================================================================
# WebhookEvent Fixtures
# =============================================================================


@pytest.fixture
def pending_webhook_event(db):
    """Stored refund.updated event waiting for a worker."""
    return WebhookEventFactory.for_refund("re_test_webhook_123", status="succeeded")


@pytest.fixture
def processed_webhook_event(db):
    event = WebhookEventFactory.for_refund("re_test_webhook_123")
    event.mark_processed()
    event.save()
    return event


@pytest.fixture
def failed_webhook_event(db):
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        retry_count=1,
        error_message="Previous processing failed",
    )


# =============================================================================
# Stripe Fixtures
# =============================================================================


@pytest.fixture
def mock_webhook_adapter():
    """
    Mock StripeAdapter for the webhook view's signature check.

    Set verify_webhook_signature.return_value to the event dict the
    "verified" payload should produce.
    """
    adapter = MagicMock(spec=StripeAdapter)
    RefundService.set_stripe_adapter(adapter)
    yield adapter
    RefundService.set_stripe_adapter(None)
