"""
Pytest fixtures for refund tests.

Stripe is replaced by a MagicMock adapter injected into RefundService;
the per-order lock runs against the mock_redis fixture from app/conftest.py.

Usage:
    def test_full_refund(refundable_order, stripe_adapter, mock_redis):
        stripe_adapter.refund_full.return_value = make_stripe_refund(amount_cents=10000)
        result = RefundService.process_refund(refundable_order.id, refund_type="full")
"""

from unittest.mock import MagicMock

import pytest

from orders.tests.factories import OrderFactory, TransactionFactory
from refunds.adapters import StripeAdapter
from refunds.services import RefundService
from refunds.state_machines import RefundRequestStatus, RefundType
from refunds.tests.factories import RefundRequestFactory, make_stripe_refund


# =============================================================================
# Stripe Adapter Fixtures
# =============================================================================


@pytest.fixture
def stripe_adapter():
    """
    Mock StripeAdapter injected into RefundService for the test.

    Both refund calls succeed with a 10000 refund by default.
    """
    adapter = MagicMock(spec=StripeAdapter)
    adapter.refund_full.return_value = make_stripe_refund()
    adapter.refund_partial.return_value = make_stripe_refund()

    RefundService.set_stripe_adapter(adapter)
    yield adapter
    RefundService.set_stripe_adapter(None)


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def refundable_order(db, customer):
    """Completed 100.00 order with one succeeded Stripe payment."""
    order = OrderFactory(customer=customer, amount_cents=10000)
    TransactionFactory(order=order)
    return order


@pytest.fixture
def guest_order(db):
    """Completed guest checkout for a@example.com."""
    order = OrderFactory(customer=None, customer_email="a@example.com", amount_cents=10000)
    TransactionFactory(order=order)
    return order


# =============================================================================
# Refund Request Fixtures
# =============================================================================


@pytest.fixture
def pending_request(refundable_order):
    return RefundRequestFactory(order=refundable_order)


@pytest.fixture
def approved_request(refundable_order, admin_user):
    return RefundRequestFactory(
        order=refundable_order,
        status=RefundRequestStatus.APPROVED,
        approved_by=admin_user,
    )


@pytest.fixture
def approved_partial_request(refundable_order, admin_user):
    return RefundRequestFactory(
        order=refundable_order,
        type=RefundType.PARTIAL,
        amount_cents=2500,
        status=RefundRequestStatus.APPROVED,
        approved_by=admin_user,
    )
