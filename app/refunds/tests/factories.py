"""
Factory Boy factories for refund models.

Usage:
    from refunds.tests.factories import RefundFactory, RefundRequestFactory

    refund_request = RefundRequestFactory(order=order)
    refund = RefundFactory(order=order, amount_cents=2500)
    event = WebhookEventFactory.for_refund("re_123", status="succeeded")
"""

import uuid

import factory

from orders.tests.factories import OrderFactory, TransactionFactory
from refunds.adapters import RefundResult
from refunds.models import Refund, RefundRequest, WebhookEvent
from refunds.state_machines import (
    RefundRequestStatus,
    RefundStatus,
    RefundType,
    WebhookEventStatus,
)


class RefundRequestFactory(factory.django.DjangoModelFactory):
    """
    Factory for a pending full refund request filed by the order's customer.

    Example:
        RefundRequestFactory(order=order, type=RefundType.PARTIAL, amount_cents=2500)
        RefundRequestFactory(status=RefundRequestStatus.APPROVED)
    """

    class Meta:
        model = RefundRequest

    order = factory.SubFactory(OrderFactory)
    customer = factory.SelfAttribute("order.customer")
    customer_email = factory.LazyAttribute(lambda o: o.order.customer_email)
    type = RefundType.FULL
    amount_cents = factory.LazyAttribute(lambda o: o.order.amount_cents)
    currency = factory.LazyAttribute(lambda o: o.order.currency)
    reason = "Item arrived damaged"
    status = RefundRequestStatus.PENDING


class RefundFactory(factory.django.DjangoModelFactory):
    """
    Factory for a recorded refund whose order update was already applied.

    Pass order_update_pending=True for a refund still waiting on the sweep.
    """

    class Meta:
        model = Refund

    order = factory.SubFactory(OrderFactory)
    transaction = factory.SubFactory(
        TransactionFactory, order=factory.SelfAttribute("..order")
    )
    amount_cents = factory.LazyAttribute(lambda o: o.order.amount_cents)
    currency = factory.LazyAttribute(lambda o: o.order.currency)
    type = RefundType.FULL
    status = RefundStatus.PROCESSING
    stripe_refund_id = factory.Sequence(lambda n: f"re_test_{n:06d}")
    stripe_payment_intent_id = factory.LazyAttribute(
        lambda o: o.transaction.stripe_payment_intent_id
    )
    reason = "Item arrived damaged"
    order_update_pending = False


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for a stored, pending Stripe webhook event.

    Example:
        event = WebhookEventFactory.for_refund("re_123", status="succeeded")
    """

    class Meta:
        model = WebhookEvent

    stripe_event_id = factory.Sequence(lambda n: f"evt_test_{n}_{uuid.uuid4().hex[:8]}")
    event_type = "refund.updated"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {"object": {"id": "re_unknown", "object": "refund", "status": "pending"}},
        }
    )
    status = WebhookEventStatus.PENDING

    @classmethod
    def for_refund(
        cls,
        stripe_refund_id: str,
        status: str = "succeeded",
        event_type: str = "refund.updated",
        **refund_fields,
    ) -> WebhookEvent:
        """Event whose data.object is a refund with the given id and status."""
        stripe_event_id = f"evt_{uuid.uuid4().hex[:16]}"
        refund_object = {
            "id": stripe_refund_id,
            "object": "refund",
            "status": status,
            **refund_fields,
        }
        return cls(
            stripe_event_id=stripe_event_id,
            event_type=event_type,
            payload={
                "id": stripe_event_id,
                "type": event_type,
                "data": {"object": refund_object},
            },
        )


def make_stripe_refund(
    id: str = "re_test_abc123",
    amount_cents: int = 10000,
    status: str = "succeeded",
    payment_intent_id: str = "pi_test_000001",
    charge_id: str = "ch_test_000001",
) -> RefundResult:
    """RefundResult as returned by StripeAdapter."""
    return RefundResult(
        id=id,
        amount_cents=amount_cents,
        currency="gbp",
        status=status,
        payment_intent_id=payment_intent_id,
        charge_id=charge_id,
    )
