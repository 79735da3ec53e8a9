"""
Tests for Stripe refund webhook handlers.

Tests cover:
- Handler dispatch and registration
- Refund status reconciliation (succeeded, failed, pending again)
- Backfilling Stripe identifiers
- Order bookkeeping triggered by completion
- charge.refunded with embedded refunds, and without them (current API versions)
- Replay safety
"""

import pytest

from core.services import ServiceResult
from orders.models import Order
from orders.states import OrderStatus
from refunds.adapters import RefundResult
from refunds.exceptions import StripeAPIUnavailableError
from refunds.models import Refund
from refunds.state_machines import RefundStatus
from refunds.tests.factories import RefundFactory, WebhookEventFactory, make_stripe_refund
from refunds.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    dispatch_webhook,
    handle_charge_refunded,
    reconcile_refund,
    register_handler,
)


# =============================================================================
# Dispatch
# =============================================================================


class TestDispatchWebhook:
    """Tests for the handler registry."""

    def test_refund_events_are_registered(self):
        assert {"refund.created", "refund.updated", "charge.refunded"} <= set(WEBHOOK_HANDLERS)

    @pytest.mark.django_db
    def test_unregistered_event_is_acknowledged(self):
        event = WebhookEventFactory(event_type="customer.created")

        result = dispatch_webhook(event)

        assert result.success
        assert result.data is None

    @pytest.mark.django_db
    def test_register_handler(self, mocker):
        mocker.patch.dict(WEBHOOK_HANDLERS)
        calls = []

        @register_handler("refund.failed")
        def handle_refund_failed(webhook_event):
            calls.append(webhook_event)
            return ServiceResult.success("handled")

        event = WebhookEventFactory(event_type="refund.failed")
        result = dispatch_webhook(event)

        assert result.data == "handled"
        assert calls == [event]


# =============================================================================
# Refund Reconciliation
# =============================================================================


@pytest.mark.django_db
class TestReconcileRefund:
    """Tests for reconcile_refund via refund.updated events."""

    def test_succeeded_completes_refund(self, processing_refund):
        event = WebhookEventFactory.for_refund(processing_refund.stripe_refund_id)

        result = dispatch_webhook(event)

        assert result.success
        refund = Refund.objects.get(pk=processing_refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.completed_at is not None
        # Already applied: the total is not added again
        assert Order.objects.get(pk=processing_refund.order_id).total_refunded_cents == 10000

    def test_completion_applies_pending_order_update(self, unapplied_refund):
        event = WebhookEventFactory.for_refund(unapplied_refund.stripe_refund_id)

        dispatch_webhook(event)

        refund = Refund.objects.get(pk=unapplied_refund.pk)
        order = Order.objects.get(pk=unapplied_refund.order_id)
        assert refund.order_update_pending is False
        assert order.total_refunded_cents == 4000
        assert order.status == OrderStatus.PARTIALLY_REFUNDED

    def test_completion_rederives_drifted_order_status(self, processing_refund):
        Order.objects.filter(pk=processing_refund.order_id).update(
            status=OrderStatus.COMPLETED
        )
        event = WebhookEventFactory.for_refund(processing_refund.stripe_refund_id)

        dispatch_webhook(event)

        order = Order.objects.get(pk=processing_refund.order_id)
        assert order.status == OrderStatus.REFUNDED
        assert order.total_refunded_cents == 10000

    def test_failed_refund(self, processing_refund):
        """A failure is recorded but the refunded total is left alone."""
        event = WebhookEventFactory.for_refund(
            processing_refund.stripe_refund_id,
            status="failed",
            failure_reason="expired_or_canceled_card",
        )

        dispatch_webhook(event)

        refund = Refund.objects.get(pk=processing_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "expired_or_canceled_card"
        assert refund.failed_at is not None
        assert Order.objects.get(pk=processing_refund.order_id).total_refunded_cents == 10000

    def test_canceled_maps_to_failed(self, processing_refund):
        event = WebhookEventFactory.for_refund(
            processing_refund.stripe_refund_id, status="canceled"
        )

        dispatch_webhook(event)

        assert Refund.objects.get(pk=processing_refund.pk).status == RefundStatus.FAILED

    def test_pending_again_reopens(self):
        refund = RefundFactory(status=RefundStatus.COMPLETED)
        event = WebhookEventFactory.for_refund(refund.stripe_refund_id, status="requires_action")

        dispatch_webhook(event)

        assert Refund.objects.get(pk=refund.pk).status == RefundStatus.PROCESSING

    def test_backfills_stripe_ids(self):
        refund = RefundFactory(stripe_charge_id="", stripe_payment_intent_id="")
        event = WebhookEventFactory.for_refund(
            refund.stripe_refund_id,
            charge="ch_backfilled",
            payment_intent="pi_backfilled",
        )

        dispatch_webhook(event)

        refund = Refund.objects.get(pk=refund.pk)
        assert refund.stripe_charge_id == "ch_backfilled"
        assert refund.stripe_payment_intent_id == "pi_backfilled"

    def test_existing_ids_are_kept(self):
        refund = RefundFactory(stripe_charge_id="ch_original")
        event = WebhookEventFactory.for_refund(refund.stripe_refund_id, charge="ch_other")

        dispatch_webhook(event)

        assert Refund.objects.get(pk=refund.pk).stripe_charge_id == "ch_original"

    def test_unknown_refund_is_acknowledged(self):
        event = WebhookEventFactory.for_refund("re_from_dashboard")

        result = dispatch_webhook(event)

        assert result.success
        assert result.data is None
        assert not Refund.objects.exists()

    def test_replay_is_idempotent(self, unapplied_refund):
        event = WebhookEventFactory.for_refund(unapplied_refund.stripe_refund_id)

        dispatch_webhook(event)
        dispatch_webhook(event)

        refund = Refund.objects.get(pk=unapplied_refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert Order.objects.get(pk=refund.order_id).total_refunded_cents == 4000

    def test_same_status_does_not_save(self, processing_refund):
        event = WebhookEventFactory.for_refund(
            processing_refund.stripe_refund_id, status="pending"
        )

        dispatch_webhook(event)

        assert Refund.objects.get(pk=processing_refund.pk).version == processing_refund.version

    def test_missing_refund_object(self):
        event = WebhookEventFactory(payload={"id": "evt_1", "data": {}})

        result = dispatch_webhook(event)

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_refund_object_without_id(self):
        result = reconcile_refund({"object": "refund", "status": "succeeded"})

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"


# =============================================================================
# charge.refunded
# =============================================================================


@pytest.mark.django_db
class TestChargeRefunded:
    """Tests for handle_charge_refunded."""

    def test_reconciles_each_embedded_refund(self):
        first = RefundFactory(stripe_charge_id="")
        second = RefundFactory(stripe_charge_id="")
        event = WebhookEventFactory(
            event_type="charge.refunded",
            payload={
                "id": "evt_charge_refunded",
                "type": "charge.refunded",
                "data": {
                    "object": {
                        "id": "ch_parent",
                        "object": "charge",
                        "payment_intent": "pi_parent",
                        "refunds": {
                            "data": [
                                {"id": first.stripe_refund_id, "status": "succeeded"},
                                {
                                    "id": second.stripe_refund_id,
                                    "status": "failed",
                                    "charge": "ch_own",
                                },
                            ]
                        },
                    }
                },
            },
        )

        result = handle_charge_refunded(event)

        assert result.success
        first = Refund.objects.get(pk=first.pk)
        second = Refund.objects.get(pk=second.pk)
        assert first.status == RefundStatus.COMPLETED
        assert first.stripe_charge_id == "ch_parent"
        assert second.status == RefundStatus.FAILED
        assert second.stripe_charge_id == "ch_own"

    def test_embedded_refunds_do_not_call_stripe(self, mock_webhook_adapter):
        refund = RefundFactory()
        event = WebhookEventFactory(
            event_type="charge.refunded",
            payload={
                "id": "evt_embedded",
                "data": {
                    "object": {
                        "id": "ch_embedded",
                        "refunds": {"data": [{"id": refund.stripe_refund_id, "status": "succeeded"}]},
                    }
                },
            },
        )

        assert handle_charge_refunded(event).success
        mock_webhook_adapter.retrieve_refund.assert_not_called()


def charge_refunded_event(charge_id="ch_current", payment_intent_id=None):
    """charge.refunded as rendered by current API versions (no refund list)."""
    charge = {
        "id": charge_id,
        "object": "charge",
        "refunded": True,
        "amount_refunded": 10000,
    }
    if payment_intent_id:
        charge["payment_intent"] = payment_intent_id
    return WebhookEventFactory(
        event_type="charge.refunded",
        payload={"id": "evt_current_charge", "data": {"object": charge}},
    )


@pytest.mark.django_db
class TestChargeRefundedWithoutEmbeddedRefunds:
    """
    charge.refunded payloads without a refunds list.

    Local refunds are found by charge or payment intent and their current
    state is fetched from Stripe.
    """

    def test_completes_refund_found_by_charge(self, mock_webhook_adapter):
        refund = RefundFactory(stripe_charge_id="ch_current", status=RefundStatus.PROCESSING)
        mock_webhook_adapter.retrieve_refund.return_value = make_stripe_refund(
            id=refund.stripe_refund_id,
            status="succeeded",
            charge_id="ch_current",
            payment_intent_id=refund.stripe_payment_intent_id,
        )

        result = handle_charge_refunded(charge_refunded_event())

        assert result.success
        mock_webhook_adapter.retrieve_refund.assert_called_once_with(refund.stripe_refund_id)
        assert Refund.objects.get(pk=refund.pk).status == RefundStatus.COMPLETED

    def test_applies_pending_order_update(self, mock_webhook_adapter, unapplied_refund):
        Refund.objects.filter(pk=unapplied_refund.pk).update(stripe_charge_id="ch_current")
        mock_webhook_adapter.retrieve_refund.return_value = make_stripe_refund(
            id=unapplied_refund.stripe_refund_id, amount_cents=4000, status="succeeded"
        )

        assert handle_charge_refunded(charge_refunded_event()).success

        order = Order.objects.get(pk=unapplied_refund.order_id)
        assert order.total_refunded_cents == 4000
        assert order.status == OrderStatus.PARTIALLY_REFUNDED
        assert Refund.objects.get(pk=unapplied_refund.pk).order_update_pending is False

    def test_matches_by_payment_intent_and_backfills_charge(self, mock_webhook_adapter):
        refund = RefundFactory(stripe_charge_id="")
        mock_webhook_adapter.retrieve_refund.return_value = RefundResult(
            id=refund.stripe_refund_id,
            amount_cents=refund.amount_cents,
            currency="gbp",
            status="failed",
            payment_intent_id=refund.stripe_payment_intent_id,
            failure_reason="expired_or_canceled_card",
        )

        result = handle_charge_refunded(
            charge_refunded_event(
                charge_id="ch_backfill", payment_intent_id=refund.stripe_payment_intent_id
            )
        )

        assert result.success
        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.stripe_charge_id == "ch_backfill"
        assert refund.failure_reason == "expired_or_canceled_card"

    def test_stripe_error_fails_for_retry(self, mock_webhook_adapter):
        refund = RefundFactory(stripe_charge_id="ch_current", status=RefundStatus.PROCESSING)
        mock_webhook_adapter.retrieve_refund.side_effect = StripeAPIUnavailableError(
            "Stripe is down"
        )

        result = handle_charge_refunded(charge_refunded_event())

        assert not result.success
        assert result.error_code == "STRIPE_UNAVAILABLE"
        assert Refund.objects.get(pk=refund.pk).status == RefundStatus.PROCESSING

    def test_no_local_refunds_is_acknowledged(self, mock_webhook_adapter):
        RefundFactory(stripe_charge_id="ch_other")

        assert handle_charge_refunded(charge_refunded_event()).success
        mock_webhook_adapter.retrieve_refund.assert_not_called()

    def test_missing_charge_object(self):
        event = WebhookEventFactory(
            event_type="charge.refunded",
            payload={"id": "evt_empty", "data": {}},
        )

        result = handle_charge_refunded(event)

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"
