"""
Webhook event handlers for Stripe refund events.

Stripe reports refund progress through refund.created, refund.updated and
charge.refunded. Each handler reconciles the local Refund with what Stripe
says; replaying the same event converges to the same state.

Refunds unknown locally (issued from the Stripe dashboard, or not yet
recorded) are acknowledged with a warning and left for operators.

Usage:
    from refunds.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("refund.failed")
    def handle_refund_failed(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from django.db.models import Q

from core.services import ServiceResult
from refunds.exceptions import GatewayError
from refunds.models import Refund, WebhookEvent
from refunds.services import RefundService
from refunds.state_machines import RefundStatus, map_stripe_refund_status

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("refund.updated")
        def handle_refund_updated(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unregistered event types are acknowledged as no-ops.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


# =============================================================================
# Reconciliation
# =============================================================================


def reconcile_refund(refund_data: dict[str, Any], stripe_event_id: str = "") -> ServiceResult:
    """
    Bring the local Refund in line with a Stripe refund object.

    Steps:
        1. Find the Refund by Stripe refund ID (unknown -> warn and ack)
        2. Backfill missing charge/payment intent IDs
        3. Transition to the mapped status if it changed
        4. If completed, apply a pending order update, or re-derive the
           order status from the stored refunded total

    Returns:
        ServiceResult with the Refund (None when unknown locally)
    """
    stripe_refund_id = refund_data.get("id")
    if not stripe_refund_id:
        return ServiceResult.failure(
            "Refund object has no id",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    log_context = {
        "stripe_event_id": stripe_event_id,
        "stripe_refund_id": stripe_refund_id,
        "stripe_status": refund_data.get("status"),
    }

    refund = Refund.objects.filter(stripe_refund_id=stripe_refund_id).first()
    if refund is None:
        logger.warning("No local refund for Stripe refund, ignoring", extra=log_context)
        return ServiceResult.success(None)

    target_status = map_stripe_refund_status(refund_data.get("status"))

    with RefundService.atomic():
        refund = Refund.objects.select_for_update().get(pk=refund.pk)
        update_fields = []

        charge_id = refund_data.get("charge")
        if isinstance(charge_id, str) and charge_id and not refund.stripe_charge_id:
            refund.stripe_charge_id = charge_id
            update_fields.append("stripe_charge_id")

        payment_intent_id = refund_data.get("payment_intent")
        if (
            isinstance(payment_intent_id, str)
            and payment_intent_id
            and not refund.stripe_payment_intent_id
        ):
            refund.stripe_payment_intent_id = payment_intent_id
            update_fields.append("stripe_payment_intent_id")

        previous_status = refund.status
        if refund.transition_to(target_status, reason=refund_data.get("failure_reason") or ""):
            update_fields.extend(["status", "completed_at", "failed_at", "failure_reason"])

        if update_fields:
            refund.save(update_fields=[*update_fields, "updated_at"])

    if refund.status != previous_status:
        logger.info(
            f"Refund {previous_status} -> {refund.status}",
            extra={**log_context, "refund_id": str(refund.pk)},
        )

    if refund.status == RefundStatus.COMPLETED:
        if refund.order_update_pending:
            result = RefundService.apply_order_update(refund.pk)
            if not result.success:
                return result
        else:
            RefundService.sync_order_status(refund.order_id)

    return ServiceResult.success(refund)


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler("refund.created")
@register_handler("refund.updated")
def handle_refund_event(webhook_event: WebhookEvent) -> ServiceResult:
    """Reconcile the refund object carried by a refund.* event."""
    refund_data = webhook_event.get_data_object()
    if not refund_data:
        logger.error(
            f"{webhook_event.event_type}: Could not extract refund object",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.failure(
            "Could not extract refund from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    return reconcile_refund(refund_data, webhook_event.stripe_event_id)


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Reconcile the refunds of a charge.refunded event.

    Charges rendered by API versions before 2022-11-15 embed their refunds;
    the charge's own ID backfills refunds whose objects omit it. Newer
    charges carry no refund list, so the local refunds for the charge are
    looked up and their current state fetched from Stripe.
    """
    charge = webhook_event.get_data_object()
    if not charge.get("id") and not charge.get("payment_intent"):
        logger.error(
            "charge.refunded: Could not extract charge object",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.failure(
            "Could not extract charge from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    refunds_data = (charge.get("refunds") or {}).get("data")
    if refunds_data is None:
        return _reconcile_charge_from_stripe(charge, webhook_event.stripe_event_id)

    logger.info(
        "Processing charge.refunded",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "charge_id": charge.get("id"),
            "refund_count": len(refunds_data),
        },
    )

    for refund_data in refunds_data:
        refund_data = {
            **refund_data,
            "charge": refund_data.get("charge") or charge.get("id"),
            "payment_intent": refund_data.get("payment_intent") or charge.get("payment_intent"),
        }
        result = reconcile_refund(refund_data, webhook_event.stripe_event_id)
        if not result.success:
            return result

    return ServiceResult.success(None)


def _reconcile_charge_from_stripe(charge: dict[str, Any], stripe_event_id: str) -> ServiceResult:
    """Fetch each local refund of the charge from Stripe and reconcile it."""
    charge_id = charge.get("id") or ""
    payment_intent_id = charge.get("payment_intent") or ""

    charge_filter = Q(stripe_charge_id=charge_id) if charge_id else Q()
    if isinstance(payment_intent_id, str) and payment_intent_id:
        intent_filter = Q(stripe_payment_intent_id=payment_intent_id)
        charge_filter = charge_filter | intent_filter if charge_id else intent_filter

    refunds = list(Refund.objects.filter(charge_filter).order_by("created_at"))

    logger.info(
        "Processing charge.refunded without embedded refunds",
        extra={
            "stripe_event_id": stripe_event_id,
            "charge_id": charge_id,
            "refund_count": len(refunds),
        },
    )

    adapter = RefundService.get_stripe_adapter()
    for refund in refunds:
        try:
            stripe_refund = adapter.retrieve_refund(refund.stripe_refund_id)
        except GatewayError as e:
            logger.warning(
                f"Could not fetch refund from Stripe: {e.message}",
                extra={
                    "stripe_event_id": stripe_event_id,
                    "stripe_refund_id": refund.stripe_refund_id,
                },
            )
            return ServiceResult.from_exception(e)

        result = reconcile_refund(
            {
                "id": stripe_refund.id,
                "status": stripe_refund.status,
                "charge": stripe_refund.charge_id or charge_id,
                "payment_intent": stripe_refund.payment_intent_id or payment_intent_id,
                "failure_reason": stripe_refund.failure_reason,
            },
            stripe_event_id,
        )
        if not result.success:
            return result

    return ServiceResult.success(None)
