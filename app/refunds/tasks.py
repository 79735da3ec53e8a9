"""
Celery tasks for refunds.

This module provides async tasks for:
- Processing Stripe webhook events
- Retrying failed (or never queued) webhook events
- Resetting webhook events stuck in processing
- Applying order updates that failed after a refund was recorded

Periodic schedules are installed into django-celery-beat by migration
0002_periodic_tasks.

Usage:
    from refunds.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from refunds.models import Refund, WebhookEvent
from refunds.models.webhook_event import MAX_WEBHOOK_RETRIES
from refunds.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30

# Events still PENDING after this long were never picked up by a worker
UNQUEUED_PENDING_THRESHOLD_MINUTES = 10

DEFAULT_RECONCILIATION_MAX_ATTEMPTS = 10

BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    This task:
    1. Loads the WebhookEvent by ID
    2. Skips it if already processed
    3. Marks it as processing
    4. Dispatches to the registered handler in one transaction
    5. Marks it processed or failed

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    from refunds.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {
            "status": "already_processed",
            "webhook_event_id": str(webhook_event_id),
        }

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()

        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error": error_msg,
            },
        )
        raise

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error_code": result.error_code,
            },
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
        }

    webhook_event.mark_processed()
    webhook_event.save()
    logger.info(
        "Webhook processed successfully",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
        },
    )
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "stripe_event_id": webhook_event.stripe_event_id,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Re-queue failed webhook events, and pending ones that were never queued.

    Scheduled via celery-beat every 5 minutes.
    """
    pending_cutoff = timezone.now() - timedelta(minutes=UNQUEUED_PENDING_THRESHOLD_MINUTES)

    failed = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    )
    unqueued = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PENDING,
        created_at__lt=pending_cutoff,
    )
    webhooks = (failed | unqueued).order_by("created_at")[:BATCH_SIZE]

    queued_count = 0
    for webhook in webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )
            continue

        queued_count += 1
        logger.info(
            "Queued webhook for retry",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "retry_count": webhook.retry_count,
            },
        )

    if queued_count:
        logger.info(
            f"Queued {queued_count} webhooks for retry",
            extra={"queued_count": queued_count},
        )

    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Reset webhooks stuck in PROCESSING (worker crashed) to FAILED.

    retry_failed_webhooks then picks them up.
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    return {"reset_count": reset_count}


# =============================================================================
# Order Bookkeeping Sweep
# =============================================================================


@shared_task
def reconcile_pending_refund_updates() -> dict:
    """
    Apply order updates left pending after a refund was recorded.

    Each refund is retried until REFUND_RECONCILIATION_MAX_ATTEMPTS; after
    that it is reported at ERROR on every run until an operator fixes it.

    Scheduled via celery-beat every 5 minutes.
    """
    from refunds.services import RefundService

    max_attempts = getattr(
        settings,
        "REFUND_RECONCILIATION_MAX_ATTEMPTS",
        DEFAULT_RECONCILIATION_MAX_ATTEMPTS,
    )

    pending = Refund.objects.filter(order_update_pending=True)
    refund_ids = list(
        pending.filter(order_update_attempts__lt=max_attempts)
        .order_by("created_at")
        .values_list("id", flat=True)[:BATCH_SIZE]
    )

    applied_count = 0
    failed_count = 0
    for refund_id in refund_ids:
        result = RefundService.apply_order_update(refund_id)
        if not result.success:
            failed_count += 1
        elif result.data:
            applied_count += 1

    for refund in pending.filter(order_update_attempts__gte=max_attempts):
        logger.error(
            "Order update for refund abandoned - manual reconciliation needed",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(refund.order_id),
                "stripe_refund_id": refund.stripe_refund_id,
                "attempts": refund.order_update_attempts,
                "last_error": refund.last_order_update_error,
            },
        )

    if applied_count or failed_count:
        logger.info(
            "Reconciled pending refund order updates",
            extra={"applied_count": applied_count, "failed_count": failed_count},
        )

    return {"applied_count": applied_count, "failed_count": failed_count}
