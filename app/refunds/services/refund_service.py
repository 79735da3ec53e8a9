"""
Refund service for returning money to customers through Stripe.

RefundService.process_refund is the only code path that issues refunds. It
runs under a per-order distributed lock and follows a strict order:

    1. Load the order with its transactions
    2. Validate the order can be refunded
    3. Pick the primary (first succeeded) transaction
    4. Validate the transaction can be refunded
    5. Resolve type and amount (from an approved request or the caller)
    6. Duplicate guard (one refund per order unless configured otherwise)
    7. Validate the amount against what is left to refund
    8. Call Stripe OUTSIDE any database transaction
    9. Record the Refund (outbox marker set) and
    10. link it to its request, atomically
    11. Add the amount to the order and re-derive its status, and
    12. mark the transaction refunded, atomically, clearing the marker

Once Stripe has accepted a refund it is never reported as failed because
of order bookkeeping: a failure in 11/12 leaves the outbox marker set and
the reconciliation sweep (refunds.tasks) applies it later.

Usage:
    from refunds.services import RefundService

    result = RefundService.process_refund(
        order_id=order.id,
        refund_request_id=refund_request.id,
        processed_by=request.user,
    )
    if result.success:
        print(result.data.refund.stripe_refund_id)
    else:
        print(result.error_code, result.error)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import F, Q, QuerySet, Sum
from django.utils import timezone

from core.services import BaseService, ServiceResult
from orders.models import Order, Transaction
from orders.states import OrderStatus, TransactionStatus
from refunds.adapters import IdempotencyKeyGenerator, RefundResult, StripeAdapter, StripeConfig
from refunds.exceptions import GatewayError, LockAcquisitionError, RefundValidationError
from refunds.locks import DistributedLock, order_refund_lock_key
from refunds.models import Refund, RefundRequest
from refunds.state_machines import RefundRequestStatus, RefundStatus, RefundType
from refunds.validation import (
    get_primary_transaction,
    get_refundable_amount,
    validate_order_can_be_refunded,
    validate_refund_amount,
    validate_transaction_can_be_refunded,
)

if TYPE_CHECKING:
    from customers.models import User
    from refunds.authorization import RequestActor


# =============================================================================
# Constants
# =============================================================================

# Distributed lock TTL for refund processing (seconds)
DEFAULT_LOCK_TTL = 120

# Lock acquisition timeout (seconds)
DEFAULT_LOCK_TIMEOUT = 10.0

MAX_ERROR_LENGTH = 1000


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundExecutionResult:
    """
    Result of a successful refund.

    Attributes:
        refund: The recorded Refund
        stripe_refund: What Stripe returned for the refund
        order_updated: False if the order bookkeeping was deferred to the
            reconciliation sweep
    """

    refund: Refund
    stripe_refund: RefundResult
    order_updated: bool = True


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for issuing refunds and keeping orders consistent with them.

    Safety Guarantees:
        - Per-order distributed lock serializes refund processing
        - Stripe is never called inside a database transaction
        - Deterministic idempotency keys make resubmission safe
        - Unique stripe_refund_id prevents recording a refund twice
        - Order row is locked (select_for_update) while its total changes
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: StripeAdapter | None = None

    @classmethod
    def get_stripe_adapter(cls) -> StripeAdapter:
        """Get the Stripe adapter (a fresh one built from settings by default)."""
        return cls._stripe_adapter or StripeAdapter(StripeConfig.from_settings())

    @classmethod
    def set_stripe_adapter(cls, adapter: StripeAdapter | None) -> None:
        """Set the Stripe adapter (for testing)."""
        cls._stripe_adapter = adapter

    # =========================================================================
    # Processing
    # =========================================================================

    @classmethod
    def process_refund(
        cls,
        order_id: uuid.UUID,
        refund_request_id: uuid.UUID | None = None,
        refund_type: str | None = None,
        amount_cents: int | None = None,
        reason: str | None = None,
        processed_by: User | None = None,
    ) -> ServiceResult[RefundExecutionResult]:
        """
        Issue a refund for an order and record it.

        Either refund_request_id (an approved request) or refund_type
        (plus amount_cents for partial refunds) must be given.

        Returns:
            ServiceResult containing RefundExecutionResult on success
        """
        logger = cls.get_logger()
        logger.info(
            "Starting refund processing",
            extra={
                "order_id": str(order_id),
                "refund_request_id": str(refund_request_id) if refund_request_id else None,
                "refund_type": refund_type,
                "amount_cents": amount_cents,
            },
        )

        lock = DistributedLock(
            order_refund_lock_key(order_id),
            ttl=getattr(settings, "REFUND_LOCK_TTL_SECONDS", DEFAULT_LOCK_TTL),
            timeout=getattr(settings, "REFUND_LOCK_TIMEOUT_SECONDS", DEFAULT_LOCK_TIMEOUT),
        )
        try:
            with lock:
                return cls._process_with_lock(
                    order_id=order_id,
                    refund_request_id=refund_request_id,
                    refund_type=refund_type,
                    amount_cents=amount_cents,
                    reason=reason,
                    processed_by=processed_by,
                )
        except LockAcquisitionError as e:
            logger.warning(
                "Failed to acquire lock for refund processing",
                extra={"order_id": str(order_id), "error": str(e)},
            )
            return ServiceResult.failure(
                "A refund is already being processed for this order",
                error_code=e.error_code,
                details=e.details,
            )

    @classmethod
    def _process_with_lock(
        cls,
        order_id: uuid.UUID,
        refund_request_id: uuid.UUID | None,
        refund_type: str | None,
        amount_cents: int | None,
        reason: str | None,
        processed_by: User | None,
    ) -> ServiceResult[RefundExecutionResult]:
        logger = cls.get_logger()

        # Step 1: Load order
        try:
            order = Order.objects.prefetch_related("transactions").get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            return ServiceResult.failure(
                f"Order {order_id} not found", error_code="ORDER_NOT_FOUND"
            )

        # Step 2: Order preconditions
        check = validate_order_can_be_refunded(order)
        if not check:
            return ServiceResult.failure(check.error, error_code=check.error_code)

        # Step 3: Primary transaction
        transaction = get_primary_transaction(order)
        if transaction is None:
            return ServiceResult.failure(
                "No refundable transaction found for this order",
                error_code="NO_REFUNDABLE_TRANSACTION",
            )

        # Step 4: Transaction preconditions
        check = validate_transaction_can_be_refunded(transaction)
        if not check:
            return ServiceResult.failure(check.error, error_code=check.error_code)

        # Step 5: Resolve type and amount
        refundable = get_refundable_amount(order.amount_cents, order.total_refunded_cents)
        refund_request = None

        if refund_request_id:
            try:
                refund_request = RefundRequest.objects.get(
                    pk=refund_request_id, order_id=order.pk
                )
            except (RefundRequest.DoesNotExist, DjangoValidationError, ValueError):
                return ServiceResult.failure(
                    f"Refund request {refund_request_id} not found",
                    error_code="REFUND_REQUEST_NOT_FOUND",
                )
            if refund_request.status != RefundRequestStatus.APPROVED:
                return ServiceResult.failure(
                    "Refund request must be approved before processing",
                    error_code="REQUEST_NOT_APPROVED",
                    details={"status": refund_request.status},
                )
            if refund_request.is_consumed:
                return ServiceResult.failure(
                    "Refund request has already been processed",
                    error_code="REQUEST_ALREADY_PROCESSED",
                    details={"refund_id": str(refund_request.refund_id)},
                )

            refund_type = refund_request.type
            if refund_type == RefundType.PARTIAL:
                amount_cents = refund_request.amount_cents
            else:
                amount_cents = refundable
            reason = reason or refund_request.reason
        else:
            if refund_type not in RefundType.values:
                return ServiceResult.failure(
                    "type and amount are required for direct refunds",
                    error_code="MISSING_FIELDS",
                )
            if refund_type == RefundType.FULL:
                amount_cents = refundable
            elif amount_cents is None:
                return ServiceResult.failure(
                    "type and amount are required for direct refunds",
                    error_code="MISSING_FIELDS",
                )

        # Step 6: Duplicate guard
        if not getattr(settings, "REFUNDS_ALLOW_MULTIPLE_PER_ORDER", False):
            existing = (
                Refund.objects.filter(order_id=order.pk)
                .exclude(stripe_refund_id="")
                .values_list("stripe_refund_id", flat=True)
                .first()
            )
            if existing:
                return ServiceResult.failure(
                    "A refund has already been processed for this order",
                    error_code="DUPLICATE_REFUND",
                    details={"stripe_refund_id": existing},
                )

        # Step 7: Amount
        check = validate_refund_amount(
            order.amount_cents, order.total_refunded_cents, amount_cents
        )
        if not check:
            return ServiceResult.failure(check.error, error_code=check.error_code)

        # Step 8: Stripe (outside any transaction)
        try:
            stripe_refund = cls._create_stripe_refund(
                order=order,
                transaction=transaction,
                refund_type=refund_type,
                amount_cents=amount_cents,
                reason=reason,
                refund_request=refund_request,
            )
        except RefundValidationError as e:
            return ServiceResult.from_exception(e)
        except GatewayError as e:
            logger.warning(
                f"Stripe refused refund: {type(e).__name__}",
                extra={
                    "order_id": str(order.pk),
                    "payment_intent_id": transaction.stripe_payment_intent_id,
                    "error": e.message,
                    "is_retryable": e.is_retryable,
                },
            )
            return ServiceResult.failure(
                f"Stripe refund error: {e.message}",
                error_code="GATEWAY_ERROR",
                details=e.details or None,
            )

        # Steps 9 & 10: Record refund and link request
        try:
            refund = cls._record_refund(
                order=order,
                transaction=transaction,
                refund_type=refund_type,
                amount_cents=amount_cents,
                reason=reason,
                refund_request=refund_request,
                stripe_refund=stripe_refund,
                processed_by=processed_by,
            )
        except Exception:
            # Stripe moved the money but we have no record of it
            logger.error(
                "Failed to record refund after Stripe success - reconciliation needed",
                extra={
                    "order_id": str(order.pk),
                    "refund_request_id": str(refund_request.pk) if refund_request else None,
                    "stripe_refund_id": stripe_refund.id,
                    "payment_intent_id": stripe_refund.payment_intent_id,
                    "amount_cents": amount_cents,
                },
                exc_info=True,
            )
            return ServiceResult.failure(
                "Refund was issued by Stripe but could not be recorded",
                error_code="REFUND_RECORD_FAILED",
                details={
                    "stripe_refund_id": stripe_refund.id,
                    "order_id": str(order.pk),
                },
            )

        # Steps 11 & 12: Order bookkeeping (deferred to the sweep on failure)
        update = cls.apply_order_update(refund.pk)
        order_updated = bool(update.success and update.data)

        logger.info(
            "Refund processed",
            extra={
                "refund_id": str(refund.pk),
                "order_id": str(order.pk),
                "stripe_refund_id": refund.stripe_refund_id,
                "amount_cents": refund.amount_cents,
                "status": refund.status,
                "order_updated": order_updated,
            },
        )

        refund = Refund.objects.select_related("order", "transaction").get(pk=refund.pk)
        return ServiceResult.success(
            RefundExecutionResult(
                refund=refund,
                stripe_refund=stripe_refund,
                order_updated=order_updated,
            )
        )

    @classmethod
    def _create_stripe_refund(
        cls,
        order: Order,
        transaction: Transaction,
        refund_type: str,
        amount_cents: int,
        reason: str | None,
        refund_request: RefundRequest | None,
    ) -> RefundResult:
        """
        Call Stripe with a deterministic idempotency key.

        Requests key on the request ID. Direct refunds key on the order, the
        number of refunds already recorded for it and the amount, so a
        resubmission after a lost response reuses the key while a later
        tranche gets a new one even before its predecessor is applied.
        """
        if refund_request is not None:
            entity_id = str(refund_request.pk)
        else:
            recorded_count = Refund.objects.filter(order=order).count()
            entity_id = f"{order.pk}:{recorded_count}:{amount_cents}"
        idempotency_key = IdempotencyKeyGenerator.generate("refund", entity_id)

        metadata = {"order_id": str(order.pk)}
        if refund_request is not None:
            metadata["refund_request_id"] = str(refund_request.pk)

        adapter = cls.get_stripe_adapter()
        start_time = time.time()

        if refund_type == RefundType.FULL:
            result = adapter.refund_full(
                transaction.stripe_payment_intent_id,
                reason=reason,
                idempotency_key=idempotency_key,
                metadata=metadata,
            )
        else:
            result = adapter.refund_partial(
                transaction.stripe_payment_intent_id,
                amount_cents,
                reason=reason,
                idempotency_key=idempotency_key,
                metadata=metadata,
            )

        cls.get_logger().info(
            "Stripe refund created",
            extra={
                "order_id": str(order.pk),
                "stripe_refund_id": result.id,
                "stripe_status": result.status,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return result

    @classmethod
    def _record_refund(
        cls,
        order: Order,
        transaction: Transaction,
        refund_type: str,
        amount_cents: int,
        reason: str | None,
        refund_request: RefundRequest | None,
        stripe_refund: RefundResult,
        processed_by: User | None,
    ) -> Refund:
        now = timezone.now()
        completed = stripe_refund.status == "succeeded"

        with cls.atomic():
            refund = Refund.objects.create(
                order=order,
                transaction=transaction,
                amount_cents=amount_cents,
                currency=order.currency,
                type=refund_type,
                status=RefundStatus.COMPLETED if completed else RefundStatus.PROCESSING,
                completed_at=now if completed else None,
                stripe_refund_id=stripe_refund.id,
                stripe_charge_id=stripe_refund.charge_id,
                stripe_payment_intent_id=(
                    stripe_refund.payment_intent_id or transaction.stripe_payment_intent_id
                ),
                reason=reason or "",
                processed_by=processed_by,
                processed_at=now,
                order_update_pending=True,
            )

            if refund_request is not None:
                locked = RefundRequest.objects.select_for_update().get(pk=refund_request.pk)
                if locked.refund_id is not None:
                    raise RefundValidationError(
                        "Refund request was processed concurrently",
                        error_code="REQUEST_ALREADY_PROCESSED",
                    )
                locked.refund = refund
                locked.save(update_fields=["refund", "updated_at"])

        return refund

    # =========================================================================
    # Order Bookkeeping (outbox)
    # =========================================================================

    @classmethod
    def apply_order_update(cls, refund_id: uuid.UUID) -> ServiceResult[bool]:
        """
        Apply a refund's amount to its order, once.

        Adds the amount to total_refunded_cents, re-derives the order status,
        marks the refunded transaction and clears the outbox marker, all in
        one database transaction. Safe to call repeatedly.

        Returns:
            success(True) if applied now, success(False) if nothing was
            pending, failure(ORDER_UPDATE_FAILED) if the update failed
        """
        logger = cls.get_logger()

        try:
            with cls.atomic():
                refund = Refund.objects.select_for_update().get(pk=refund_id)
                if not refund.order_update_pending:
                    return ServiceResult.success(False)

                order = Order.objects.select_for_update().get(pk=refund.order_id)
                order.apply_refund(refund.amount_cents)
                order.save()

                # A partially refunded transaction stays refundable only when
                # several refunds per order are allowed.
                if order.status == OrderStatus.REFUNDED or not getattr(
                    settings, "REFUNDS_ALLOW_MULTIPLE_PER_ORDER", False
                ):
                    Transaction.objects.filter(pk=refund.transaction_id).update(
                        status=TransactionStatus.REFUNDED,
                        updated_at=timezone.now(),
                    )

                refund.order_update_pending = False
                refund.last_order_update_error = ""
                refund.save(
                    update_fields=[
                        "order_update_pending",
                        "last_order_update_error",
                        "updated_at",
                    ]
                )
        except Exception as e:
            logger.error(
                "Failed to update order after refund - will retry",
                extra={"refund_id": str(refund_id), "error": str(e)},
                exc_info=True,
            )
            Refund.objects.filter(pk=refund_id).update(
                order_update_attempts=F("order_update_attempts") + 1,
                last_order_update_error=str(e)[:MAX_ERROR_LENGTH],
            )
            return ServiceResult.failure(
                f"Order update failed: {e}",
                error_code="ORDER_UPDATE_FAILED",
                details={"refund_id": str(refund_id)},
            )

        logger.info(
            "Order updated after refund",
            extra={
                "refund_id": str(refund_id),
                "order_id": str(order.pk),
                "total_refunded_cents": order.total_refunded_cents,
                "order_status": order.status,
            },
        )
        return ServiceResult.success(True)

    @classmethod
    def sync_order_status(cls, order_id: uuid.UUID) -> bool:
        """
        Re-derive an order's status from its stored refunded total.

        Never changes total_refunded_cents. Returns True if the status changed.
        """
        with cls.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            if not order.sync_refund_status():
                return False
            order.save()

        cls.get_logger().info(
            "Order status re-derived from refunded total",
            extra={"order_id": str(order_id), "order_status": order.status},
        )
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_refund(cls, refund_id: uuid.UUID, actor: RequestActor) -> ServiceResult[Refund]:
        try:
            refund = Refund.objects.select_related("order", "transaction").get(pk=refund_id)
        except (Refund.DoesNotExist, DjangoValidationError, ValueError):
            return ServiceResult.failure(
                f"Refund {refund_id} not found", error_code="REFUND_NOT_FOUND"
            )

        if not actor.can_access_order(refund.order):
            return ServiceResult.failure(
                "You do not have permission to view this refund",
                error_code="PERMISSION_DENIED",
            )
        return ServiceResult.success(refund)

    @classmethod
    def list_refunds(
        cls, actor: RequestActor, order_id: uuid.UUID | None = None
    ) -> QuerySet[Refund]:
        """
        Refunds visible to the actor, newest first.

        Admins see all refunds, customers refunds on their own orders,
        guests refunds on orders placed with their email.
        """
        queryset = Refund.objects.select_related("order", "transaction")

        if actor.is_admin:
            pass
        elif actor.user is not None:
            queryset = queryset.filter(
                Q(order__customer=actor.user)
                | Q(order__customer__isnull=True, order__customer_email__iexact=actor.user.email)
            )
        elif actor.normalized_email:
            queryset = queryset.filter(
                order__customer__isnull=True,
                order__customer_email__iexact=actor.normalized_email,
            )
        else:
            queryset = queryset.none()

        if order_id:
            queryset = queryset.filter(order_id=order_id)

        return queryset.order_by("-created_at")

    @classmethod
    def get_total_refunded(cls, order: Order) -> int:
        """Sum of refunds on the order that have not failed."""
        total = (
            Refund.objects.filter(order=order)
            .exclude(status=RefundStatus.FAILED)
            .aggregate(total=Sum("amount_cents"))["total"]
        )
        return total or 0
