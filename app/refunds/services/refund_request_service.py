"""
Refund request workflow.

Customers (or guests, identified by their checkout email) ask for a refund;
administrators approve or reject; the requester may cancel while the request
is still pending. Approval never moves money: an approved request waits for
an administrator to process it through RefundService.

Error Codes:
    ORDER_NOT_FOUND: Order does not exist
    REFUND_REQUEST_NOT_FOUND: Request does not exist or is not visible
    PERMISSION_DENIED: Actor may not perform the operation
    DUPLICATE_REQUEST: Order already has an open request
    NOT_PENDING: Request is no longer pending
    MISSING_FIELDS: Required input missing
    INVALID_AMOUNT / AMOUNT_EXCEEDS_REFUNDABLE: Bad partial amount
    ORDER_CANCELLED / ALREADY_REFUNDED / NO_AMOUNT / NO_TRANSACTIONS:
        Order cannot be refunded

Usage:
    from refunds.services import RefundRequestService

    result = RefundRequestService.create_request(
        order_id=order.id,
        actor=RequestActor(user=request.user),
        refund_type=RefundType.PARTIAL,
        amount_cents=2500,
        reason="Arrived damaged",
    )
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.db.models import Q, QuerySet

from core.services import BaseService, ServiceResult
from orders.models import Order
from refunds.models import RefundRequest
from refunds.state_machines import RefundRequestStatus, RefundType
from refunds.validation import (
    get_refundable_amount,
    validate_order_can_be_refunded,
    validate_refund_amount,
)

if TYPE_CHECKING:
    from refunds.authorization import RequestActor


def open_requests_for_order(order_id) -> QuerySet[RefundRequest]:
    """Pending requests, plus approved ones not yet turned into a refund."""
    return RefundRequest.objects.filter(order_id=order_id).filter(
        Q(status=RefundRequestStatus.PENDING)
        | Q(status=RefundRequestStatus.APPROVED, refund__isnull=True)
    )


class RefundRequestService(BaseService):
    """
    Service for the refund request lifecycle.

    All mutations re-read the request under select_for_update so two
    administrators acting at once cannot both approve (or approve and
    reject) the same request.
    """

    # =========================================================================
    # Create
    # =========================================================================

    @classmethod
    def create_request(
        cls,
        order_id: uuid.UUID,
        actor: RequestActor,
        refund_type: str,
        reason: str,
        amount_cents: int | None = None,
        items: list[dict] | None = None,
    ) -> ServiceResult[RefundRequest]:
        """
        Submit a refund request for an order.

        Full requests ask for the whole refundable amount; partial requests
        must name an amount within it.
        """
        logger = cls.get_logger()

        if not reason or not reason.strip():
            return ServiceResult.failure(
                "A reason is required", error_code="MISSING_FIELDS"
            )
        if refund_type not in RefundType.values:
            return ServiceResult.failure(
                f"Unknown refund type: {refund_type}", error_code="MISSING_FIELDS"
            )

        try:
            order = Order.objects.get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            return ServiceResult.failure(
                f"Order {order_id} not found", error_code="ORDER_NOT_FOUND"
            )

        if not actor.can_access_order(order):
            logger.warning(
                "Refund request denied: actor does not own order",
                extra={"order_id": str(order.id), "actor_email": actor.email},
            )
            return ServiceResult.failure(
                "You do not have permission to request a refund for this order",
                error_code="PERMISSION_DENIED",
            )

        check = validate_order_can_be_refunded(order)
        if not check:
            return ServiceResult.failure(check.error, error_code=check.error_code)

        if open_requests_for_order(order.id).exists():
            return ServiceResult.failure(
                "A refund request is already open for this order",
                error_code="DUPLICATE_REQUEST",
            )

        refundable = get_refundable_amount(order.amount_cents, order.total_refunded_cents)
        if refundable <= 0:
            return ServiceResult.failure(
                "Order has already been fully refunded", error_code="ALREADY_REFUNDED"
            )

        if refund_type == RefundType.PARTIAL:
            if amount_cents is None:
                return ServiceResult.failure(
                    "Amount is required for a partial refund",
                    error_code="MISSING_FIELDS",
                )
            check = validate_refund_amount(
                order.amount_cents, order.total_refunded_cents, amount_cents
            )
            if not check:
                return ServiceResult.failure(check.error, error_code=check.error_code)
        else:
            amount_cents = refundable

        if actor.user is not None and not actor.is_admin:
            customer, customer_email = actor.user, actor.user.email
        else:
            customer, customer_email = order.customer, order.customer_email

        try:
            with cls.atomic():
                refund_request = RefundRequest.objects.create(
                    order=order,
                    customer=customer,
                    customer_email=customer_email,
                    type=refund_type,
                    amount_cents=amount_cents,
                    currency=order.currency,
                    reason=reason.strip(),
                    items=items or [],
                )
        except IntegrityError:
            # Lost a race with another request for the same order
            return ServiceResult.failure(
                "A refund request is already open for this order",
                error_code="DUPLICATE_REQUEST",
            )

        logger.info(
            "Refund request created",
            extra={
                "refund_request_id": str(refund_request.id),
                "order_id": str(order.id),
                "type": refund_type,
                "amount_cents": amount_cents,
            },
        )
        return ServiceResult.success(refund_request)

    # =========================================================================
    # Review
    # =========================================================================

    @classmethod
    def approve_request(
        cls, request_id: uuid.UUID, actor: RequestActor
    ) -> ServiceResult[RefundRequest]:
        """Approve a pending request (admin only). Does not contact Stripe."""
        if not actor.is_admin:
            return ServiceResult.failure(
                "Only administrators can approve refund requests",
                error_code="PERMISSION_DENIED",
            )

        with cls.atomic():
            refund_request = cls._lock_request(request_id)
            if refund_request is None:
                return cls._not_found(request_id)
            if not refund_request.is_pending:
                return cls._not_pending(refund_request)

            refund_request.approve(actor.user)
            refund_request.save()

        cls.get_logger().info(
            "Refund request approved",
            extra={
                "refund_request_id": str(refund_request.id),
                "approved_by": actor.user.pk,
            },
        )
        return ServiceResult.success(refund_request)

    @classmethod
    def reject_request(
        cls,
        request_id: uuid.UUID,
        actor: RequestActor,
        reason: str | None = None,
    ) -> ServiceResult[RefundRequest]:
        """Reject a pending request (admin only)."""
        if not actor.is_admin:
            return ServiceResult.failure(
                "Only administrators can reject refund requests",
                error_code="PERMISSION_DENIED",
            )

        with cls.atomic():
            refund_request = cls._lock_request(request_id)
            if refund_request is None:
                return cls._not_found(request_id)
            if not refund_request.is_pending:
                return cls._not_pending(refund_request)

            refund_request.reject(actor.user, (reason or "").strip() or None)
            refund_request.save()

        cls.get_logger().info(
            "Refund request rejected",
            extra={
                "refund_request_id": str(refund_request.id),
                "rejected_by": actor.user.pk,
            },
        )
        return ServiceResult.success(refund_request)

    @classmethod
    def cancel_request(
        cls, request_id: uuid.UUID, actor: RequestActor
    ) -> ServiceResult[RefundRequest]:
        """Cancel a pending request on behalf of the original requester."""
        with cls.atomic():
            refund_request = cls._lock_request(request_id)
            if refund_request is None:
                return cls._not_found(request_id)
            if not actor.is_requester_of(refund_request):
                return ServiceResult.failure(
                    "Only the requester can cancel this refund request",
                    error_code="PERMISSION_DENIED",
                )
            if not refund_request.is_pending:
                return cls._not_pending(refund_request)

            refund_request.cancel()
            refund_request.save()

        cls.get_logger().info(
            "Refund request cancelled",
            extra={"refund_request_id": str(refund_request.id)},
        )
        return ServiceResult.success(refund_request)

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_request(
        cls, request_id: uuid.UUID, actor: RequestActor
    ) -> ServiceResult[RefundRequest]:
        try:
            refund_request = RefundRequest.objects.select_related("order", "refund").get(
                pk=request_id
            )
        except (RefundRequest.DoesNotExist, DjangoValidationError, ValueError):
            return cls._not_found(request_id)

        if not actor.can_view_request(refund_request):
            return ServiceResult.failure(
                "You do not have permission to view this refund request",
                error_code="PERMISSION_DENIED",
            )
        return ServiceResult.success(refund_request)

    @classmethod
    def list_requests(
        cls,
        actor: RequestActor,
        status: str | None = None,
        order_id: uuid.UUID | None = None,
    ) -> QuerySet[RefundRequest]:
        """
        Requests visible to the actor, newest first.

        Admins see everything, customers their own requests, guests the
        requests filed under their email. A guest without an email sees
        nothing.
        """
        queryset = RefundRequest.objects.select_related("order", "refund")

        if actor.is_admin:
            pass
        elif actor.user is not None:
            queryset = queryset.filter(
                Q(customer=actor.user)
                | Q(customer__isnull=True, customer_email__iexact=actor.user.email)
            )
        elif actor.normalized_email:
            queryset = queryset.filter(
                customer__isnull=True, customer_email__iexact=actor.normalized_email
            )
        else:
            queryset = queryset.none()

        if status:
            queryset = queryset.filter(status=status)
        if order_id:
            queryset = queryset.filter(order_id=order_id)

        return queryset.order_by("-created_at")

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _lock_request(cls, request_id) -> RefundRequest | None:
        try:
            return RefundRequest.objects.select_for_update().get(pk=request_id)
        except (RefundRequest.DoesNotExist, DjangoValidationError, ValueError):
            return None

    @classmethod
    def _not_found(cls, request_id) -> ServiceResult:
        return ServiceResult.failure(
            f"Refund request {request_id} not found",
            error_code="REFUND_REQUEST_NOT_FOUND",
        )

    @classmethod
    def _not_pending(cls, refund_request: RefundRequest) -> ServiceResult:
        return ServiceResult.failure(
            f"Refund request is {refund_request.status}, not pending",
            error_code="NOT_PENDING",
            details={"status": refund_request.status},
        )
