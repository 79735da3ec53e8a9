"""
ViewSets for the refunds API.

URL Structure:
    /api/v1/refund-requests/                 GET, POST
    /api/v1/refund-requests/{id}/            GET, DELETE (cancel)
    /api/v1/refund-requests/{id}/approve/    POST (admin)
    /api/v1/refund-requests/{id}/reject/     POST (admin)
    /api/v1/refunds/                         GET
    /api/v1/refunds/{id}/                    GET
    /api/v1/refunds/process/                 POST (admin)

Design Decisions:
    - Guests are allowed; they identify themselves with ?email= (or the
      email field on create) matching the order's email
    - Ownership checks live in the services, views only translate
      ServiceResult failures into HTTP responses
    - Error bodies are {"error", "error_code", "details"}
"""

from __future__ import annotations

import uuid

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from core.services import ServiceResult
from refunds.authorization import RequestActor
from refunds.permissions import IsAdmin
from refunds.serializers import (
    RefundProcessResponseSerializer,
    RefundProcessSerializer,
    RefundRequestCreateSerializer,
    RefundRequestRejectSerializer,
    RefundRequestSerializer,
    RefundSerializer,
)
from refunds.services import RefundRequestService, RefundService

# Error codes that do not map to 400
ERROR_STATUS_MAP = {
    "ORDER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "REFUND_REQUEST_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "REFUND_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "DUPLICATE_REQUEST": status.HTTP_409_CONFLICT,
    "DUPLICATE_REFUND": status.HTTP_409_CONFLICT,
    "REQUEST_ALREADY_PROCESSED": status.HTTP_409_CONFLICT,
    "LOCK_ACQUISITION_FAILED": status.HTTP_409_CONFLICT,
    "GATEWAY_ERROR": status.HTTP_502_BAD_GATEWAY,
    "REFUND_RECORD_FAILED": status.HTTP_502_BAD_GATEWAY,
}

EMAIL_PARAMETER = OpenApiParameter(
    name="email",
    type=OpenApiTypes.EMAIL,
    location=OpenApiParameter.QUERY,
    required=False,
    description="Order email, for guests without an account",
)

ORDER_ID_PARAMETER = OpenApiParameter(
    name="order_id",
    type=OpenApiTypes.UUID,
    location=OpenApiParameter.QUERY,
    required=False,
    description="Only return rows for this order",
)


def error_response(result: ServiceResult) -> Response:
    """Translate a failed ServiceResult into an HTTP error response."""
    return Response(
        result.to_response(),
        status=ERROR_STATUS_MAP.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


def _actor(request, email: str | None = None) -> RequestActor:
    return RequestActor.from_request(request, email=email or request.query_params.get("email"))


def _order_id_param(request) -> uuid.UUID | None:
    """Parse ?order_id=, raising ValueError on garbage."""
    value = request.query_params.get("order_id")
    return uuid.UUID(value) if value else None


def _invalid_order_id() -> Response:
    return error_response(
        ServiceResult.failure("order_id must be a valid UUID", error_code="INVALID_PARAMETER")
    )


@extend_schema_view(
    list=extend_schema(
        operation_id="list_refund_requests",
        summary="List refund requests",
        parameters=[EMAIL_PARAMETER, ORDER_ID_PARAMETER],
        tags=["Refunds - Requests"],
    ),
    create=extend_schema(
        operation_id="create_refund_request",
        summary="Request a refund",
        request=RefundRequestCreateSerializer,
        responses={201: RefundRequestSerializer},
        tags=["Refunds - Requests"],
    ),
    retrieve=extend_schema(
        operation_id="get_refund_request",
        summary="Get refund request",
        parameters=[EMAIL_PARAMETER],
        tags=["Refunds - Requests"],
    ),
    destroy=extend_schema(
        operation_id="cancel_refund_request",
        summary="Cancel refund request",
        parameters=[EMAIL_PARAMETER],
        responses={200: RefundRequestSerializer},
        tags=["Refunds - Requests"],
    ),
)
class RefundRequestViewSet(viewsets.GenericViewSet):
    """
    ViewSet for refund requests.

    list:
        Admins see every request, customers their own, guests the
        requests filed under ?email=.

    create:
        Submit a full or partial refund request for an order.

    retrieve:
        Get a single request (admin, requester, or guest by email).

    destroy:
        Cancel a pending request. Only the requester can cancel.

    approve / reject:
        Admin review. Approval does not issue the refund.
    """

    serializer_class = RefundRequestSerializer
    permission_classes = [AllowAny]

    def get_permissions(self):
        if self.action in ("approve", "reject"):
            return [IsAdmin()]
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action == "create":
            return RefundRequestCreateSerializer
        if self.action == "reject":
            return RefundRequestRejectSerializer
        return RefundRequestSerializer

    def list(self, request):
        try:
            order_id = _order_id_param(request)
        except ValueError:
            return _invalid_order_id()

        queryset = RefundRequestService.list_requests(
            _actor(request),
            status=request.query_params.get("status"),
            order_id=order_id,
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = RefundRequestSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        return Response(RefundRequestSerializer(queryset, many=True).data)

    def create(self, request):
        serializer = RefundRequestCreateSerializer(
            data=request.data, context={"request": request}
        )
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = RefundRequestService.create_request(
            order_id=data["order_id"],
            actor=_actor(request, data.get("email")),
            refund_type=data["type"],
            reason=data["reason"],
            amount_cents=data.get("amount_cents"),
            items=data.get("items"),
        )
        if not result.success:
            return error_response(result)

        return Response(
            RefundRequestSerializer(result.data).data, status=status.HTTP_201_CREATED
        )

    def retrieve(self, request, pk=None):
        result = RefundRequestService.get_request(pk, _actor(request))
        if not result.success:
            return error_response(result)
        return Response(RefundRequestSerializer(result.data).data)

    def destroy(self, request, pk=None):
        result = RefundRequestService.cancel_request(pk, _actor(request))
        if not result.success:
            return error_response(result)
        return Response(RefundRequestSerializer(result.data).data)

    @extend_schema(
        operation_id="approve_refund_request",
        summary="Approve refund request",
        request=None,
        responses={200: RefundRequestSerializer},
        tags=["Refunds - Requests"],
    )
    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        result = RefundRequestService.approve_request(pk, _actor(request))
        if not result.success:
            return error_response(result)
        return Response(RefundRequestSerializer(result.data).data)

    @extend_schema(
        operation_id="reject_refund_request",
        summary="Reject refund request",
        request=RefundRequestRejectSerializer,
        responses={200: RefundRequestSerializer},
        tags=["Refunds - Requests"],
    )
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        serializer = RefundRequestRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundRequestService.reject_request(
            pk, _actor(request), reason=serializer.validated_data.get("reason")
        )
        if not result.success:
            return error_response(result)
        return Response(RefundRequestSerializer(result.data).data)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_refunds",
        summary="List refunds",
        parameters=[EMAIL_PARAMETER, ORDER_ID_PARAMETER],
        tags=["Refunds"],
    ),
    retrieve=extend_schema(
        operation_id="get_refund",
        summary="Get refund",
        parameters=[EMAIL_PARAMETER],
        tags=["Refunds"],
    ),
)
class RefundViewSet(viewsets.GenericViewSet):
    """
    ViewSet for issued refunds.

    list / retrieve:
        Admins see every refund, customers refunds on their own orders.

    process:
        Admin only. Issues the refund through Stripe and records it.
    """

    serializer_class = RefundSerializer
    permission_classes = [AllowAny]

    def get_permissions(self):
        if self.action == "process":
            return [IsAdmin()]
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action == "process":
            return RefundProcessSerializer
        return RefundSerializer

    def list(self, request):
        try:
            order_id = _order_id_param(request)
        except ValueError:
            return _invalid_order_id()

        queryset = RefundService.list_refunds(_actor(request), order_id=order_id)
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(RefundSerializer(page, many=True).data)
        return Response(RefundSerializer(queryset, many=True).data)

    def retrieve(self, request, pk=None):
        result = RefundService.get_refund(pk, _actor(request))
        if not result.success:
            return error_response(result)
        return Response(RefundSerializer(result.data).data)

    @extend_schema(
        operation_id="process_refund",
        summary="Process refund",
        request=RefundProcessSerializer,
        responses={
            201: RefundProcessResponseSerializer,
            400: OpenApiResponse(description="Validation or precondition failure"),
            409: OpenApiResponse(description="Duplicate refund or refund in progress"),
            502: OpenApiResponse(description="Stripe rejected or failed the refund"),
        },
        tags=["Refunds"],
    )
    @action(detail=False, methods=["post"])
    def process(self, request):
        serializer = RefundProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = RefundService.process_refund(
            order_id=data["order_id"],
            refund_request_id=data.get("refund_request_id"),
            refund_type=data.get("type"),
            amount_cents=data.get("amount_cents"),
            reason=data.get("reason"),
            processed_by=request.user,
        )
        if not result.success:
            return error_response(result)

        execution = result.data
        output = RefundProcessResponseSerializer(
            {
                "message": "Refund processed successfully",
                "refund": execution.refund,
                "stripe_refund": execution.stripe_refund,
                "order_updated": execution.order_updated,
            }
        )
        return Response(output.data, status=status.HTTP_201_CREATED)
