"""
Serializers for the refunds API.

Serializer Hierarchy:
    RefundRequestSerializer: Read representation of a refund request
    RefundRequestCreateSerializer: Customer/guest submission
    RefundRequestRejectSerializer: Admin rejection payload

    RefundSerializer: Read representation of a refund
    RefundProcessSerializer: Admin processing payload
    RefundProcessResponseSerializer: Processing response (refund + Stripe summary)

Design Decisions:
    - Read and write serializers are separate
    - Write serializers only check shape; business rules live in the services
    - Amounts are integer minor units on the wire
"""

from __future__ import annotations

from rest_framework import serializers

from refunds.models import Refund, RefundRequest
from refunds.state_machines import RefundType

MAX_REASON_LENGTH = 2000


# =============================================================================
# Refund Serializers
# =============================================================================


class RefundSerializer(serializers.ModelSerializer):
    """Refund as shown to admins and to the order's owner."""

    order_id = serializers.UUIDField(read_only=True)
    transaction_id = serializers.IntegerField(read_only=True)
    refund_request_id = serializers.SerializerMethodField(
        help_text="Refund request this refund was processed from"
    )

    class Meta:
        model = Refund
        fields = [
            "id",
            "order_id",
            "transaction_id",
            "refund_request_id",
            "amount_cents",
            "currency",
            "type",
            "status",
            "stripe_refund_id",
            "stripe_charge_id",
            "stripe_payment_intent_id",
            "reason",
            "processed_at",
            "completed_at",
            "failed_at",
            "failure_reason",
            "order_update_pending",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_refund_request_id(self, obj: Refund) -> str | None:
        try:
            return str(obj.refund_request.pk)
        except RefundRequest.DoesNotExist:
            return None


class RefundProcessSerializer(serializers.Serializer):
    """
    Admin request to process a refund.

    Either refund_request_id, or type (plus amount_cents for partial).
    """

    order_id = serializers.UUIDField()
    refund_request_id = serializers.UUIDField(required=False, allow_null=True)
    type = serializers.ChoiceField(
        choices=RefundType.choices, required=False, allow_null=True
    )
    amount_cents = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    reason = serializers.CharField(
        required=False, allow_blank=True, max_length=MAX_REASON_LENGTH
    )

    def validate(self, attrs: dict) -> dict:
        if attrs.get("refund_request_id"):
            return attrs
        if not attrs.get("type"):
            raise serializers.ValidationError(
                {"type": "type is required when refund_request_id is not given"}
            )
        if attrs["type"] == RefundType.PARTIAL and attrs.get("amount_cents") is None:
            raise serializers.ValidationError(
                {"amount_cents": "amount_cents is required for partial refunds"}
            )
        return attrs


class StripeRefundSummarySerializer(serializers.Serializer):
    id = serializers.CharField()
    status = serializers.CharField()
    amount = serializers.IntegerField(source="amount_cents")


class RefundProcessResponseSerializer(serializers.Serializer):
    """Response body for a processed refund."""

    message = serializers.CharField()
    refund = RefundSerializer()
    stripe_refund = StripeRefundSummarySerializer()
    order_updated = serializers.BooleanField()


# =============================================================================
# Refund Request Serializers
# =============================================================================


class RefundRequestSerializer(serializers.ModelSerializer):
    """Refund request with its review trail."""

    order_id = serializers.UUIDField(read_only=True)
    refund_id = serializers.UUIDField(read_only=True, allow_null=True)
    is_open = serializers.BooleanField(read_only=True)

    class Meta:
        model = RefundRequest
        fields = [
            "id",
            "order_id",
            "customer_email",
            "type",
            "amount_cents",
            "currency",
            "reason",
            "items",
            "status",
            "is_open",
            "rejection_reason",
            "approved_at",
            "rejected_at",
            "cancelled_at",
            "refund_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class RefundRequestItemSerializer(serializers.Serializer):
    product = serializers.CharField(max_length=255)
    variant = serializers.CharField(max_length=255, required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=1, default=1)
    amount_cents = serializers.IntegerField(min_value=0, required=False)


class RefundRequestCreateSerializer(serializers.Serializer):
    """
    Customer or guest submission.

    Guests must supply the email the order was placed with.
    """

    order_id = serializers.UUIDField()
    type = serializers.ChoiceField(choices=RefundType.choices, default=RefundType.FULL)
    amount_cents = serializers.IntegerField(required=False, allow_null=True)
    reason = serializers.CharField(max_length=MAX_REASON_LENGTH)
    items = RefundRequestItemSerializer(many=True, required=False)
    email = serializers.EmailField(required=False)

    def validate(self, attrs: dict) -> dict:
        request = self.context.get("request")
        is_authenticated = bool(request and request.user and request.user.is_authenticated)
        if not is_authenticated and not attrs.get("email"):
            raise serializers.ValidationError(
                {"email": "Email is required for guest refund requests"}
            )
        if attrs["type"] == RefundType.PARTIAL and attrs.get("amount_cents") is None:
            raise serializers.ValidationError(
                {"amount_cents": "amount_cents is required for partial refunds"}
            )
        return attrs


class RefundRequestRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(
        required=False, allow_blank=True, max_length=MAX_REASON_LENGTH
    )
