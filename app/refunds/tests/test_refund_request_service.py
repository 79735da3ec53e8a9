"""
Tests for RefundRequestService.

Covers creation by customers and guests, admin review, cancellation by
the requester, and visibility of requests per actor.
"""

import uuid

import pytest

from customers.tests.factories import UserFactory
from orders.models import Order
from orders.states import OrderStatus
from orders.tests.factories import OrderFactory, TransactionFactory
from refunds.authorization import RequestActor
from refunds.models import RefundRequest
from refunds.models.refund_request import DEFAULT_REJECTION_REASON
from refunds.services import RefundRequestService, RefundService
from refunds.state_machines import RefundRequestStatus, RefundType
from refunds.tests.factories import RefundRequestFactory


# =============================================================================
# Create
# =============================================================================


@pytest.mark.django_db
class TestCreateRequest:
    """Tests for RefundRequestService.create_request."""

    def test_customer_full_request(self, refundable_order, customer):
        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(user=customer),
            refund_type=RefundType.FULL,
            reason="  Item arrived damaged  ",
        )

        assert result.success
        refund_request = result.data
        assert refund_request.status == RefundRequestStatus.PENDING
        assert refund_request.amount_cents == 10000
        assert refund_request.customer == customer
        assert refund_request.customer_email == customer.email
        assert refund_request.reason == "Item arrived damaged"

    def test_partial_request_with_items(self, refundable_order, customer):
        items = [{"product_name": "Mug", "quantity": 1}]

        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(user=customer),
            refund_type=RefundType.PARTIAL,
            amount_cents=2500,
            reason="One mug was chipped",
            items=items,
        )

        assert result.data.amount_cents == 2500
        assert result.data.items == items

    def test_guest_with_matching_email(self, guest_order):
        result = RefundRequestService.create_request(
            order_id=guest_order.id,
            actor=RequestActor(email="A@Example.com"),
            refund_type=RefundType.FULL,
            reason="Changed my mind",
        )

        assert result.success
        assert result.data.customer is None
        assert result.data.customer_email == "a@example.com"

    def test_guest_with_other_email_is_denied(self, guest_order):
        result = RefundRequestService.create_request(
            order_id=guest_order.id,
            actor=RequestActor(email="b@example.com"),
            refund_type=RefundType.FULL,
            reason="Changed my mind",
        )

        assert result.error_code == "PERMISSION_DENIED"
        assert not RefundRequest.objects.exists()

    def test_guest_cannot_request_on_account_order(self, refundable_order, customer):
        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(email=customer.email),
            refund_type=RefundType.FULL,
            reason="Placed from my account",
        )

        assert result.error_code == "PERMISSION_DENIED"
        assert not RefundRequest.objects.exists()

    def test_other_customer_is_denied(self, refundable_order):
        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(user=UserFactory()),
            refund_type=RefundType.FULL,
            reason="Not mine",
        )

        assert result.error_code == "PERMISSION_DENIED"

    def test_duplicate_open_request(self, pending_request, customer):
        result = RefundRequestService.create_request(
            order_id=pending_request.order_id,
            actor=RequestActor(user=customer),
            refund_type=RefundType.FULL,
            reason="Asking again",
        )

        assert result.error_code == "DUPLICATE_REQUEST"

    def test_approved_request_still_blocks(self, approved_request, customer):
        result = RefundRequestService.create_request(
            order_id=approved_request.order_id,
            actor=RequestActor(user=customer),
            refund_type=RefundType.FULL,
            reason="Asking again",
        )

        assert result.error_code == "DUPLICATE_REQUEST"

    def test_rejected_request_does_not_block(self, refundable_order, customer):
        RefundRequestFactory(order=refundable_order, status=RefundRequestStatus.REJECTED)

        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(user=customer),
            refund_type=RefundType.FULL,
            reason="Asking again",
        )

        assert result.success

    @pytest.mark.parametrize(
        "refund_type,amount_cents,reason,error_code",
        [
            (RefundType.FULL, None, "", "MISSING_FIELDS"),
            (RefundType.FULL, None, "   ", "MISSING_FIELDS"),
            ("exchange", None, "Wrong size", "MISSING_FIELDS"),
            (RefundType.PARTIAL, None, "Wrong size", "MISSING_FIELDS"),
            (RefundType.PARTIAL, 0, "Wrong size", "INVALID_AMOUNT"),
            (RefundType.PARTIAL, 10001, "Wrong size", "AMOUNT_EXCEEDS_REFUNDABLE"),
        ],
    )
    def test_invalid_input(
        self, refundable_order, customer, refund_type, amount_cents, reason, error_code
    ):
        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(user=customer),
            refund_type=refund_type,
            amount_cents=amount_cents,
            reason=reason,
        )

        assert result.error_code == error_code

    def test_order_not_found(self, customer):
        result = RefundRequestService.create_request(
            order_id=uuid.uuid4(),
            actor=RequestActor(user=customer),
            refund_type=RefundType.FULL,
            reason="Missing parcel",
        )

        assert result.error_code == "ORDER_NOT_FOUND"

    def test_fully_refunded_order(self, refundable_order, customer):
        Order.objects.filter(pk=refundable_order.pk).update(
            status=OrderStatus.REFUNDED, total_refunded_cents=10000
        )

        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(user=customer),
            refund_type=RefundType.FULL,
            reason="Again",
        )

        assert result.error_code == "ALREADY_REFUNDED"

    def test_full_request_after_partial_refund(self, refundable_order, customer):
        Order.objects.filter(pk=refundable_order.pk).update(
            status=OrderStatus.PARTIALLY_REFUNDED, total_refunded_cents=4000
        )

        result = RefundRequestService.create_request(
            order_id=refundable_order.id,
            actor=RequestActor(user=customer),
            refund_type=RefundType.FULL,
            reason="The rest please",
        )

        assert result.data.amount_cents == 6000


# =============================================================================
# Review
# =============================================================================


@pytest.mark.django_db
class TestReviewRequest:
    """Approve and reject."""

    def test_approve(self, pending_request, admin_user, mocker):
        """Approving records the reviewer and never contacts Stripe."""
        process = mocker.patch.object(RefundService, "process_refund")

        result = RefundRequestService.approve_request(
            pending_request.id, RequestActor(user=admin_user)
        )

        assert result.success
        refund_request = RefundRequest.objects.get(pk=pending_request.pk)
        assert refund_request.status == RefundRequestStatus.APPROVED
        assert refund_request.approved_by == admin_user
        assert refund_request.refund is None
        process.assert_not_called()

    def test_customer_cannot_approve(self, pending_request, customer):
        result = RefundRequestService.approve_request(
            pending_request.id, RequestActor(user=customer)
        )

        assert result.error_code == "PERMISSION_DENIED"
        assert RefundRequest.objects.get(pk=pending_request.pk).is_pending

    def test_approve_twice(self, approved_request, admin_user):
        result = RefundRequestService.approve_request(
            approved_request.id, RequestActor(user=admin_user)
        )

        assert result.error_code == "NOT_PENDING"
        assert result.details == {"status": RefundRequestStatus.APPROVED}

    def test_approve_unknown_request(self, admin_user):
        result = RefundRequestService.approve_request(uuid.uuid4(), RequestActor(user=admin_user))

        assert result.error_code == "REFUND_REQUEST_NOT_FOUND"

    def test_reject_with_reason(self, pending_request, admin_user):
        result = RefundRequestService.reject_request(
            pending_request.id, RequestActor(user=admin_user), reason="Outside return window"
        )

        refund_request = RefundRequest.objects.get(pk=pending_request.pk)
        assert result.success
        assert refund_request.status == RefundRequestStatus.REJECTED
        assert refund_request.rejection_reason == "Outside return window"

    def test_reject_default_reason(self, pending_request, admin_user):
        RefundRequestService.reject_request(
            pending_request.id, RequestActor(user=admin_user), reason="   "
        )

        refund_request = RefundRequest.objects.get(pk=pending_request.pk)
        assert refund_request.rejection_reason == DEFAULT_REJECTION_REASON

    def test_reject_approved_request(self, approved_request, admin_user):
        result = RefundRequestService.reject_request(
            approved_request.id, RequestActor(user=admin_user)
        )

        assert result.error_code == "NOT_PENDING"


# =============================================================================
# Cancel
# =============================================================================


@pytest.mark.django_db
class TestCancelRequest:
    """Only the requester may cancel, and only while pending."""

    def test_requester_cancels(self, pending_request, customer):
        result = RefundRequestService.cancel_request(
            pending_request.id, RequestActor(user=customer)
        )

        assert result.success
        assert RefundRequest.objects.get(pk=pending_request.pk).status == (
            RefundRequestStatus.CANCELLED
        )

    def test_guest_requester_cancels(self, guest_order):
        refund_request = RefundRequestFactory(order=guest_order)

        result = RefundRequestService.cancel_request(
            refund_request.id, RequestActor(email="a@example.com")
        )

        assert result.success

    def test_admin_cannot_cancel(self, pending_request, admin_user):
        result = RefundRequestService.cancel_request(
            pending_request.id, RequestActor(user=admin_user)
        )

        assert result.error_code == "PERMISSION_DENIED"

    def test_other_guest_cannot_cancel(self, guest_order):
        refund_request = RefundRequestFactory(order=guest_order)

        result = RefundRequestService.cancel_request(
            refund_request.id, RequestActor(email="b@example.com")
        )

        assert result.error_code == "PERMISSION_DENIED"

    def test_cannot_cancel_approved(self, approved_request, customer):
        result = RefundRequestService.cancel_request(
            approved_request.id, RequestActor(user=customer)
        )

        assert result.error_code == "NOT_PENDING"


# =============================================================================
# Queries
# =============================================================================


@pytest.mark.django_db
class TestRequestQueries:
    """Tests for get_request and list_requests."""

    def test_admin_sees_everything(self, pending_request, admin_user):
        other = RefundRequestFactory()

        requests = RefundRequestService.list_requests(RequestActor(user=admin_user))

        assert set(requests) == {pending_request, other}

    def test_customer_sees_own(self, pending_request, customer):
        RefundRequestFactory()

        requests = RefundRequestService.list_requests(RequestActor(user=customer))

        assert list(requests) == [pending_request]

    def test_guest_sees_by_email(self, guest_order):
        refund_request = RefundRequestFactory(order=guest_order)
        RefundRequestFactory()

        assert list(
            RefundRequestService.list_requests(RequestActor(email="a@example.com"))
        ) == [refund_request]
        assert not RefundRequestService.list_requests(RequestActor()).exists()

    def test_guest_email_does_not_list_account_requests(self, pending_request, customer):
        guest_actor = RequestActor(email=customer.email)

        assert not RefundRequestService.list_requests(guest_actor).exists()
        denied = RefundRequestService.get_request(pending_request.id, guest_actor)
        assert denied.error_code == "PERMISSION_DENIED"

    def test_filters(self, admin_user, refundable_order):
        pending = RefundRequestFactory(order=refundable_order)
        other_order = OrderFactory()
        TransactionFactory(order=other_order)
        RefundRequestFactory(order=other_order, status=RefundRequestStatus.REJECTED)
        actor = RequestActor(user=admin_user)

        by_status = RefundRequestService.list_requests(
            actor, status=RefundRequestStatus.PENDING
        )
        by_order = RefundRequestService.list_requests(actor, order_id=refundable_order.id)

        assert list(by_status) == [pending]
        assert list(by_order) == [pending]

    def test_get_request_permissions(self, pending_request, customer, admin_user):
        assert RefundRequestService.get_request(pending_request.id, RequestActor(user=customer))
        assert RefundRequestService.get_request(
            pending_request.id, RequestActor(user=admin_user)
        )
        denied = RefundRequestService.get_request(
            pending_request.id, RequestActor(user=UserFactory())
        )
        assert denied.error_code == "PERMISSION_DENIED"

    def test_get_unknown_request(self, customer):
        result = RefundRequestService.get_request("not-a-uuid", RequestActor(user=customer))

        assert result.error_code == "REFUND_REQUEST_NOT_FOUND"
