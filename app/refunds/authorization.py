"""
Service-level authorization for refund operations.

Distinct from the DRF permission classes in permissions.py: those decide
whether an HTTP request may reach a view, while the checks here decide
whether a given actor may touch a given order or refund request.

An actor is one of:
    - Admin: authenticated user with role ADMIN or is_staff
    - Customer: any other authenticated user
    - Guest: unauthenticated caller identified only by an email address

Usage:
    actor = RequestActor.from_request(request, email=request.data.get("email"))
    if not actor.can_access_order(order):
        return ServiceResult.failure("...", error_code="PERMISSION_DENIED")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from customers.models import User
    from orders.models import Order
    from refunds.models import RefundRequest


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class RequestActor:
    """
    Who is performing a refund operation.

    Attributes:
        user: Authenticated user, or None for guests
        email: Email for guests; defaults to the user's email otherwise
    """

    user: User | None = None
    email: str | None = None

    @classmethod
    def from_request(cls, request, email: str | None = None) -> RequestActor:
        """Build an actor from a DRF request; email only counts for guests."""
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated:
            return cls(user=user, email=user.email)
        return cls(user=None, email=email)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    @property
    def is_guest(self) -> bool:
        return self.user is None

    @property
    def normalized_email(self) -> str:
        if self.user is not None:
            return _normalize_email(self.user.email)
        return _normalize_email(self.email)

    def can_access_order(self, order: Order) -> bool:
        """
        Admin, the ordering customer, or the order's email on a guest order.

        Orders placed from an account are never reachable by email alone.
        """
        if self.is_admin:
            return True
        if order.customer_id is not None:
            return self.user is not None and order.customer_id == self.user.pk
        return order.is_owned_by_email(self.normalized_email)

    def is_requester_of(self, refund_request: RefundRequest) -> bool:
        """Whether this actor submitted the refund request."""
        if refund_request.customer_id is not None:
            return self.user is not None and refund_request.customer_id == self.user.pk
        if not self.normalized_email:
            return False
        return _normalize_email(refund_request.customer_email) == self.normalized_email

    def can_view_request(self, refund_request: RefundRequest) -> bool:
        return (
            self.is_admin
            or self.is_requester_of(refund_request)
            or self.can_access_order(refund_request.order)
        )
