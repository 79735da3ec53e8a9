"""
Pure refund validation helpers.

These functions never touch the database beyond reading relations that the
caller already loaded, so they are shared by the request workflow, the
processing engine, the webhook reconciler and the serializers.

Every validator returns a ValidationResult rather than raising, so callers
can turn a failure straight into a ServiceResult:

    check = validate_order_can_be_refunded(order)
    if not check:
        return ServiceResult.failure(check.error, error_code=check.error_code)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from orders.states import OrderStatus, PaymentMethod, TransactionStatus

if TYPE_CHECKING:
    from orders.models import Order, Transaction


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of a validation check.

    Truthy when valid, so `if not result:` reads naturally at call sites.
    """

    valid: bool
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def invalid(cls, error: str, error_code: str) -> ValidationResult:
        return cls(valid=False, error=error, error_code=error_code)

    def __bool__(self) -> bool:
        return self.valid


def _as_amount(value) -> int:
    """Coerce a stored amount to int, treating missing/garbage as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


# =============================================================================
# Amounts
# =============================================================================


def get_refundable_amount(order_amount, total_refunded) -> int:
    """
    Amount still available for refund, in minor units.

    A missing, invalid or non-positive order amount yields 0; a missing
    total_refunded counts as nothing refunded yet.
    """
    amount = _as_amount(order_amount)
    if amount <= 0:
        return 0
    return max(0, amount - _as_amount(total_refunded))


def validate_refund_amount(order_amount, total_refunded, requested_amount) -> ValidationResult:
    """Check a requested amount against what is left to refund."""
    if _as_amount(order_amount) <= 0:
        return ValidationResult.invalid("Order amount is invalid or zero", "INVALID_ORDER")

    requested = _as_amount(requested_amount)
    if requested <= 0:
        return ValidationResult.invalid(
            "Refund amount must be greater than 0", "INVALID_AMOUNT"
        )

    refundable = get_refundable_amount(order_amount, total_refunded)
    if requested > refundable:
        return ValidationResult.invalid(
            f"Refund amount ({requested}) exceeds refundable amount ({refundable})",
            "AMOUNT_EXCEEDS_REFUNDABLE",
        )

    return ValidationResult.ok()


# =============================================================================
# Orders & Transactions
# =============================================================================


def validate_order_can_be_refunded(order: Order) -> ValidationResult:
    """Order-level preconditions, checked in a fixed order."""
    if order.status == OrderStatus.CANCELLED:
        return ValidationResult.invalid("Cannot refund a cancelled order", "ORDER_CANCELLED")

    if order.status == OrderStatus.REFUNDED:
        return ValidationResult.invalid(
            "Order has already been fully refunded", "ALREADY_REFUNDED"
        )

    if _as_amount(order.amount_cents) <= 0:
        return ValidationResult.invalid("Order has no amount to refund", "NO_AMOUNT")

    if not order.transactions.exists():
        return ValidationResult.invalid(
            "Order has no transactions to refund", "NO_TRANSACTIONS"
        )

    return ValidationResult.ok()


def validate_transaction_can_be_refunded(transaction: Transaction) -> ValidationResult:
    """Transaction-level preconditions, checked in a fixed order."""
    if transaction.status == TransactionStatus.REFUNDED:
        return ValidationResult.invalid(
            "Transaction has already been refunded", "ALREADY_REFUNDED"
        )

    if transaction.status != TransactionStatus.SUCCEEDED:
        return ValidationResult.invalid(
            f"Cannot refund transaction with status: {transaction.status}",
            "NOT_SUCCEEDED",
        )

    if transaction.payment_method != PaymentMethod.STRIPE:
        return ValidationResult.invalid(
            "Only Stripe payments can be refunded", "UNSUPPORTED_METHOD"
        )

    if not transaction.stripe_payment_intent_id:
        return ValidationResult.invalid(
            "Transaction does not have a payment intent ID", "MISSING_PAYMENT_INTENT"
        )

    if _as_amount(transaction.amount_cents) <= 0:
        return ValidationResult.invalid("Transaction has no amount to refund", "NO_AMOUNT")

    return ValidationResult.ok()


def get_primary_transaction(order: Order) -> Transaction | None:
    """First succeeded transaction in insertion order, if any."""
    for transaction in order.transactions.all():
        if transaction.status == TransactionStatus.SUCCEEDED:
            return transaction
    return None


def derive_order_status(amount, total_refunded, current_status: str) -> str:
    """
    Order status implied by the refunded total.

    Returns current_status unchanged when nothing has been refunded.
    """
    amount = _as_amount(amount)
    refunded = _as_amount(total_refunded)

    if amount > 0 and refunded >= amount:
        return OrderStatus.REFUNDED
    if refunded > 0:
        return OrderStatus.PARTIALLY_REFUNDED
    return current_status
