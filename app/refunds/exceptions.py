"""
Refund-specific exceptions.

Exception Hierarchy:
    RefundError (base for the refund domain)
    ├── RefundValidationError - Invalid refund parameters (e.g. amount <= 0)
    └── RefundProcessingError - Refund processing failures
        └── GatewayError - Base for all payment processor errors
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeChargeAlreadyRefundedError - Charge fully refunded (permanent)
            ├── StripeAuthenticationError - Bad API key (permanent)
            ├── StripeRateLimitError - Rate limited (transient)
            ├── StripeAPIUnavailableError - API unavailable (transient)
            └── StripeTimeoutError - Request timeout (transient)

    LockAcquisitionError - Per-order lock timeout (inherits ConflictError)

Refund calls are never retried automatically: is_retryable only tells an
operator whether resubmitting (with the same idempotency key) is worthwhile.

Usage:
    from refunds.exceptions import GatewayError

    try:
        adapter.refund_partial("pi_123", 4000)
    except GatewayError as e:
        return ServiceResult.failure(e.message, error_code="GATEWAY_ERROR")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Refund Domain Exceptions
# =============================================================================


class RefundError(BaseApplicationError):
    """Base exception for refund domain errors."""

    default_error_code: str = "REFUND_ERROR"


class RefundValidationError(RefundError):
    """
    Raised when refund parameters are invalid.

    Example:
        raise RefundValidationError(
            "Refund amount must be greater than 0",
            error_code="INVALID_AMOUNT",
            details={"amount_cents": 0},
        )
    """

    default_error_code: str = "REFUND_VALIDATION_ERROR"


class RefundProcessingError(RefundError):
    """Raised when a refund cannot be processed."""

    default_error_code: str = "REFUND_PROCESSING_ERROR"


# =============================================================================
# Payment Gateway Exceptions
# =============================================================================


class GatewayError(RefundProcessingError):
    """
    Base exception for payment processor errors.

    Carries the processor's own message and codes so the caller can show
    why the refund was refused (e.g. insufficient balance on the account).

    Attributes:
        stripe_code: Stripe's error code (e.g. "charge_already_refunded")
        decline_code: Decline code when Stripe supplies one
        is_retryable: Whether resubmitting might succeed
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors
# -----------------------------------------------------------------------------


class StripeInvalidRequestError(GatewayError):
    """
    Request to Stripe was invalid.

    Common causes: unknown payment intent, amount larger than the
    remaining charge, bad signature on a webhook payload.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"

    def __init__(self, message: str, param: str | None = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if param:
            details["param"] = param
        super().__init__(message, details=details, **kwargs)
        self.param = param


class StripeChargeAlreadyRefundedError(StripeInvalidRequestError):
    """The charge behind the payment intent has already been fully refunded."""

    default_error_code: str = "CHARGE_ALREADY_REFUNDED"


class StripeAuthenticationError(GatewayError):
    """The configured Stripe secret key was rejected."""

    default_error_code: str = "STRIPE_AUTHENTICATION_FAILED"


# -----------------------------------------------------------------------------
# Transient Errors
# -----------------------------------------------------------------------------


class StripeRateLimitError(GatewayError):
    """Too many requests to Stripe."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(GatewayError):
    """Stripe API is unreachable or returned a server error."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(GatewayError):
    """
    Request to Stripe timed out.

    The refund may or may not have been created; resubmitting with the same
    idempotency key is safe and returns the original result.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when the per-order refund lock cannot be acquired.

    Another worker is processing a refund for the same order.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"
