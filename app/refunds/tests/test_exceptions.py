"""
Tests for the refund exception hierarchy.
"""

import pytest

import refunds.exceptions as refund_exceptions
from core.exceptions import BaseApplicationError, ConflictError
from core.services import ServiceResult
from refunds.exceptions import (
    GatewayError,
    LockAcquisitionError,
    RefundProcessingError,
    RefundValidationError,
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeChargeAlreadyRefundedError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


class TestGatewayErrors:
    def test_processor_codes_land_in_details(self):
        error = StripeInvalidRequestError(
            "Stripe refund error: No such payment_intent",
            stripe_code="resource_missing",
        )

        assert error.error_code == "INVALID_STRIPE_REQUEST"
        assert error.details == {"stripe_code": "resource_missing"}
        assert error.stripe_code == "resource_missing"
        assert isinstance(error, RefundProcessingError)

    @pytest.mark.parametrize(
        "exc_class,retryable",
        [
            (StripeInvalidRequestError, False),
            (StripeChargeAlreadyRefundedError, False),
            (StripeAuthenticationError, False),
            (StripeRateLimitError, True),
            (StripeAPIUnavailableError, True),
            (StripeTimeoutError, True),
        ],
    )
    def test_retryable_flags(self, exc_class, retryable):
        assert issubclass(exc_class, GatewayError)
        assert exc_class.is_retryable is retryable

    def test_converts_to_service_result(self):
        result = ServiceResult.from_exception(StripeAPIUnavailableError("Stripe is down"))

        assert result.error == "Stripe is down"
        assert result.error_code == "STRIPE_UNAVAILABLE"


class TestRefundErrors:
    def test_validation_error_code(self):
        error = RefundValidationError("Refund amount must be greater than 0", "INVALID_AMOUNT")

        assert error.error_code == "INVALID_AMOUNT"
        assert isinstance(error, BaseApplicationError)

    def test_lock_error_is_conflict(self):
        assert issubclass(LockAcquisitionError, ConflictError)
        assert LockAcquisitionError("held").error_code == "LOCK_ACQUISITION_FAILED"

    @pytest.mark.parametrize("name", ["RefundNotFoundError", "InvalidStateTransitionError"])
    def test_lookup_and_transition_failures_are_results_not_exceptions(self, name):
        """Not-found and bad-transition cases are reported as ServiceResult failures."""
        assert not hasattr(refund_exceptions, name)
