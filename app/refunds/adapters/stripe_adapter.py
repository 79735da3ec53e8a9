"""
Stripe API adapter for refund operations.

All Stripe traffic for refunds goes through StripeAdapter so that timeouts,
error translation, idempotency and logging are handled in one place.

Configuration is explicit: a StripeConfig is built from Django settings
(or by hand in tests) and passed to the adapter, which owns its own
StripeClient. Nothing here touches the global `stripe.api_key`.

Network retries are disabled. A refund moves money, so retrying is a
decision for the caller, who resubmits with the same idempotency key.

Usage:
    from refunds.adapters import StripeAdapter, StripeConfig

    adapter = StripeAdapter(StripeConfig.from_settings())
    result = adapter.refund_partial(
        "pi_123",
        4000,
        reason="requested_by_customer",
        idempotency_key=IdempotencyKeyGenerator.generate("refund", order.id),
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from refunds.exceptions import (
    GatewayError,
    RefundValidationError,
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeChargeAlreadyRefundedError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

if TYPE_CHECKING:
    from typing import NoReturn

DEFAULT_API_VERSION = "2024-12-18.acacia"

# Reasons Stripe accepts in the `reason` parameter. Anything else is free
# text and travels as metadata instead.
STRIPE_REFUND_REASONS = frozenset(["duplicate", "fraudulent", "requested_by_customer"])

# Stripe caps metadata values at 500 characters.
METADATA_VALUE_MAX_LENGTH = 500


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class StripeConfig:
    """
    Stripe credentials and client behaviour.

    Attributes:
        secret_key: Stripe secret API key (sk_xxx)
        webhook_secret: Webhook endpoint signing secret (whsec_xxx)
        api_version: Pinned Stripe API version
        timeout_seconds: HTTP timeout for each Stripe call
        max_network_retries: Automatic retries by the Stripe client
    """

    secret_key: str
    webhook_secret: str = ""
    api_version: str = DEFAULT_API_VERSION
    timeout_seconds: float = 10.0
    max_network_retries: int = 0

    @classmethod
    def from_settings(cls) -> StripeConfig:
        return cls(
            secret_key=getattr(settings, "STRIPE_SECRET_KEY", "") or "",
            webhook_secret=getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or "",
            api_version=getattr(settings, "STRIPE_API_VERSION", DEFAULT_API_VERSION),
            timeout_seconds=getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10),
            max_network_retries=getattr(settings, "STRIPE_MAX_RETRIES", 0),
        )


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in minor units
        currency: Currency code
        status: Stripe refund status (pending, succeeded, failed, canceled)
        payment_intent_id: Original PaymentIntent ID
        charge_id: Refunded Charge ID
        failure_reason: Stripe failure reason, if the refund failed
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str = ""
    charge_id: str = ""
    failure_reason: str = ""

    @classmethod
    def from_stripe(cls, refund: Any) -> RefundResult:
        return cls(
            id=refund.id,
            amount_cents=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=getattr(refund, "payment_intent", None) or "",
            charge_id=getattr(refund, "charge", None) or "",
            failure_reason=getattr(refund, "failure_reason", None) or "",
        )


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Keys are deterministic, so resubmitting the same operation for the same
    entity and attempt returns Stripe's original result instead of moving
    money twice.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="refund",
            entity_id=refund_request.id,
        )
        # "refund:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe refund operations.

    Features:
    - Explicit configuration, one StripeClient per adapter
    - Timeout on every call, no automatic network retries
    - Translation of Stripe SDK errors to GatewayError subclasses
    - Structured logging with timing

    Usage:
        adapter = StripeAdapter(StripeConfig.from_settings())
        result = adapter.refund_full("pi_123", idempotency_key=key)
    """

    def __init__(self, config: StripeConfig, client: Any = None) -> None:
        self.config = config
        self._client = client

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @property
    def client(self) -> stripe.StripeClient:
        """Lazily built StripeClient for this adapter's configuration."""
        if self._client is None:
            if not self.config.secret_key:
                raise StripeAuthenticationError(
                    "STRIPE_SECRET_KEY is not configured",
                    stripe_code="missing_api_key",
                )
            self._client = stripe.StripeClient(
                self.config.secret_key,
                stripe_version=self.config.api_version,
                max_network_retries=self.config.max_network_retries,
                http_client=stripe.RequestsClient(timeout=self.config.timeout_seconds),
            )
        return self._client

    # =========================================================================
    # Refunds
    # =========================================================================

    def refund_full(
        self,
        payment_intent_id: str,
        reason: str | None = None,
        idempotency_key: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund everything still refundable on a PaymentIntent.

        Raises:
            GatewayError: Stripe refused or could not be reached
        """
        return self._create_refund(
            payment_intent_id,
            amount_cents=None,
            reason=reason,
            idempotency_key=idempotency_key,
            metadata=metadata,
        )

    def refund_partial(
        self,
        payment_intent_id: str,
        amount_cents: int,
        reason: str | None = None,
        idempotency_key: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund part of a PaymentIntent.

        Raises:
            RefundValidationError: amount_cents <= 0 (no request is sent)
            GatewayError: Stripe refused or could not be reached
        """
        if amount_cents is None or amount_cents <= 0:
            raise RefundValidationError(
                "Refund amount must be greater than 0",
                error_code="INVALID_AMOUNT",
                details={"amount_cents": amount_cents},
            )

        return self._create_refund(
            payment_intent_id,
            amount_cents=amount_cents,
            reason=reason,
            idempotency_key=idempotency_key,
            metadata=metadata,
        )

    def retrieve_refund(self, stripe_refund_id: str) -> RefundResult:
        """Fetch the current state of a refund from Stripe."""
        logger = self.get_logger()
        log_context = {"operation": "retrieve_refund", "refund_id": stripe_refund_id}

        start_time = time.time()
        try:
            refund = self.client.v1.refunds.retrieve(stripe_refund_id)
        except stripe.StripeError as e:
            self._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)

        logger.debug(
            "Stripe operation completed",
            extra={
                **log_context,
                "status": refund.status,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return RefundResult.from_stripe(refund)

    def _create_refund(
        self,
        payment_intent_id: str,
        amount_cents: int | None,
        reason: str | None,
        idempotency_key: str | None,
        metadata: dict[str, str] | None,
    ) -> RefundResult:
        logger = self.get_logger()

        params: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents

        refund_metadata = dict(metadata or {})
        if reason in STRIPE_REFUND_REASONS:
            params["reason"] = reason
        elif reason:
            refund_metadata["reason"] = reason[:METADATA_VALUE_MAX_LENGTH]
        if refund_metadata:
            params["metadata"] = refund_metadata

        options: dict[str, Any] = {}
        if idempotency_key:
            options["idempotency_key"] = idempotency_key

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund = self.client.v1.refunds.create(params=params, options=options)
        except stripe.StripeError as e:
            self._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)

        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "refund_id": refund.id,
                "status": refund.status,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return RefundResult.from_stripe(refund)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Returns:
            Parsed event as a plain dict

        Raises:
            StripeInvalidRequestError: Missing secret, bad signature or bad payload
        """
        if not self.config.webhook_secret:
            raise StripeInvalidRequestError(
                "STRIPE_WEBHOOK_SECRET is not configured",
                stripe_code="missing_webhook_secret",
            )
        if not signature:
            raise StripeInvalidRequestError(
                "Missing Stripe-Signature header",
                stripe_code="signature_verification_failed",
            )

        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self.config.webhook_secret,
            )
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            ) from e

        return event.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> NoReturn:
        """
        Translate a Stripe SDK exception into a GatewayError and raise it.

        The processor's own message is preserved so callers can show why
        the refund was refused.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}
        message = _stripe_message(error)
        code = getattr(error, "code", None)

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": code},
            )
            if code == "charge_already_refunded":
                raise StripeChargeAlreadyRefundedError(
                    message, param=error.param, stripe_code=code
                ) from error
            raise StripeInvalidRequestError(
                message, param=error.param, stripe_code=code
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                message, stripe_code=code or "authentication_error"
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(message, stripe_code=code or "rate_limit") from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in message.lower() or "timeout" in message.lower():
                raise StripeTimeoutError(message, stripe_code="timeout") from error
            raise StripeAPIUnavailableError(
                message, stripe_code="api_connection_error"
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(message, stripe_code=code or "api_error") from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayError(
            message,
            stripe_code=code,
            decline_code=getattr(error, "decline_code", None),
        ) from error


def _stripe_message(error: stripe.StripeError) -> str:
    """Human-readable message from a Stripe error, without the request prefix."""
    return (
        getattr(error, "user_message", None)
        or getattr(error, "_message", None)
        or str(error)
    )
