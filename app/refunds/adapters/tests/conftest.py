"""
Pytest fixtures for Stripe adapter tests.

The adapter is built with an injected MagicMock client, so no request
ever leaves the process. Errors are real stripe-python exception classes.

Sections:
    - Adapter Fixtures
    - Mock Stripe Response Fixtures
    - Mock Stripe Error Fixtures
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock

import pytest
import stripe

from refunds.adapters import StripeAdapter, StripeConfig


# =============================================================================
# Adapter Fixtures
# =============================================================================


@pytest.fixture
def stripe_config():
    return StripeConfig(
        secret_key="sk_test_123",
        webhook_secret="whsec_test_123",
        timeout_seconds=5.0,
    )


@pytest.fixture
def mock_stripe_client():
    """StripeClient stand-in; configure client.v1.refunds.create/retrieve per test."""
    return MagicMock()


@pytest.fixture
def adapter(stripe_config, mock_stripe_client):
    return StripeAdapter(stripe_config, client=mock_stripe_client)


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_refund():
    """Create a mock Refund response."""

    def _create(
        id: str = "re_test123456",
        amount: int = 5000,
        currency: str = "gbp",
        status: str = "succeeded",
        payment_intent: str = "pi_test123456",
        charge: str | None = "ch_test123456",
        failure_reason: str | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "currency": currency,
                "status": status,
                "payment_intent": payment_intent,
                "charge": charge,
                "failure_reason": failure_reason,
                "metadata": {},
            }
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def invalid_request_error():
    def _create(
        message: str = "No such payment_intent: 'pi_missing'",
        param: str | None = "payment_intent",
        code: str | None = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message=message, param=param, code=code)

    return _create
