"""
Tests for the application exception hierarchy.
"""

import pytest

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class TestBaseApplicationError:
    def test_defaults(self):
        error = BaseApplicationError("Something broke")

        assert error.message == "Something broke"
        assert error.error_code == "APPLICATION_ERROR"
        assert error.details == {}
        assert str(error) == "[APPLICATION_ERROR] Something broke"

    def test_to_dict(self):
        error = NotFoundError(
            "Refund not found", error_code="REFUND_NOT_FOUND", details={"refund_id": "r1"}
        )

        assert error.to_dict() == {
            "error": "Refund not found",
            "error_code": "REFUND_NOT_FOUND",
            "details": {"refund_id": "r1"},
        }

    def test_to_dict_without_details(self):
        assert "details" not in ValidationError("Bad").to_dict()

    @pytest.mark.parametrize(
        "exc_class,code",
        [
            (ValidationError, "VALIDATION_ERROR"),
            (NotFoundError, "NOT_FOUND"),
            (PermissionDeniedError, "PERMISSION_DENIED"),
            (ConflictError, "CONFLICT"),
            (ExternalServiceError, "EXTERNAL_SERVICE_ERROR"),
        ],
    )
    def test_default_error_codes(self, exc_class, code):
        error = exc_class("message")

        assert error.error_code == code
        assert isinstance(error, BaseApplicationError)
