"""
Tests for the application exception hierarchy and DRF handler.
"""

import pytest
from rest_framework.exceptions import NotFound

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    application_exception_handler,
)


class TestBaseApplicationError:
    def test_defaults(self):
        error = NotFoundError("Payment not found")

        assert error.error_code == "NOT_FOUND"
        assert error.details == {}
        assert error.to_dict() == {"error": "Payment not found", "error_code": "NOT_FOUND"}
        assert str(error) == "[NOT_FOUND] Payment not found"

    def test_custom_code_and_details(self):
        error = ValidationError("Bad item", error_code="INVALID_ITEM", details={"item_index": 2})

        assert error.to_dict() == {
            "error": "Bad item",
            "error_code": "INVALID_ITEM",
            "details": {"item_index": 2},
        }
        assert "INVALID_ITEM" in repr(error)

    @pytest.mark.parametrize(
        "error_class,status_code",
        [
            (BaseApplicationError, 500),
            (ValidationError, 400),
            (PermissionDeniedError, 403),
            (NotFoundError, 404),
            (ConflictError, 409),
            (ExternalServiceError, 502),
        ],
    )
    def test_status_codes(self, error_class, status_code):
        assert error_class("x").status_code == status_code


class TestApplicationExceptionHandler:
    def test_renders_application_error(self, caplog):
        error = ConflictError("Already paid", error_code="ALREADY_PROCESSED")

        with caplog.at_level("WARNING", logger="core.exceptions"):
            response = application_exception_handler(error, {"view": None})

        assert response.status_code == 409
        assert response.data == {"error": "Already paid", "error_code": "ALREADY_PROCESSED"}
        assert "ALREADY_PROCESSED" in caplog.text

    def test_server_errors_log_at_error(self, caplog):
        with caplog.at_level("WARNING", logger="core.exceptions"):
            application_exception_handler(ExternalServiceError("down"), {})

        assert caplog.records[-1].levelname == "ERROR"

    def test_delegates_drf_exceptions(self):
        response = application_exception_handler(NotFound(), {})

        assert response.status_code == 404

    def test_unhandled_exception(self):
        assert application_exception_handler(RuntimeError("boom"), {}) is None
