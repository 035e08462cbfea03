"""
Payment-specific exceptions for payment operations.

This module provides a hierarchy of exceptions for payment operations,
covering lookups, signed order verification, state guards, and
Worldpay gateway failures.

Exception Hierarchy:
    NotFoundError (404)
    ├── PaymentNotFoundError - Payment lookup failures
    └── ThreedsChallengeNotFoundError - No live 3DS challenge for a payment

    ValidationError (400)
    ├── PaymentValidationError - Malformed or inconsistent charge input
    ├── InvalidSignatureError - Signed item batch failed verification
    └── OrderTotalMismatchError - Client total differs from server total

    ConflictError (409)
    └── AlreadyProcessedError - Charge attempted against a non-OPEN payment

    ExternalServiceError (502)
    └── GatewayError - Base for Worldpay errors
        ├── GatewayUnavailableError - Network failure or non-2xx (retryable)
        └── GatewayResponseError - 2xx with an unreadable body

    StoreError (500) - Persistence failure outside the state guards

Usage:
    from payments.exceptions import AlreadyProcessedError, InvalidSignatureError

    if payment.state != PaymentState.OPEN:
        raise AlreadyProcessedError(
            f"Payment {payment.id} is already {payment.state}",
            details={"payment_id": str(payment.id), "state": payment.state},
        )

Note:
    A declined card is not an exception. Gateway outcomes are returned as
    GatewayOutcome values; only transport failures are raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Lookup Exceptions
# =============================================================================


class PaymentNotFoundError(NotFoundError):
    """
    Raised when a payment cannot be found.

    Example:
        payment = Payment.objects.filter(id=payment_id).first()
        if not payment:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)}
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class ThreedsChallengeNotFoundError(NotFoundError):
    """
    Raised when a payment has no outstanding 3DS challenge.

    Challenges are single-use, so a second completion attempt for the
    same challenge ends here rather than reaching the gateway.
    """

    default_error_code: str = "THREEDS_CHALLENGE_NOT_FOUND"


# =============================================================================
# Validation Exceptions
# =============================================================================


class PaymentValidationError(ValidationError):
    """
    Raised when charge input is malformed or inconsistent.

    Use for:
    - Charge against an unknown payment without an inline order
    - 3DS completion for a different gateway order code
    - Empty item lists
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class InvalidSignatureError(ValidationError):
    """
    Raised when a signed item batch fails verification.

    The whole batch is rejected; no payment or item rows are written.
    """

    default_error_code: str = "INVALID_SIGNATURE"


class OrderTotalMismatchError(ValidationError):
    """
    Raised when a client-declared total differs from the server total.

    The server total is always recomputed from stored items in minor units;
    the declared figure is never charged.
    """

    default_error_code: str = "ORDER_TOTAL_MISMATCH"


# =============================================================================
# State Guard Exceptions
# =============================================================================


class AlreadyProcessedError(ConflictError):
    """
    Raised when a charge is attempted against a payment that is not OPEN.

    This is the per-payment serialization point: of two concurrent charges
    only one can observe OPEN and move the payment to PAID. The other ends
    here without contacting the gateway again.
    """

    default_error_code: str = "ALREADY_PROCESSED"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for Worldpay errors.

    Attributes:
        http_status: HTTP status returned by the gateway, if any
        is_retryable: Whether the whole charge may be resubmitted

    Resubmitting is guarded by the OPEN state check and by the gateway's
    customerOrderCode, so a retry never produces a second local PAID
    transition.
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if http_status is not None:
            details["http_status"] = http_status
        super().__init__(message, error_code=error_code, details=details)
        self.http_status = http_status


class GatewayUnavailableError(GatewayError):
    """
    Worldpay could not be reached or answered with a non-2xx status.

    This covers:
    - Connection errors and DNS failures
    - Connect timeouts (WORLDPAY_CONNECT_TIMEOUT_SECONDS)
    - 4xx/5xx responses

    IMPORTANT: after a dropped connection or a 5xx the charge may have
    been captured on the gateway side. The payment is left OPEN and
    resubmission reuses the payment id as customerOrderCode.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayResponseError(GatewayError):
    """Worldpay answered 2xx but the body could not be decoded."""

    default_error_code: str = "GATEWAY_RESPONSE_ERROR"


# =============================================================================
# Persistence Exceptions
# =============================================================================


class StoreError(BaseApplicationError):
    """
    Raised when the payment store fails outside the expected guards.

    Always logged with the payment id and the stage that failed so the
    payment can be reconciled by hand.
    """

    default_error_code: str = "STORE_ERROR"
    status_code: int = 500
