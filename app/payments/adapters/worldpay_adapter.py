"""
Worldpay API adapter for card charges.

This module provides the WorldpayAdapter class which encapsulates all
Worldpay JSON API interactions. All gateway calls should go through this
adapter to ensure consistent error handling, timeouts, credential
selection, and observability.

Features:
- Configurable timeouts on all API calls
- Credential selection from the payment environment only
- Gateway status vocabulary mapped onto GatewayOutcome values
- Transport failures translated to GatewayUnavailableError
- Structured logging with timing metrics

Configuration (via settings):
- WORLDPAY_API_URL: API base URL (default: https://api.worldpay.com/v1/)
- WORLDPAY_TEST_KEY / WORLDPAY_LIVE_KEY: Service keys per environment
- WORLDPAY_CONNECT_TIMEOUT_SECONDS: Connect timeout (default: 10); there is no
  read timeout, a charge in flight is never abandoned
- WORLDPAY_CURRENCY: ISO 4217 currency code (default: GBP)

Usage:
    from payments.adapters import WorldpayAdapter, GatewayOrder

    outcome = WorldpayAdapter.create_order(order, environment=payment.environment)
    if outcome.kind == OutcomeKind.CHALLENGE_REQUIRED:
        ...

    outcome = WorldpayAdapter.complete_threeds(
        order_code=challenge.order_code,
        response_code=pa_res,
        shopper=shopper,
        environment=payment.environment,
    )
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import requests
from django.conf import settings

from payments.exceptions import GatewayResponseError, GatewayUnavailableError
from payments.state_machines import PaymentEnvironment

if TYPE_CHECKING:
    from collections.abc import Sequence


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class BillingAddress:
    """
    Billing address as entered on the checkout form.

    Attributes:
        address_lines: Up to three street lines
        country: ISO 3166 country code
        city: City or town
        postal_code: Postal code
        region: County, state or region
        phone: Contact telephone number
    """

    address_lines: list[str]
    country: str
    city: str
    postal_code: str
    region: str = ""
    phone: str = ""

    def to_worldpay(self) -> dict[str, Any]:
        lines = list(self.address_lines)
        address: dict[str, Any] = {
            "address1": lines[0] if lines else "",
        }
        if len(lines) > 1:
            address["address2"] = lines[1]
        if len(lines) > 2:
            address["address3"] = lines[2]
        address.update(
            {
                "postalCode": self.postal_code,
                "city": self.city,
                "countryCode": self.country,
                "state": self.region,
                "telephoneNumber": self.phone,
            }
        )
        return address


@dataclass
class CardDetails:
    """Raw card entered on the checkout form. Never persisted."""

    name: str
    exp_month: int
    exp_year: int
    card_number: str
    cvc: str | None = None

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if not 1 <= self.exp_month <= 12:
            raise ValueError("exp_month must be between 1 and 12")
        if not self.card_number:
            raise ValueError("card_number is required")

    def __repr__(self) -> str:
        return f"CardDetails(name={self.name!r}, last4={self.card_number[-4:]!r})"

    def to_worldpay(self) -> dict[str, Any]:
        method: dict[str, Any] = {
            "name": self.name,
            "expiryMonth": self.exp_month,
            "expiryYear": self.exp_year,
            "cardNumber": self.card_number,
            "type": "Card",
        }
        if self.cvc is not None:
            method["cvc"] = self.cvc
        return method


@dataclass
class ShopperContext:
    """
    Network metadata about the shopper, used by Worldpay fraud checks.

    Attributes:
        ip_address: Client IP address
        user_agent: Browser user agent
        accept_header: Browser Accept header
        session_id: Shopper session id minted per browser session
    """

    ip_address: str = ""
    user_agent: str = ""
    accept_header: str = "*/*"
    session_id: str = ""

    def to_worldpay(self) -> dict[str, str]:
        return {
            "shopperIpAddress": self.ip_address,
            "shopperUserAgent": self.user_agent,
            "shopperAcceptHeader": self.accept_header,
            "shopperSessionId": self.session_id,
        }


@dataclass
class GatewayOrder:
    """
    Canonical charge request built from a payment and its items.

    Attributes:
        payment_id: Payment id, sent as customerOrderCode
        description: Item titles joined by ", "
        amount_minor_units: Order total in minor units
        customer_name: Cardholder / shopper full name
        customer_email: Shopper email address
        billing_address: Billing address
        shopper: Shopper network metadata
        card: Raw card details (mutually exclusive with token)
        token: Stored Worldpay token (mutually exclusive with card)
        currency: ISO 4217 currency code
    """

    payment_id: str
    description: str
    amount_minor_units: int
    customer_name: str
    customer_email: str
    billing_address: BillingAddress
    shopper: ShopperContext
    card: CardDetails | None = None
    token: str | None = None
    currency: str = field(default_factory=lambda: getattr(settings, "WORLDPAY_CURRENCY", "GBP"))

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount_minor_units < 0:
            raise ValueError("amount_minor_units must not be negative")
        if (self.card is None) == (self.token is None):
            raise ValueError("exactly one of card or token is required")

    @property
    def authorize_only(self) -> bool:
        """Zero-total orders reserve but do not capture."""
        return self.amount_minor_units == 0


class OutcomeKind(str, enum.Enum):
    """Canonical outcome of a gateway charge."""

    CAPTURED = "captured"
    CHALLENGE_REQUIRED = "challenge_required"
    DECLINED = "declined"
    UNKNOWN = "unknown"


@dataclass
class GatewayOutcome:
    """
    Result of a Worldpay order operation.

    Attributes:
        kind: Canonical outcome
        order_code: Worldpay order code
        raw_status: paymentStatus as returned by Worldpay
        payment_method: "{cardIssuer} {maskedCardNumber}" when reported
        one_time_token: 3DS one-time token (challenge only)
        redirect_url: Issuer redirect URL (challenge only)
        raw_response: Full decoded response for debugging
    """

    kind: OutcomeKind
    order_code: str
    raw_status: str | None = None
    payment_method: str | None = None
    one_time_token: str | None = None
    redirect_url: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_captured(self) -> bool:
        return self.kind == OutcomeKind.CAPTURED


CAPTURED_STATUSES = frozenset({"SUCCESS", "AUTHORIZED"})
CHALLENGE_STATUSES = frozenset({"PRE_AUTHORIZED"})
DECLINED_STATUSES = frozenset({"FAILED"})


def latin1_safe(value: str) -> str:
    """Drop characters Worldpay cannot accept in ISO-8859-1 fields."""
    return value.encode("latin-1", errors="ignore").decode("latin-1")


def describe_items(titles: Sequence[str]) -> str:
    return ", ".join(titles)


# =============================================================================
# Adapter
# =============================================================================


class WorldpayAdapter:
    """
    Adapter for Worldpay order operations.

    All methods are class methods - no instance state is maintained.

    Features:
    - Configurable timeouts on all API calls
    - Automatic error translation to domain exceptions
    - Structured logging with timing metrics

    Note:
        customerOrderCode is always the payment id, so resubmitting an
        OPEN payment after a lost response is recognisable on the
        gateway side.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _api_key(environment: str) -> str:
        """Select the service key for a payment environment."""
        if environment == PaymentEnvironment.LIVE:
            return settings.WORLDPAY_LIVE_KEY
        return settings.WORLDPAY_TEST_KEY

    @staticmethod
    def _url(path: str) -> str:
        base = getattr(settings, "WORLDPAY_API_URL", "https://api.worldpay.com/v1/")
        if not base.endswith("/"):
            base = f"{base}/"
        return urljoin(base, path)

    @staticmethod
    def _timeout() -> tuple[float, None]:
        """Connect timeout only; a sent charge is waited on until it answers."""
        return (getattr(settings, "WORLDPAY_CONNECT_TIMEOUT_SECONDS", 10), None)

    # =========================================================================
    # Request Builders
    # =========================================================================

    @staticmethod
    def build_order_body(order: GatewayOrder) -> dict[str, Any]:
        """Build the POST /orders body for a canonical order."""
        body: dict[str, Any] = {
            "orderType": "ECOM",
            "orderDescription": order.description,
            "customerOrderCode": order.payment_id,
            "amount": order.amount_minor_units,
            "currencyCode": order.currency,
            "name": latin1_safe(order.customer_name),
            "shopperEmailAddress": order.customer_email,
            "billingAddress": order.billing_address.to_worldpay(),
            **order.shopper.to_worldpay(),
            "is3DSOrder": True,
            "authorizeOnly": order.authorize_only,
        }
        if order.card is not None:
            body["paymentMethod"] = order.card.to_worldpay()
        else:
            body["token"] = order.token
        return body

    @staticmethod
    def build_threeds_body(response_code: str, shopper: ShopperContext) -> dict[str, Any]:
        return {
            "threeDSResponseCode": response_code,
            **shopper.to_worldpay(),
        }

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def create_order(cls, order: GatewayOrder, environment: str) -> GatewayOutcome:
        """
        Submit a new order to Worldpay.

        Args:
            order: Canonical order built from the payment
            environment: Payment environment, selects the service key

        Returns:
            GatewayOutcome describing the charge

        Raises:
            GatewayUnavailableError: Network failure, timeout or non-2xx
            GatewayResponseError: 2xx with an unreadable body
        """
        log_context = {
            "operation": "create_order",
            "payment_id": order.payment_id,
            "amount_minor_units": order.amount_minor_units,
            "currency": order.currency,
            "environment": environment,
            "authorize_only": order.authorize_only,
        }
        data = cls._request(
            "POST",
            "orders",
            body=cls.build_order_body(order),
            environment=environment,
            log_context=log_context,
        )
        return cls._to_outcome(data, log_context)

    @classmethod
    def complete_threeds(
        cls,
        order_code: str,
        response_code: str,
        shopper: ShopperContext,
        environment: str,
    ) -> GatewayOutcome:
        """
        Submit a 3DS challenge result for an existing order.

        Args:
            order_code: Worldpay order code from the challenge
            response_code: PaRes posted back by the card issuer
            shopper: Shopper network metadata
            environment: Payment environment, selects the service key

        Returns:
            GatewayOutcome describing the charge

        Raises:
            GatewayUnavailableError: Network failure, timeout or non-2xx
            GatewayResponseError: 2xx with an unreadable body
        """
        log_context = {
            "operation": "complete_threeds",
            "order_code": order_code,
            "environment": environment,
        }
        data = cls._request(
            "PUT",
            f"orders/{order_code}",
            body=cls.build_threeds_body(response_code, shopper),
            environment=environment,
            log_context=log_context,
        )
        return cls._to_outcome(data, log_context)

    # =========================================================================
    # Transport
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        body: dict[str, Any],
        environment: str,
        log_context: dict[str, Any],
    ) -> dict[str, Any]:
        logger = cls.get_logger()
        start_time = time.time()
        logger.info("Starting Worldpay operation", extra=log_context)

        try:
            response = requests.request(
                method,
                cls._url(path),
                json=body,
                headers={
                    "Authorization": cls._api_key(environment),
                    "Content-Type": "application/json",
                },
                timeout=cls._timeout(),
            )
            response.raise_for_status()
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_transport_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                "Unreadable Worldpay response",
                extra={**log_context, "http_status": response.status_code},
            )
            raise GatewayResponseError(
                "Worldpay returned an unreadable response",
                http_status=response.status_code,
            ) from e

        if not isinstance(data, dict):
            raise GatewayResponseError(
                "Worldpay returned an unexpected response",
                http_status=response.status_code,
            )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Worldpay operation completed",
            extra={
                **log_context,
                "order_code": data.get("orderCode"),
                "payment_status": data.get("paymentStatus"),
                "duration_ms": duration_ms,
            },
        )
        return data

    @classmethod
    def _handle_transport_error(
        cls,
        error: requests.RequestException,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate requests exceptions to GatewayUnavailableError.

        Raises:
            GatewayUnavailableError: Always
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, requests.HTTPError):
            http_status = error.response.status_code if error.response is not None else None
            logger.error(
                "Worldpay returned an error status",
                extra={**log_context, "http_status": http_status},
            )
            raise GatewayUnavailableError(
                f"Worldpay returned HTTP {http_status}",
                http_status=http_status,
            ) from error

        if isinstance(error, requests.Timeout):
            logger.error("Worldpay request timed out", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Worldpay request timed out",
                error_code="GATEWAY_TIMEOUT",
            ) from error

        logger.error("Could not reach Worldpay", extra=log_context, exc_info=True)
        raise GatewayUnavailableError("Could not reach Worldpay") from error

    # =========================================================================
    # Response Mapping
    # =========================================================================

    @classmethod
    def _to_outcome(cls, data: dict[str, Any], log_context: dict[str, Any]) -> GatewayOutcome:
        order_code = data.get("orderCode")
        if not order_code:
            cls.get_logger().error("Worldpay response without orderCode", extra=log_context)
            raise GatewayResponseError("Worldpay response is missing orderCode")

        status = data.get("paymentStatus")
        outcome = GatewayOutcome(
            kind=OutcomeKind.UNKNOWN,
            order_code=str(order_code),
            raw_status=status,
            payment_method=cls._payment_method(data.get("paymentResponse")),
            raw_response=data,
        )

        if status in CAPTURED_STATUSES:
            outcome.kind = OutcomeKind.CAPTURED
        elif status in CHALLENGE_STATUSES:
            token = data.get("oneTime3DsToken")
            redirect_url = data.get("redirectURL")
            if token and redirect_url:
                outcome.kind = OutcomeKind.CHALLENGE_REQUIRED
                outcome.one_time_token = token
                outcome.redirect_url = redirect_url
            else:
                cls.get_logger().warning(
                    "PRE_AUTHORIZED without 3DS token or redirect",
                    extra={**log_context, "order_code": order_code},
                )
        elif status in DECLINED_STATUSES:
            outcome.kind = OutcomeKind.DECLINED
        else:
            cls.get_logger().warning(
                f"Unhandled Worldpay payment status: {status}",
                extra={**log_context, "order_code": order_code},
            )

        return outcome

    @staticmethod
    def _payment_method(payment_response: Any) -> str | None:
        if not isinstance(payment_response, dict):
            return None
        parts = [
            payment_response.get("cardIssuer"),
            payment_response.get("maskedCardNumber"),
        ]
        parts = [part for part in parts if part]
        return " ".join(parts) or None
