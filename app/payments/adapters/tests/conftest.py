"""
Pytest fixtures for Worldpay adapter tests.

This module provides fixtures for testing the Worldpay adapter, including
a patched requests transport, canned gateway responses, and test data.

Sections:
    - Transport Fixtures
    - Test Data Fixtures
    - Response Fixtures
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from payments.adapters import BillingAddress, CardDetails, GatewayOrder, ShopperContext


def make_response(status_code=200, json_data=None, json_error=None):
    """Build a requests.Response stand-in."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error", response=response
        )
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data
    return response


# =============================================================================
# Transport Fixtures
# =============================================================================


@pytest.fixture
def mock_request():
    """Patch the HTTP transport used by the adapter."""
    with patch("payments.adapters.worldpay_adapter.requests.request") as mock:
        yield mock


@pytest.fixture
def worldpay_settings(settings):
    settings.WORLDPAY_API_URL = "https://api.worldpay.test/v1"
    settings.WORLDPAY_TEST_KEY = "T_S_test-key"
    settings.WORLDPAY_LIVE_KEY = "L_S_live-key"
    settings.WORLDPAY_CONNECT_TIMEOUT_SECONDS = 12
    settings.WORLDPAY_CURRENCY = "GBP"
    return settings


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def shopper():
    return ShopperContext(
        ip_address="203.0.113.7",
        user_agent="Mozilla/5.0",
        accept_header="text/html",
        session_id="shopper-session-1",
    )


@pytest.fixture
def billing_address():
    return BillingAddress(
        address_lines=["1 High Street", "Flat 2", "Riverside"],
        country="GB",
        city="Cardiff",
        postal_code="CF10 1AA",
        region="South Glamorgan",
        phone="+447700900000",
    )


@pytest.fixture
def card():
    return CardDetails(
        name="Jane Doe",
        exp_month=12,
        exp_year=2030,
        card_number="4444333322221111",
        cvc="123",
    )


@pytest.fixture
def gateway_order(worldpay_settings, billing_address, shopper, card):
    return GatewayOrder(
        payment_id="0f8e3f0c-6a4e-4a8b-9d36-3a1b5f2a9c11",
        description="Screen repair, Case",
        amount_minor_units=8999,
        customer_name="Jane Doe",
        customer_email="jane@example.com",
        billing_address=billing_address,
        shopper=shopper,
        card=card,
    )


# =============================================================================
# Response Fixtures
# =============================================================================


@pytest.fixture
def success_response():
    return {
        "orderCode": "wp-order-1",
        "paymentStatus": "SUCCESS",
        "paymentResponse": {
            "type": "ObfuscatedCard",
            "cardIssuer": "VISA_CREDIT",
            "maskedCardNumber": "**** **** **** 1111",
        },
    }


@pytest.fixture
def challenge_response():
    return {
        "orderCode": "wp-order-1",
        "paymentStatus": "PRE_AUTHORIZED",
        "oneTime3DsToken": "one-time-token",
        "redirectURL": "https://issuer.example.com/3ds",
    }
