"""
Pytest fixtures for payment tests.

This module provides fixtures for creating payment test data in various
states, signed order payloads, and a PaymentStateMachine wired to mock
collaborators (gateway, identity directory, notifier).

Usage:
    def test_capture(machine, gateway, open_payment, charge_request):
        gateway.create_order.return_value = captured_outcome()
        result = machine.submit_charge(charge_request(open_payment.id))
        assert result.status == ChargeStatus.SUCCESS
"""

import uuid
from unittest.mock import MagicMock

import pytest

from core.services import ServiceResult
from identity.clients import IdentityUser
from identity.services import CustomerIdentityService
from payments.adapters import BillingAddress, CardDetails, ShopperContext
from payments.services import ChargeRequest, InlineOrder, PaymentStateMachine
from payments.signing import SignedItem, sign_item
from payments.state_machines import PaymentEnvironment, PaymentState
from payments.tests.factories import (
    PaymentFactory,
    PaymentItemFactory,
    SigningTokenFactory,
    ThreedsChallengeFactory,
    captured_outcome,
)


# =============================================================================
# Payment Fixtures
# =============================================================================


@pytest.fixture
def open_payment(db):
    """OPEN payment with two items totalling 8999 minor units."""
    payment = PaymentFactory()
    PaymentItemFactory(payment=payment, title="Screen repair", quantity=1, price_minor_units=4999)
    PaymentItemFactory(payment=payment, title="Case", quantity=2, price_minor_units=2000)
    return payment


@pytest.fixture
def paid_payment(db):
    payment = PaymentFactory(
        state=PaymentState.PAID,
        payment_method="VISA_CREDIT **** 1111",
        gateway_order_code="wp-paid-1",
    )
    PaymentItemFactory(payment=payment)
    return payment


@pytest.fixture
def live_payment(db):
    payment = PaymentFactory(environment=PaymentEnvironment.LIVE)
    PaymentItemFactory(payment=payment)
    return payment


@pytest.fixture
def challenged_payment(open_payment):
    """OPEN payment with an outstanding 3DS challenge."""
    ThreedsChallengeFactory(payment=open_payment, order_code="wp-order-1")
    return open_payment


# =============================================================================
# Signed Order Fixtures
# =============================================================================


@pytest.fixture
def signing_token(db):
    return SigningTokenFactory()


@pytest.fixture
def signed_item(signing_token):
    """Build SignedItems signed with the active signing token."""

    def build(
        item_type="repair",
        item_data=None,
        title="Screen repair",
        quantity=1,
        price_minor_units=4999,
        token=None,
    ):
        item_data = {"device": "iPhone 8"} if item_data is None else item_data
        signature = sign_item(
            bytes(token or signing_token.token),
            item_type,
            item_data,
            title,
            quantity,
            price_minor_units,
        )
        return SignedItem(
            item_type=item_type,
            item_data=item_data,
            title=title,
            quantity=quantity,
            price_minor_units=price_minor_units,
            signature=signature,
        )

    return build


# =============================================================================
# Charge Request Fixtures
# =============================================================================


@pytest.fixture
def billing_address():
    return BillingAddress(
        address_lines=["1 High Street", "Flat 2"],
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
def shopper():
    return ShopperContext(
        ip_address="203.0.113.7",
        user_agent="Mozilla/5.0",
        accept_header="text/html",
        session_id="shopper-session-1",
    )


@pytest.fixture
def charge_request(billing_address, card, shopper):
    """Build ChargeRequests against a payment id."""

    def build(payment_id, **kwargs):
        kwargs.setdefault("billing_address", billing_address)
        kwargs.setdefault("shopper", shopper)
        if "token" not in kwargs:
            kwargs.setdefault("card", card)
        return ChargeRequest(payment_id=payment_id, **kwargs)

    return build


@pytest.fixture
def inline_order(signed_item):
    """Build InlineOrders from signed items."""

    def build(items=None, **kwargs):
        kwargs.setdefault("environment", PaymentEnvironment.TEST)
        kwargs.setdefault("customer_email", "jane@example.com")
        kwargs.setdefault("customer_name", "Jane Doe")
        kwargs.setdefault("customer_phone", "+447700900000")
        return InlineOrder(items=items or [signed_item()], **kwargs)

    return build


# =============================================================================
# State Machine Fixtures
# =============================================================================


@pytest.fixture
def customer_id():
    return uuid.uuid4()


@pytest.fixture
def identity_user(customer_id):
    return IdentityUser(
        id=customer_id,
        email="jane@example.com",
        first_name="Jane",
        last_name="Doe",
        attributes={"phone": ["+447700900000"]},
    )


@pytest.fixture
def identity(identity_user, customer_id):
    """CustomerIdentityService mock resolving every caller to customer_id."""
    service = MagicMock(spec=CustomerIdentityService)
    service.resolve_customer.return_value = ServiceResult.success(customer_id)
    service.prepare_customer.return_value = identity_user
    service.get_customer.return_value = identity_user
    return service


@pytest.fixture
def gateway():
    gateway = MagicMock()
    gateway.create_order.return_value = captured_outcome()
    gateway.complete_threeds.return_value = captured_outcome()
    return gateway


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def machine(identity, gateway, notifier):
    return PaymentStateMachine(identity=identity, gateway=gateway, notifier=notifier)


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def oauth_client(monkeypatch):
    """OAuthClient mock installed on the identity app config."""
    from django.apps import apps

    client = MagicMock()
    client.verify_token.return_value = {"active": True, "sub": str(uuid.uuid4())}
    monkeypatch.setattr(apps.get_app_config("identity"), "oauth_client", client)
    return client


@pytest.fixture
def keycloak_client(monkeypatch, identity_user):
    """KeycloakClient mock installed on the identity app config."""
    from django.apps import apps

    client = MagicMock()
    client.get_user.return_value = identity_user
    monkeypatch.setattr(apps.get_app_config("identity"), "keycloak_client", client)
    return client


@pytest.fixture
def view_machine(monkeypatch, machine):
    """Make the views use the mock-wired state machine."""
    monkeypatch.setattr("payments.views.build_payment_state_machine", lambda: machine)
    return machine


@pytest.fixture
def logged_in_customer(monkeypatch):
    """Log a customer in on the session; call with the customer id."""

    def login(customer_id):
        monkeypatch.setattr(
            "payments.views.customer_id_from_session",
            lambda request, oauth_client: customer_id,
        )

    return login
