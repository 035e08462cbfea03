"""
Tests for payment serializers.

Tests cover:
- Environment and price field parsing
- Signed item signature format checks
- Building ChargeRequest and InlineOrder from validated data
- Payment display output
"""

import uuid

import pytest

from payments.adapters import ShopperContext
from payments.serializers import (
    ChargeSerializer,
    CreatePaymentSerializer,
    InlineOrderSerializer,
    PaymentSerializer,
    SignedItemSerializer,
)
from payments.signing import SignedItem
from payments.state_machines import PaymentEnvironment

SIGNATURE = "ab" * 64


def signed_item_data(**overrides):
    data = {
        "type": "repair",
        "data": {"device": "iPhone 8"},
        "title": "Screen repair",
        "quantity": 1,
        "price": "49.99",
        "sig": SIGNATURE,
    }
    data.update(overrides)
    return data


def charge_data(**overrides):
    data = {
        "card": {
            "name": "Jane Doe",
            "exp_month": 12,
            "exp_year": 2030,
            "card_number": "4444333322221111",
        },
        "billing_address": {
            "addressLine": ["1 High Street", "Flat 2"],
            "country": "GB",
            "city": "Cardiff",
            "postalCode": "CF10 1AA",
        },
    }
    data.update(overrides)
    return data


# =============================================================================
# Field Tests
# =============================================================================


class TestEnvironmentField:
    @pytest.mark.parametrize("value", ["TEST", "test", "Test"])
    def test_case_insensitive(self, value):
        serializer = CreatePaymentSerializer(
            data={
                "environment": value,
                "customer_id": str(uuid.uuid4()),
                "items": [
                    {"item_type": "repair", "item_data": {}, "title": "Screen", "quantity": 1, "price": "1"}
                ],
            }
        )

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["environment"] == PaymentEnvironment.TEST

    def test_rejects_unknown_environment(self):
        serializer = InlineOrderSerializer(
            data={
                "environment": "STAGING",
                "customer": {"email": "jane@example.com"},
                "items": [signed_item_data()],
            }
        )

        assert not serializer.is_valid()
        assert "environment" in serializer.errors


class TestSignedItemSerializer:
    def test_builds_signed_item_in_minor_units(self):
        serializer = SignedItemSerializer(data=signed_item_data())
        assert serializer.is_valid(), serializer.errors

        item = SignedItemSerializer.build(serializer.validated_data)

        assert item == SignedItem(
            item_type="repair",
            item_data={"device": "iPhone 8"},
            title="Screen repair",
            quantity=1,
            price_minor_units=4999,
            signature=SIGNATURE,
        )

    def test_signature_is_lowercased(self):
        serializer = SignedItemSerializer(data=signed_item_data(sig="AB" * 64))

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["sig"] == SIGNATURE

    @pytest.mark.parametrize("sig", ["zz" * 64, "ab" * 63, "ab" * 65, ""])
    def test_rejects_malformed_signature(self, sig):
        serializer = SignedItemSerializer(data=signed_item_data(sig=sig))

        assert not serializer.is_valid()
        assert "sig" in serializer.errors

    def test_rejects_zero_quantity(self):
        serializer = SignedItemSerializer(data=signed_item_data(quantity=0))

        assert not serializer.is_valid()

    def test_rejects_negative_price(self):
        serializer = SignedItemSerializer(data=signed_item_data(price="-0.01"))

        assert not serializer.is_valid()
        assert "price" in serializer.errors


# =============================================================================
# Charge Serializer Tests
# =============================================================================


class TestChargeSerializer:
    @pytest.fixture
    def shopper(self):
        return ShopperContext(ip_address="203.0.113.7", user_agent="Mozilla/5.0", session_id="s-1")

    def test_card_charge_request(self, shopper):
        serializer = ChargeSerializer(
            data=charge_data(accepts="text/html", email="jane@example.com", total="89.99")
        )
        assert serializer.is_valid(), serializer.errors
        payment_id = uuid.uuid4()

        request = serializer.to_charge_request(payment_id, shopper, None)

        assert request.payment_id == payment_id
        assert request.card.card_number == "4444333322221111"
        assert request.card.cvc is None
        assert request.token is None
        assert request.order is None
        assert request.total_minor_units == 8999
        assert request.customer.email == "jane@example.com"
        assert request.billing_address.address_lines == ["1 High Street", "Flat 2"]
        assert request.billing_address.postal_code == "CF10 1AA"
        assert request.shopper.accept_header == "text/html"

    def test_token_charge_request(self, shopper):
        data = charge_data(token="TEST_SU_123")
        del data["card"]
        serializer = ChargeSerializer(data=data)
        assert serializer.is_valid(), serializer.errors

        request = serializer.to_charge_request(uuid.uuid4(), shopper, None)

        assert request.card is None
        assert request.token == "TEST_SU_123"
        assert request.total_minor_units is None

    def test_requires_card_or_token(self):
        data = charge_data()
        del data["card"]

        assert not ChargeSerializer(data=data).is_valid()

    def test_rejects_card_and_token(self):
        assert not ChargeSerializer(data=charge_data(token="TEST_SU_123")).is_valid()

    def test_rejects_more_than_three_address_lines(self):
        data = charge_data()
        data["billing_address"]["addressLine"] = ["a", "b", "c", "d"]

        assert not ChargeSerializer(data=data).is_valid()

    def test_inline_order(self, shopper):
        session_customer = uuid.uuid4()
        serializer = ChargeSerializer(
            data=charge_data(
                payment={
                    "environment": "live",
                    "customer": {"email": "jane@example.com", "name": "Jane Doe"},
                    "items": [signed_item_data(), signed_item_data(title="Case", price="20")],
                }
            )
        )
        assert serializer.is_valid(), serializer.errors

        request = serializer.to_charge_request(uuid.uuid4(), shopper, session_customer)

        order = request.order
        assert order.environment == PaymentEnvironment.LIVE
        assert order.customer_email == "jane@example.com"
        assert order.customer_name == "Jane Doe"
        assert order.customer_phone == ""
        assert [item.price_minor_units for item in order.items] == [4999, 2000]
        assert request.session_customer_id == session_customer

    def test_inline_order_requires_items(self):
        serializer = ChargeSerializer(
            data=charge_data(
                payment={"environment": "TEST", "customer": {"email": "jane@example.com"}, "items": []}
            )
        )

        assert not serializer.is_valid()


# =============================================================================
# Create Payment Serializer Tests
# =============================================================================


class TestCreatePaymentSerializer:
    def test_build_items(self):
        serializer = CreatePaymentSerializer(
            data={
                "environment": "TEST",
                "customer_id": str(uuid.uuid4()),
                "items": [
                    {
                        "item_type": "repair",
                        "item_data": {"device": "iPhone 8"},
                        "title": "Screen repair",
                        "quantity": 2,
                        "price": "0.125",
                    }
                ],
            }
        )
        assert serializer.is_valid(), serializer.errors

        (item,) = serializer.build_items()

        assert item.price_minor_units == 13
        assert item.quantity == 2
        assert item.item_data == {"device": "iPhone 8"}


# =============================================================================
# Payment Display Tests
# =============================================================================


class TestPaymentSerializer:
    def test_representation(self, open_payment, identity_user):
        data = PaymentSerializer(open_payment, context={"customer": identity_user}).data

        assert data["state"] == "OPEN"
        assert data["environment"] == "TEST"
        prices = [(item["title"], str(item["price"])) for item in data["items"]]
        assert prices == [("Screen repair", "49.99"), ("Case", "20.00")]
        assert data["customer"]["request_name"] is False
        assert data["customer"]["request_email"] is False
        assert data["customer"]["request_phone"] is False

    def test_customer_missing_details(self, open_payment, identity_user):
        identity_user.email = None
        identity_user.first_name = None
        identity_user.attributes = {}

        customer = PaymentSerializer(open_payment, context={"customer": identity_user}).data["customer"]

        assert customer["request_name"] is True
        assert customer["request_email"] is True
        assert customer["request_phone"] is True
