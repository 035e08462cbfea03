"""
DRF serializers for payments app.

This module provides serializers for:
- Charge submission (card, billing address, optional inline signed order)
- Privileged payment creation
- Payment display for the checkout page
- 3DS challenge form data and completion

Related files:
    - services/payment_state_machine.py: ChargeRequest, InlineOrder
    - views.py: Payment API views

Design Decisions:
    - Prices cross the API as decimal currency units and are converted to
      integer minor units here; nothing past this module sees a Decimal
    - Environment and state are rendered upper-case on the wire
    - Request serializers build the service dataclasses directly

Usage:
    serializer = ChargeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    charge = serializer.to_charge_request(payment_id, shopper, customer_id)
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from rest_framework import serializers

from identity.services import CustomerDetails
from payments.adapters import BillingAddress, CardDetails
from payments.money import to_minor_units
from payments.services import ChargeRequest, InlineOrder
from payments.signing import SIGNATURE_BYTES, SignedItem, VerifiedItem
from payments.state_machines import PaymentEnvironment

if TYPE_CHECKING:
    from payments.adapters import ShopperContext


# =============================================================================
# Fields
# =============================================================================


class EnvironmentField(serializers.ChoiceField):
    """Payment environment, accepted in any case and rendered upper-case."""

    def __init__(self, **kwargs):
        super().__init__(choices=PaymentEnvironment.choices, **kwargs)

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = data.lower()
        return super().to_internal_value(data)

    def to_representation(self, value):
        return str(value).upper()


class PriceField(serializers.DecimalField):
    """Non-negative decimal price in currency units."""

    def __init__(self, **kwargs):
        kwargs.setdefault("max_digits", 14)
        kwargs.setdefault("decimal_places", None)
        kwargs.setdefault("min_value", Decimal("0"))
        super().__init__(**kwargs)


# =============================================================================
# Charge Serializers
# =============================================================================


class CardSerializer(serializers.Serializer):
    """Raw card details. Never stored."""

    name = serializers.CharField(max_length=255)
    exp_month = serializers.IntegerField(min_value=1, max_value=12)
    exp_year = serializers.IntegerField(min_value=2000, max_value=9999)
    card_number = serializers.RegexField(r"^\d{12,19}$")
    cvc = serializers.RegexField(r"^\d{3,4}$", required=False)


class BillingAddressSerializer(serializers.Serializer):
    """Billing address in the checkout form's field names."""

    addressLine = serializers.ListField(
        child=serializers.CharField(allow_blank=True, max_length=255),
        max_length=3,
        help_text="Up to three street lines",
    )
    country = serializers.CharField(max_length=2)
    city = serializers.CharField(max_length=255)
    postalCode = serializers.CharField(max_length=32)
    region = serializers.CharField(max_length=255, allow_blank=True, default="")
    phone = serializers.CharField(max_length=64, allow_blank=True, default="")

    @staticmethod
    def build(data: dict[str, Any]) -> BillingAddress:
        return BillingAddress(
            address_lines=list(data["addressLine"]),
            country=data["country"],
            city=data["city"],
            postal_code=data["postalCode"],
            region=data.get("region", ""),
            phone=data.get("phone", ""),
        )


class SignedItemSerializer(serializers.Serializer):
    """One line item of an inline order, signed by the ordering system."""

    type = serializers.CharField(max_length=255)
    data = serializers.JSONField()
    title = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    price = PriceField()
    sig = serializers.CharField(
        min_length=SIGNATURE_BYTES * 2,
        max_length=SIGNATURE_BYTES * 2,
        help_text="Hex-encoded HMAC-SHA512 of the item",
    )

    def validate_sig(self, value: str) -> str:
        try:
            bytes.fromhex(value)
        except ValueError as e:
            raise serializers.ValidationError("Signature must be hex encoded") from e
        return value.lower()

    @staticmethod
    def build(data: dict[str, Any]) -> SignedItem:
        return SignedItem(
            item_type=data["type"],
            item_data=data["data"],
            title=data["title"],
            quantity=data["quantity"],
            price_minor_units=to_minor_units(data["price"]),
            signature=data["sig"],
        )


class InlineCustomerSerializer(serializers.Serializer):
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=64, allow_blank=True, default="")
    name = serializers.CharField(max_length=255, allow_blank=True, default="")


class InlineOrderSerializer(serializers.Serializer):
    """Signed order supplied with the first charge of a new payment."""

    environment = EnvironmentField()
    customer = InlineCustomerSerializer()
    items = SignedItemSerializer(many=True, allow_empty=False)

    @staticmethod
    def build(data: dict[str, Any]) -> InlineOrder:
        return InlineOrder(
            environment=data["environment"],
            items=[SignedItemSerializer.build(item) for item in data["items"]],
            customer_email=data["customer"]["email"],
            customer_name=data["customer"].get("name", ""),
            customer_phone=data["customer"].get("phone", ""),
        )


class ChargeSerializer(serializers.Serializer):
    """
    SubmitCharge request body.

    Exactly one of card or token is required. payment carries an inline
    signed order for payments that do not exist yet. total, when given,
    must match the payment's stored items.
    """

    accepts = serializers.CharField(
        max_length=1024,
        allow_blank=True,
        default="*/*",
        help_text="Browser Accept header forwarded to the gateway",
    )
    email = serializers.EmailField(required=False, allow_null=True)
    phone = serializers.CharField(max_length=64, required=False, allow_null=True)
    first_name = serializers.CharField(max_length=255, required=False, allow_null=True)
    last_name = serializers.CharField(max_length=255, required=False, allow_null=True)
    card = CardSerializer(required=False)
    token = serializers.CharField(max_length=255, required=False)
    payment = InlineOrderSerializer(required=False)
    billing_address = BillingAddressSerializer()
    total = PriceField(required=False)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if ("card" in attrs) == ("token" in attrs):
            raise serializers.ValidationError("Exactly one of card or token is required")
        return attrs

    def to_charge_request(
        self,
        payment_id: uuid.UUID,
        shopper: ShopperContext,
        session_customer_id: uuid.UUID | None,
    ) -> ChargeRequest:
        data = self.validated_data
        card = data.get("card")
        total = data.get("total")
        shopper.accept_header = data.get("accepts") or shopper.accept_header
        return ChargeRequest(
            payment_id=payment_id,
            billing_address=BillingAddressSerializer.build(data["billing_address"]),
            shopper=shopper,
            card=CardDetails(**card) if card is not None else None,
            token=data.get("token"),
            customer=CustomerDetails(
                email=data.get("email"),
                first_name=data.get("first_name"),
                last_name=data.get("last_name"),
                phone=data.get("phone"),
            ),
            order=InlineOrderSerializer.build(data["payment"]) if "payment" in data else None,
            session_customer_id=session_customer_id,
            total_minor_units=to_minor_units(total) if total is not None else None,
        )


class ChargeResponseSerializer(serializers.Serializer):
    state = serializers.CharField(help_text="SUCCESS, FAILED, 3DS, EXISTING_ACCOUNT or UNKNOWN")
    frame = serializers.URLField(required=False, help_text="URL to load in the payment frame")


# =============================================================================
# Create Payment Serializers
# =============================================================================


class NewPaymentItemSerializer(serializers.Serializer):
    item_type = serializers.CharField(max_length=255)
    item_data = serializers.JSONField()
    title = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    price = PriceField()


class CreatePaymentSerializer(serializers.Serializer):
    """CreatePayment request body from a trusted ordering system."""

    environment = EnvironmentField()
    customer_id = serializers.UUIDField()
    items = NewPaymentItemSerializer(many=True, allow_empty=False)

    def build_items(self) -> list[VerifiedItem]:
        return [
            VerifiedItem(
                item_type=item["item_type"],
                item_data=item["item_data"],
                title=item["title"],
                quantity=item["quantity"],
                price_minor_units=to_minor_units(item["price"]),
            )
            for item in self.validated_data["items"]
        ]


class CreatePaymentResponseSerializer(serializers.Serializer):
    id = serializers.UUIDField()


# =============================================================================
# Payment Display Serializers
# =============================================================================


class PaymentItemSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    type = serializers.CharField(source="item_type", read_only=True)
    data = serializers.JSONField(source="item_data", read_only=True)
    title = serializers.CharField(read_only=True)
    price = serializers.DecimalField(
        max_digits=14,
        decimal_places=2,
        coerce_to_string=False,
        read_only=True,
    )
    quantity = serializers.IntegerField(read_only=True)


class PaymentCustomerSerializer(serializers.Serializer):
    """
    Customer block of the payment view.

    The request_* flags tell the checkout page which details it still has
    to ask for.
    """

    id = serializers.UUIDField(read_only=True)
    email = serializers.EmailField(read_only=True, allow_null=True)
    request_name = serializers.SerializerMethodField()
    request_email = serializers.SerializerMethodField()
    request_phone = serializers.SerializerMethodField()

    def get_request_name(self, obj) -> bool:
        return obj.first_name is None or obj.last_name is None

    def get_request_email(self, obj) -> bool:
        return obj.email is None

    def get_request_phone(self, obj) -> bool:
        return not obj.has_attribute("phone")


class PaymentSerializer(serializers.Serializer):
    """
    Payment view for the checkout page.

    Expects the directory entry of the customer in context["customer"].
    """

    id = serializers.UUIDField(read_only=True)
    timestamp = serializers.DateTimeField(source="created_at", read_only=True)
    state = serializers.SerializerMethodField()
    environment = EnvironmentField(read_only=True)
    payment_method = serializers.CharField(read_only=True, allow_null=True)
    customer = serializers.SerializerMethodField()
    items = serializers.SerializerMethodField()

    def get_state(self, obj) -> str:
        return str(obj.state).upper()

    def get_customer(self, obj) -> dict[str, Any]:
        return PaymentCustomerSerializer(self.context["customer"]).data

    def get_items(self, obj) -> list[dict[str, Any]]:
        return PaymentItemSerializer(obj.items.order_by("position"), many=True).data


# =============================================================================
# 3DS Serializers
# =============================================================================


class ThreedsChallengeSerializer(serializers.Serializer):
    """Data the hosted 3DS form posts to the issuer."""

    redirect_url = serializers.URLField(read_only=True)
    one_time_token = serializers.CharField(read_only=True)
    order_code = serializers.CharField(read_only=True)
    term_url = serializers.SerializerMethodField()

    def get_term_url(self, obj) -> str:
        return self.context["term_url"]


class ThreedsCompleteSerializer(serializers.Serializer):
    """Form fields the card issuer posts back after the challenge."""

    MD = serializers.CharField(max_length=255, allow_blank=True, required=False, default="")
    PaRes = serializers.CharField()


class ThreedsCompleteResponseSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
