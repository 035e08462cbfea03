"""
DRF views for payments app.

This module provides API views for:
- Payment creation by trusted ordering systems
- Payment display for the checkout page
- Card charge submission (SubmitCharge)
- 3DS challenge form data and completion

Related files:
    - services/: PaymentStore, PaymentStateMachine
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/new/ - Create payment (bearer, create-payments)
    GET /api/v1/payments/<id>/ - Get payment (bearer view-payments or owner)
    POST /api/v1/payments/worldpay/<id>/ - Submit card charge
    GET /api/v1/payments/3ds/<id>/ - Outstanding 3DS challenge
    POST /api/v1/payments/3ds-complete/<id>/ - Issuer 3DS callback

Security:
    - Payment creation requires a bearer token with the create-payments role
    - Payment display requires the view-payments role or the owning customer
    - Charges are anonymous; inline orders are trusted only when signed
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from django.apps import apps
from django.conf import settings
from django.urls import reverse
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import PermissionDeniedError
from core.helpers import get_client_ip, get_user_agent
from identity.exceptions import NotAuthenticatedError
from identity.permissions import HasClientRole, get_bearer_token
from identity.session import customer_id_from_session, get_shopper_session_id
from payments.adapters import ShopperContext
from payments.services import PaymentStore, build_payment_state_machine
from payments.state_machines import ChargeStatus

from .serializers import (
    ChargeResponseSerializer,
    ChargeSerializer,
    CreatePaymentResponseSerializer,
    CreatePaymentSerializer,
    PaymentSerializer,
    ThreedsChallengeSerializer,
    ThreedsCompleteResponseSerializer,
    ThreedsCompleteSerializer,
)

logger = logging.getLogger(__name__)

VIEW_PAYMENTS_ROLE = "view-payments"
CREATE_PAYMENTS_ROLE = "create-payments"


def _identity_config():
    return apps.get_app_config("identity")


def _login_frame_url(request) -> str:
    """Login page that returns the shopper to checkout afterwards."""
    next_url = request.build_absolute_uri(settings.CHECKOUT_LOGIN_COMPLETE_URL)
    login_url = request.build_absolute_uri(settings.CHECKOUT_LOGIN_URL)
    return f"{login_url}?{urlencode({'next': next_url})}"


def _threeds_frame_url(request, payment_id) -> str:
    return request.build_absolute_uri(
        settings.CHECKOUT_THREEDS_URL.format(payment_id=payment_id)
    )


class CreatePaymentView(APIView):
    """
    Create a payment for a customer.

    POST /api/v1/payments/new/

    Request body:
        {
            "environment": "TEST",
            "customer_id": "7d7a...",
            "items": [
                {"item_type": "repair", "item_data": {...}, "title": "Screen",
                 "quantity": 1, "price": "49.99"}
            ]
        }

    Returns:
        {"id": "<payment id>"}
    """

    permission_classes = [HasClientRole]
    required_client_role = CREATE_PAYMENTS_ROLE

    @extend_schema(
        operation_id="create_payment",
        summary="Create payment",
        request=CreatePaymentSerializer,
        responses={
            201: CreatePaymentResponseSerializer,
            400: OpenApiResponse(description="Invalid payment data"),
            401: OpenApiResponse(description="Bearer token missing"),
            403: OpenApiResponse(description="Token lacks the create-payments role"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = CreatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment = PaymentStore.create_payment(
            environment=serializer.validated_data["environment"],
            customer_id=serializer.validated_data["customer_id"],
            items=serializer.build_items(),
        )
        return Response(
            CreatePaymentResponseSerializer({"id": payment.id}).data,
            status=status.HTTP_201_CREATED,
        )


class PaymentDetailView(APIView):
    """
    Get a payment for the checkout page.

    GET /api/v1/payments/<id>/

    Callers with a bearer token need the view-payments role. Otherwise
    the customer logged in on the session must own the payment.
    """

    @extend_schema(
        operation_id="get_payment",
        summary="Get payment",
        responses={
            200: PaymentSerializer,
            401: OpenApiResponse(description="Not logged in"),
            403: OpenApiResponse(description="Payment belongs to another customer"),
            404: OpenApiResponse(description="Payment not found"),
        },
        tags=["Payments"],
    )
    def get(self, request, payment_id):
        get_shopper_session_id(request)
        identity = _identity_config()

        token = get_bearer_token(request)
        payment = PaymentStore.get_payment(payment_id)
        if token is not None:
            identity.oauth_client.verify_token(token, VIEW_PAYMENTS_ROLE)
        else:
            customer_id = customer_id_from_session(request, identity.oauth_client)
            if customer_id is None:
                raise NotAuthenticatedError("Login required")
            if customer_id != payment.customer_id:
                logger.warning(
                    "Payment requested by another customer",
                    extra={"payment_id": str(payment.id), "customer_id": str(customer_id)},
                )
                raise PermissionDeniedError("Payment belongs to another customer")

        customer = identity.keycloak_client.get_user(payment.customer_id)
        return Response(PaymentSerializer(payment, context={"customer": customer}).data)


class WorldpayChargeView(APIView):
    """
    Submit a card charge for a payment.

    POST /api/v1/payments/worldpay/<id>/

    The payment may not exist yet: the body can carry an inline signed
    order under "payment", which is verified and created under <id>.

    Returns:
        {"state": "SUCCESS" | "FAILED" | "3DS" | "EXISTING_ACCOUNT" | "UNKNOWN",
         "frame": "<url>"}   # frame only for 3DS and EXISTING_ACCOUNT
    """

    @extend_schema(
        operation_id="submit_worldpay_charge",
        summary="Submit card charge",
        request=ChargeSerializer,
        responses={
            200: ChargeResponseSerializer,
            400: OpenApiResponse(description="Invalid charge or signature"),
            404: OpenApiResponse(description="Payment not found"),
            409: OpenApiResponse(description="Payment already processed"),
            502: OpenApiResponse(description="Gateway or identity provider unavailable"),
        },
        tags=["Payments"],
    )
    def post(self, request, payment_id):
        serializer = ChargeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        shopper = ShopperContext(
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            session_id=get_shopper_session_id(request),
        )
        session_customer_id = None
        if "payment" in serializer.validated_data:
            session_customer_id = customer_id_from_session(
                request, _identity_config().oauth_client
            )

        result = build_payment_state_machine().submit_charge(
            serializer.to_charge_request(payment_id, shopper, session_customer_id)
        )

        body = {"state": result.status.value}
        if result.status == ChargeStatus.THREEDS:
            body["frame"] = _threeds_frame_url(request, result.payment_id)
        elif result.status == ChargeStatus.EXISTING_ACCOUNT:
            body["frame"] = _login_frame_url(request)
        return Response(ChargeResponseSerializer(body).data)


class ThreedsChallengeView(APIView):
    """
    Data for the hosted 3DS form.

    GET /api/v1/payments/3ds/<id>/

    Returns the issuer redirect URL, the one-time token, the gateway
    order code and the URL the issuer should post the result back to.
    """

    @extend_schema(
        operation_id="get_threeds_challenge",
        summary="Get 3DS challenge",
        responses={
            200: ThreedsChallengeSerializer,
            404: OpenApiResponse(description="Payment or challenge not found"),
        },
        tags=["Payments"],
    )
    def get(self, request, payment_id):
        get_shopper_session_id(request)
        payment = PaymentStore.get_payment(payment_id)
        challenge = PaymentStore.get_latest_challenge(payment)

        term_url = request.build_absolute_uri(
            reverse("payments:threeds-complete", kwargs={"payment_id": payment.id})
        )
        return Response(
            ThreedsChallengeSerializer(challenge, context={"term_url": term_url}).data
        )


class ThreedsCompleteView(APIView):
    """
    Issuer callback after the 3DS challenge.

    POST /api/v1/payments/3ds-complete/<id>/

    Form body:
        MD: Gateway order code
        PaRes: Issuer response code

    Returns:
        {"approved": true | false}
    """

    parser_classes = [FormParser, MultiPartParser, JSONParser]

    @extend_schema(
        operation_id="complete_threeds_challenge",
        summary="Complete 3DS challenge",
        request=ThreedsCompleteSerializer,
        responses={
            200: ThreedsCompleteResponseSerializer,
            400: OpenApiResponse(description="Missing PaRes or mismatched order code"),
            404: OpenApiResponse(description="Payment or challenge not found"),
            502: OpenApiResponse(description="Gateway unavailable"),
        },
        tags=["Payments"],
    )
    def post(self, request, payment_id):
        serializer = ThreedsCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        shopper = ShopperContext(
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            accept_header=request.META.get("HTTP_ACCEPT") or "*/*",
            session_id=get_shopper_session_id(request, create=False),
        )
        result = build_payment_state_machine().complete_threeds_challenge(
            payment_id=payment_id,
            response_code=serializer.validated_data["PaRes"],
            order_code=serializer.validated_data["MD"] or None,
            shopper=shopper,
        )
        return Response(ThreedsCompleteResponseSerializer({"approved": result.approved}).data)
