"""
Payment state machine for card charges and 3DS reconciliation.

This module provides the PaymentStateMachine class which takes a payment
from OPEN to PAID through the Worldpay gateway, including the optional
3DS step-up in between.

State Flow:
    OPEN -> PAID -> COMPLETE

    A payment awaiting 3DS is OPEN with an outstanding ThreedsChallenge.
    COMPLETE is set by fulfilment, never here.

Failure window:
    The gateway call and the local PAID transition are not one
    transaction. If the gateway captures and the PAID transition then
    fails, the payment stays OPEN with money taken. That case is logged
    at CRITICAL with the payment id and gateway order code so it can be
    reconciled by hand. Resubmitting an OPEN payment reuses the payment
    id as customerOrderCode.

Usage:
    from payments.services import ChargeRequest, build_payment_state_machine

    machine = build_payment_state_machine()
    result = machine.submit_charge(
        ChargeRequest(
            payment_id=payment_id,
            billing_address=billing_address,
            shopper=shopper,
            card=card,
        )
    )
    if result.status == ChargeStatus.THREEDS:
        ...  # send the shopper to the 3DS form
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from django.apps import apps
from django.db import transaction

from core.exceptions import BaseApplicationError
from core.services import BaseService
from identity.services import EXISTING_ACCOUNT, CustomerDetails, CustomerIdentityService
from payments.adapters import (
    BillingAddress,
    CardDetails,
    GatewayOrder,
    GatewayOutcome,
    OutcomeKind,
    ShopperContext,
    WorldpayAdapter,
)
from payments.adapters.worldpay_adapter import describe_items
from payments.exceptions import (
    OrderTotalMismatchError,
    PaymentNotFoundError,
    PaymentValidationError,
)
from payments.money import order_total
from payments.services.payment_store import PaymentStore
from payments.signing import SignedItem, SignedOrderVerifier
from payments.state_machines import ChargeStatus

if TYPE_CHECKING:
    from identity.clients import IdentityUser
    from payments.models import Payment, PaymentItem


# =============================================================================
# Parameter Types
# =============================================================================


@dataclass
class InlineOrder:
    """
    Signed order submitted together with the first charge.

    Attributes:
        environment: Gateway environment for the new payment
        items: Signed line items, in submission order
        customer_email: Email used to resolve or create the customer
        customer_name: Name for a newly created customer
        customer_phone: Phone for a newly created customer
    """

    environment: str
    items: list[SignedItem]
    customer_email: str
    customer_name: str = ""
    customer_phone: str = ""

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if not self.items:
            raise ValueError("an inline order needs at least one item")


@dataclass
class ChargeRequest:
    """
    Parameters for SubmitCharge.

    Attributes:
        payment_id: Existing payment id, or the id to create an inline order under
        billing_address: Billing address from the checkout form
        shopper: Shopper network metadata
        card: Raw card (mutually exclusive with token)
        token: Stored gateway token (mutually exclusive with card)
        customer: Contact details used to fill gaps in the customer profile
        order: Inline signed order, when the payment does not exist yet
        session_customer_id: Customer logged in on this browser session
        total_minor_units: Total the client displayed, checked before charging
    """

    payment_id: uuid.UUID
    billing_address: BillingAddress
    shopper: ShopperContext
    card: CardDetails | None = None
    token: str | None = None
    customer: CustomerDetails = field(default_factory=CustomerDetails)
    order: InlineOrder | None = None
    session_customer_id: uuid.UUID | None = None
    total_minor_units: int | None = None

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if (self.card is None) == (self.token is None):
            raise ValueError("exactly one of card or token is required")


@dataclass
class ChargeResult:
    """
    Outcome of SubmitCharge.

    Attributes:
        status: SUCCESS, FAILED, 3DS, EXISTING_ACCOUNT or UNKNOWN
        payment_id: Payment the charge was for
        payment: The payment after the charge (None for EXISTING_ACCOUNT)
        order_code: Gateway order code when the gateway was called
        raw_status: Gateway status string when the gateway was called
    """

    status: ChargeStatus
    payment_id: uuid.UUID
    payment: Payment | None = None
    order_code: str | None = None
    raw_status: str | None = None


@dataclass
class ThreedsResult:
    """Outcome of CompleteThreedsChallenge."""

    approved: bool
    payment_id: uuid.UUID
    order_code: str
    raw_status: str | None = None


OUTCOME_STATUSES = {
    OutcomeKind.CAPTURED: ChargeStatus.SUCCESS,
    OutcomeKind.CHALLENGE_REQUIRED: ChargeStatus.THREEDS,
    OutcomeKind.DECLINED: ChargeStatus.FAILED,
    OutcomeKind.UNKNOWN: ChargeStatus.UNKNOWN,
}


# =============================================================================
# Payment State Machine
# =============================================================================


class PaymentStateMachine(BaseService):
    """
    Drives payments through charge, 3DS step-up and capture.

    Collaborators are injected so tests can replace the gateway, the
    identity directory and the notifier:
        gateway: object with create_order() and complete_threeds()
        identity: CustomerIdentityService
        store: PaymentStore (class)
        notifier: Celery task with delay(payment_id)
        verifier: SignedOrderVerifier (class)

    Guards:
        Signature and state checks run before any gateway call. The
        OPEN -> PAID transition is re-checked under a row lock, so of two
        concurrent charges only one can mark the payment paid.
    """

    def __init__(
        self,
        identity: CustomerIdentityService,
        gateway: Any = None,
        store: type[PaymentStore] | None = None,
        notifier: Any = None,
        verifier: type[SignedOrderVerifier] | None = None,
    ):
        self.identity = identity
        self.gateway = gateway or WorldpayAdapter
        self.store = store or PaymentStore
        self.verifier = verifier or SignedOrderVerifier
        if notifier is None:
            from payments.tasks import send_payment_notification

            notifier = send_payment_notification
        self.notifier = notifier

    # =========================================================================
    # SubmitCharge
    # =========================================================================

    def submit_charge(self, request: ChargeRequest) -> ChargeResult:
        """
        Charge a payment, creating it first for inline signed orders.

        Args:
            request: Charge parameters

        Returns:
            ChargeResult. EXISTING_ACCOUNT means nothing was created or
            charged and the shopper has to log in.

        Raises:
            PaymentNotFoundError: Unknown payment and no inline order
            AlreadyProcessedError: Payment is not OPEN
            InvalidSignatureError: Inline order failed verification
            OrderTotalMismatchError: Client total differs from stored items
            GatewayUnavailableError: Gateway unreachable or non-2xx
            IdentityProviderError: Directory calls failed
            StoreError: Database failure
        """
        logger = self.get_logger()
        log_context = {"payment_id": str(request.payment_id), "stage": "submit_charge"}

        payment = self.store.find_payment(request.payment_id)
        if payment is not None:
            self.store.ensure_open(payment)
        elif request.order is not None:
            payment = self._create_inline_payment(request)
            if payment is None:
                return ChargeResult(
                    status=ChargeStatus.EXISTING_ACCOUNT,
                    payment_id=request.payment_id,
                )
        else:
            raise PaymentNotFoundError(
                f"Payment {request.payment_id} not found",
                details={"payment_id": str(request.payment_id)},
            )

        items = self.store.get_items(payment)
        total = order_total((item.price_minor_units, item.quantity) for item in items)
        if request.total_minor_units is not None and request.total_minor_units != total:
            logger.warning(
                "Charge rejected: order total mismatch",
                extra={
                    **log_context,
                    "client_total": request.total_minor_units,
                    "stored_total": total,
                },
            )
            raise OrderTotalMismatchError(
                "Order total does not match the payment items",
                details={
                    "payment_id": str(payment.id),
                    "client_total": request.total_minor_units,
                    "stored_total": total,
                },
            )

        user = self.identity.prepare_customer(
            payment.customer_id,
            request.customer,
            billing_phone=request.billing_address.phone,
        )
        self.store.record_card(payment.customer_id, card=request.card, token=request.token)

        order = self._build_order(payment, items, total, user, request)
        outcome = self.gateway.create_order(order, payment.environment)
        status = OUTCOME_STATUSES[outcome.kind]

        if outcome.is_captured:
            payment = self._capture(payment, outcome)
        elif outcome.kind == OutcomeKind.CHALLENGE_REQUIRED:
            self.store.create_challenge(
                payment,
                one_time_token=outcome.one_time_token,
                redirect_url=outcome.redirect_url,
                order_code=outcome.order_code,
            )
        elif outcome.kind == OutcomeKind.UNKNOWN:
            logger.warning(
                "Charge returned an unrecognised gateway status",
                extra={
                    **log_context,
                    "order_code": outcome.order_code,
                    "raw_status": outcome.raw_status,
                },
            )

        logger.info(
            "Charge submitted",
            extra={
                **log_context,
                "order_code": outcome.order_code,
                "status": status,
                "amount_minor_units": total,
                "environment": payment.environment,
            },
        )
        return ChargeResult(
            status=status,
            payment_id=payment.id,
            payment=payment,
            order_code=outcome.order_code,
            raw_status=outcome.raw_status,
        )

    def _create_inline_payment(self, request: ChargeRequest) -> Payment | None:
        """
        Verify an inline order and create its payment.

        Returns None when the customer has to log in first.
        """
        order = request.order
        items = self.verifier.verify(order.items, self.store.get_signing_tokens())

        result = self.identity.resolve_customer(
            session_customer_id=request.session_customer_id,
            email=order.customer_email,
            name=order.customer_name,
            phone=order.customer_phone,
        )
        if not result.success:
            if result.error_code == EXISTING_ACCOUNT:
                return None
            raise PaymentValidationError(result.error or "Customer could not be resolved")

        return self.store.create_payment(
            environment=order.environment,
            customer_id=result.data,
            items=items,
            payment_id=request.payment_id,
        )

    @staticmethod
    def _build_order(
        payment: Payment,
        items: list[PaymentItem],
        total: int,
        user: IdentityUser,
        request: ChargeRequest,
    ) -> GatewayOrder:
        return GatewayOrder(
            payment_id=str(payment.id),
            description=describe_items([item.title for item in items]),
            amount_minor_units=total,
            customer_name=" ".join(part for part in (user.first_name, user.last_name) if part),
            customer_email=user.email or "",
            billing_address=request.billing_address,
            shopper=request.shopper,
            card=request.card,
            token=request.token,
        )

    # =========================================================================
    # CompleteThreedsChallenge
    # =========================================================================

    def complete_threeds_challenge(
        self,
        payment_id: uuid.UUID,
        response_code: str,
        order_code: str | None,
        shopper: ShopperContext,
    ) -> ThreedsResult:
        """
        Submit the issuer's 3DS response for a payment.

        The challenge is deleted before the gateway is called. A failed or
        interrupted completion cannot be replayed; the shopper starts a
        new charge instead.

        A payment that is no longer OPEN is rejected after its challenge is
        consumed and before the gateway is called.

        Args:
            payment_id: Payment the challenge belongs to
            response_code: PaRes from the issuer
            order_code: MD from the issuer, checked against the challenge
            shopper: Shopper network metadata

        Returns:
            ThreedsResult with approved=True when the gateway captured

        Raises:
            PaymentNotFoundError: Unknown payment
            ThreedsChallengeNotFoundError: No outstanding challenge
            PaymentValidationError: order_code does not match the challenge
            AlreadyProcessedError: Payment is PAID or COMPLETE
            GatewayUnavailableError: Gateway unreachable or non-2xx
        """
        logger = self.get_logger()
        log_context = {"payment_id": str(payment_id), "stage": "complete_threeds"}

        payment = self.store.get_payment(payment_id)
        challenge = self.store.consume_challenge(payment)
        self.store.ensure_open(payment)

        if order_code and order_code != challenge.order_code:
            logger.warning(
                "3DS completion rejected: order code mismatch",
                extra={
                    **log_context,
                    "order_code": challenge.order_code,
                    "supplied_order_code": order_code,
                },
            )
            raise PaymentValidationError(
                "Order code does not match the 3DS challenge",
                details={"payment_id": str(payment_id)},
            )

        outcome = self.gateway.complete_threeds(
            challenge.order_code,
            response_code,
            shopper,
            payment.environment,
        )

        approved = outcome.is_captured
        if approved:
            self._capture(payment, outcome)
        else:
            logger.info(
                "3DS completion not approved",
                extra={
                    **log_context,
                    "order_code": outcome.order_code,
                    "raw_status": outcome.raw_status,
                },
            )

        return ThreedsResult(
            approved=approved,
            payment_id=payment.id,
            order_code=outcome.order_code,
            raw_status=outcome.raw_status,
        )

    # =========================================================================
    # Capture
    # =========================================================================

    def _capture(self, payment: Payment, outcome: GatewayOutcome) -> Payment:
        """
        Record a gateway capture and schedule the order notification.

        Raises:
            BaseApplicationError: The PAID transition failed after the
                gateway took the money (logged CRITICAL)
        """
        try:
            payment = self.store.mark_paid(
                payment.id,
                payment_method=outcome.payment_method,
                order_code=outcome.order_code,
            )
        except BaseApplicationError as e:
            self.get_logger().critical(
                "Gateway captured but payment was not marked paid",
                extra={
                    "payment_id": str(payment.id),
                    "order_code": outcome.order_code,
                    "payment_method": outcome.payment_method,
                    "error_code": e.error_code,
                    "stage": "mark_paid",
                },
                exc_info=True,
            )
            raise

        self._schedule_notification(payment.id)
        return payment

    def _schedule_notification(self, payment_id: uuid.UUID) -> None:
        def enqueue() -> None:
            try:
                self.notifier.delay(str(payment_id))
            except Exception:
                self.get_logger().error(
                    "Failed to queue payment notification",
                    extra={"payment_id": str(payment_id), "stage": "notify"},
                    exc_info=True,
                )

        transaction.on_commit(enqueue)


def build_payment_state_machine() -> PaymentStateMachine:
    """Wire the state machine to the process-wide identity clients."""
    identity_config = apps.get_app_config("identity")
    return PaymentStateMachine(
        identity=CustomerIdentityService(identity_config.keycloak_client),
    )
