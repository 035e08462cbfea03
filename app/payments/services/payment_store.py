"""
PaymentStore service owning all payment persistence.

Every write to payments, items, cards and 3DS challenges goes through this
service, each inside its own transaction. The state machine never saves
models directly.

Concurrency:
    The OPEN -> PAID transition locks the payment row with
    select_for_update() and re-checks the state. Of two concurrent charges
    against one payment only the first observes OPEN; the second gets
    AlreadyProcessedError.

Usage:
    from payments.services import PaymentStore

    payment = PaymentStore.get_payment(payment_id)
    PaymentStore.ensure_open(payment)
    payment = PaymentStore.mark_paid(payment.id, "VISA ****1111", "wp-order-1")
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import DatabaseError, IntegrityError
from django.utils.crypto import salted_hmac

from core.services import BaseService
from payments.exceptions import (
    AlreadyProcessedError,
    PaymentNotFoundError,
    PaymentValidationError,
    StoreError,
    ThreedsChallengeNotFoundError,
)
from payments.models import (
    CardRecord,
    Payment,
    PaymentItem,
    SigningToken,
    ThreedsChallenge,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from payments.adapters import CardDetails
    from payments.signing import VerifiedItem


CARD_FINGERPRINT_SALT = "payments.card_record.fingerprint"


def card_fingerprint(value: str) -> str:
    """Keyed SHA-256 fingerprint of a card number or token (64 hex chars)."""
    return salted_hmac(CARD_FINGERPRINT_SALT, value, algorithm="sha256").hexdigest()


class PaymentStore(BaseService):
    """
    Durable store for payments and their satellite records.

    Methods:
        get_payment: Load a payment or raise PaymentNotFoundError
        find_payment: Load a payment or return None
        create_payment: Create a payment and its items atomically
        ensure_open: Reject non-OPEN payments before any gateway call
        mark_paid: Locked OPEN -> PAID transition
        record_card: Idempotent card upsert
        create_challenge / get_latest_challenge / consume_challenge:
            3DS challenge lifecycle
        get_signing_tokens: Active signed order keys
    """

    # =========================================================================
    # Payments
    # =========================================================================

    @classmethod
    def find_payment(cls, payment_id: uuid.UUID) -> Payment | None:
        return Payment.objects.filter(id=payment_id).first()

    @classmethod
    def get_payment(cls, payment_id: uuid.UUID) -> Payment:
        """
        Load a payment by id.

        Raises:
            PaymentNotFoundError: No payment with this id
        """
        payment = cls.find_payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )
        return payment

    @classmethod
    def get_items(cls, payment: Payment) -> list[PaymentItem]:
        return list(payment.items.order_by("position"))

    @classmethod
    def create_payment(
        cls,
        environment: str,
        customer_id: uuid.UUID,
        items: Sequence[VerifiedItem],
        payment_id: uuid.UUID | None = None,
    ) -> Payment:
        """
        Create a payment and all of its items in one transaction.

        Args:
            environment: Gateway environment
            customer_id: Identity provider user id
            items: Line items (already verified where a signature applies)
            payment_id: Caller-chosen id for inline orders; generated if None

        Returns:
            The created payment, in OPEN state

        Raises:
            PaymentValidationError: No items supplied
            AlreadyProcessedError: A payment with this id was created
                concurrently
            StoreError: Database failure
        """
        logger = cls.get_logger()
        if not items:
            raise PaymentValidationError("A payment needs at least one item")

        payment_id = payment_id or uuid.uuid4()
        try:
            with cls.atomic():
                payment = Payment.objects.create(
                    id=payment_id,
                    environment=environment,
                    customer_id=customer_id,
                )
                PaymentItem.objects.bulk_create(
                    [
                        PaymentItem(
                            payment=payment,
                            position=position,
                            item_type=item.item_type,
                            item_data=item.item_data,
                            title=item.title,
                            quantity=item.quantity,
                            price_minor_units=item.price_minor_units,
                        )
                        for position, item in enumerate(items)
                    ]
                )
        except IntegrityError as e:
            logger.warning(
                "Payment already exists",
                extra={"payment_id": str(payment_id), "stage": "create_payment"},
            )
            raise AlreadyProcessedError(
                f"Payment {payment_id} already exists",
                details={"payment_id": str(payment_id)},
            ) from e
        except DatabaseError as e:
            logger.error(
                "Failed to create payment",
                extra={"payment_id": str(payment_id), "stage": "create_payment"},
                exc_info=True,
            )
            raise StoreError(
                "Failed to create payment",
                details={"payment_id": str(payment_id)},
            ) from e

        logger.info(
            "Payment created",
            extra={
                "payment_id": str(payment.id),
                "customer_id": str(customer_id),
                "environment": environment,
                "item_count": len(items),
            },
        )
        return payment

    @classmethod
    def ensure_open(cls, payment: Payment) -> None:
        """
        Reject a charge against a payment that is not OPEN.

        This is the unlocked pre-check run before any gateway call; the
        locked re-check happens in mark_paid().

        Raises:
            AlreadyProcessedError: Payment is PAID or COMPLETE
        """
        if not payment.is_open:
            cls.get_logger().warning(
                "Charge rejected: payment already processed",
                extra={"payment_id": str(payment.id), "state": payment.state},
            )
            raise AlreadyProcessedError(
                f"Payment {payment.id} is already {payment.state}",
                details={"payment_id": str(payment.id), "state": payment.state},
            )

    @classmethod
    def mark_paid(
        cls,
        payment_id: uuid.UUID,
        payment_method: str | None,
        order_code: str | None,
    ) -> Payment:
        """
        Transition a payment from OPEN to PAID.

        The row is locked for the duration of the transaction and its
        state re-read, so concurrent callers are serialized. Outstanding
        3DS challenges are deleted in the same transaction.

        Raises:
            PaymentNotFoundError: Payment vanished
            AlreadyProcessedError: Payment is no longer OPEN
            StoreError: Database failure
        """
        logger = cls.get_logger()
        log_context = {
            "payment_id": str(payment_id),
            "order_code": order_code,
            "stage": "mark_paid",
        }

        try:
            with cls.atomic():
                payment = Payment.objects.select_for_update().filter(id=payment_id).first()
                if payment is None:
                    raise PaymentNotFoundError(
                        f"Payment {payment_id} not found",
                        details={"payment_id": str(payment_id)},
                    )
                if not payment.is_open:
                    logger.warning(
                        "PAID transition rejected: payment already processed",
                        extra={**log_context, "state": payment.state},
                    )
                    raise AlreadyProcessedError(
                        f"Payment {payment_id} is already {payment.state}",
                        details={"payment_id": str(payment_id), "state": payment.state},
                    )

                payment.mark_paid(payment_method=payment_method, order_code=order_code)
                payment.save()
                ThreedsChallenge.objects.filter(payment=payment).delete()
        except DatabaseError as e:
            logger.error("Failed to mark payment paid", extra=log_context, exc_info=True)
            raise StoreError(
                "Failed to mark payment paid",
                details={"payment_id": str(payment_id), "order_code": order_code},
            ) from e

        logger.info(
            "Payment marked paid",
            extra={**log_context, "payment_method": payment_method},
        )
        return payment

    # =========================================================================
    # Cards
    # =========================================================================

    @classmethod
    def record_card(
        cls,
        customer_id: uuid.UUID,
        card: CardDetails | None = None,
        token: str | None = None,
    ) -> CardRecord:
        """
        Record a presented card or token, returning the existing record
        when the same card has been seen before.
        """
        if card is None and not token:
            raise PaymentValidationError("A card or token is required")

        if card is not None:
            defaults = {
                "customer_id": customer_id,
                "last4": card.card_number[-4:],
                "exp_month": card.exp_month,
                "exp_year": card.exp_year,
                "name_on_card": card.name,
            }
            fingerprint = card_fingerprint(card.card_number)
        else:
            defaults = {"customer_id": customer_id, "token": token}
            fingerprint = card_fingerprint(token)

        try:
            record, created = CardRecord.objects.get_or_create(
                fingerprint=fingerprint,
                defaults=defaults,
            )
        except DatabaseError as e:
            cls.get_logger().error(
                "Failed to record card",
                extra={"customer_id": str(customer_id), "stage": "record_card"},
                exc_info=True,
            )
            raise StoreError("Failed to record card") from e

        if created:
            cls.get_logger().info(
                "Card recorded",
                extra={"customer_id": str(customer_id), "card_record_id": str(record.id)},
            )
        return record

    # =========================================================================
    # 3DS Challenges
    # =========================================================================

    @classmethod
    def create_challenge(
        cls,
        payment: Payment,
        one_time_token: str,
        redirect_url: str,
        order_code: str,
    ) -> ThreedsChallenge:
        """
        Store a 3DS challenge, replacing any earlier one for the payment.

        Raises:
            StoreError: Database failure
        """
        try:
            with cls.atomic():
                ThreedsChallenge.objects.filter(payment=payment).delete()
                challenge = ThreedsChallenge.objects.create(
                    payment=payment,
                    one_time_token=one_time_token,
                    redirect_url=redirect_url,
                    order_code=order_code,
                )
        except DatabaseError as e:
            cls.get_logger().error(
                "Failed to store 3DS challenge",
                extra={
                    "payment_id": str(payment.id),
                    "order_code": order_code,
                    "stage": "create_challenge",
                },
                exc_info=True,
            )
            raise StoreError(
                "Failed to store 3DS challenge",
                details={"payment_id": str(payment.id), "order_code": order_code},
            ) from e
        return challenge

    @classmethod
    def get_latest_challenge(cls, payment: Payment) -> ThreedsChallenge:
        """
        Raises:
            ThreedsChallengeNotFoundError: No outstanding challenge
        """
        challenge = payment.threeds_challenges.order_by("-created_at").first()
        if challenge is None:
            raise ThreedsChallengeNotFoundError(
                f"No 3DS challenge for payment {payment.id}",
                details={"payment_id": str(payment.id)},
            )
        return challenge

    @classmethod
    def consume_challenge(cls, payment: Payment) -> ThreedsChallenge:
        """
        Take the latest challenge and delete every challenge of the payment.

        Challenges are single-use. Deletion commits before the caller talks
        to the gateway, so a failed completion cannot be replayed.

        Returns:
            The consumed challenge (no longer in the database)

        Raises:
            ThreedsChallengeNotFoundError: No outstanding challenge
        """
        with cls.atomic():
            challenge = (
                ThreedsChallenge.objects.select_for_update()
                .filter(payment=payment)
                .order_by("-created_at")
                .first()
            )
            if challenge is None:
                cls.get_logger().warning(
                    "3DS completion without outstanding challenge",
                    extra={"payment_id": str(payment.id)},
                )
                raise ThreedsChallengeNotFoundError(
                    f"No 3DS challenge for payment {payment.id}",
                    details={"payment_id": str(payment.id)},
                )
            ThreedsChallenge.objects.filter(payment=payment).delete()

        cls.get_logger().info(
            "3DS challenge consumed",
            extra={"payment_id": str(payment.id), "order_code": challenge.order_code},
        )
        return challenge

    # =========================================================================
    # Signing Tokens
    # =========================================================================

    @classmethod
    def get_signing_tokens(cls) -> list[bytes]:
        return [
            bytes(token)
            for token in SigningToken.objects.filter(is_active=True).values_list(
                "token", flat=True
            )
        ]
