"""
Payment and PaymentItem models.

Payment is the central entity tracking an order from creation through
capture at the gateway. PaymentItem rows are the immutable line items of
a payment, written in the same transaction as the payment itself.

Usage:
    from payments.models import Payment, PaymentItem
    from payments.state_machines import PaymentEnvironment

    payment = Payment.objects.create(
        customer_id=customer_id,
        environment=PaymentEnvironment.TEST,
    )
    PaymentItem.objects.create(
        payment=payment,
        item_type="repair",
        item_data={"device": "iPhone 8"},
        title="Screen repair",
        quantity=1,
        price_minor_units=4999,
    )

    # State transitions using django-fsm
    payment.mark_paid(payment_method="VISA ****1111", order_code="wp-123")
    payment.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Sum
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.money import from_minor_units
from payments.state_machines import PaymentEnvironment, PaymentState


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Central payment entity.

    Uses django-fsm for state machine management and optimistic
    locking via version field for concurrency control.

    State Flow:
        OPEN -> PAID -> COMPLETE

    An outstanding 3DS step-up is represented by a ThreedsChallenge row
    on an OPEN payment, not by a state value.

    Fields:
        customer_id: Identity provider user id of the paying customer
        environment: Gateway environment (selects test or live credentials)
        state: Current FSM state
        payment_method: Card descriptor recorded on capture
        gateway_order_code: Gateway order code recorded on capture
        paid_at: When the payment reached PAID
        version: Optimistic locking version

    Note:
        The state field is protected; it can only change through the
        transition methods below. Re-fetch the row instead of calling
        refresh_from_db() without a field list.
    """

    # ==========================================================================
    # Ownership & Environment
    # ==========================================================================

    customer_id = models.UUIDField(
        db_index=True,
        help_text="Identity provider user id of the paying customer",
    )

    environment = models.CharField(
        max_length=10,
        choices=PaymentEnvironment.choices,
        default=PaymentEnvironment.TEST,
        help_text="Gateway environment the payment is charged against",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=PaymentState.OPEN,
        choices=PaymentState.choices,
        protected=True,
        db_index=True,
        help_text="Current payment state",
    )

    # ==========================================================================
    # Capture Details
    # ==========================================================================

    payment_method = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Card descriptor reported by the gateway, e.g. 'VISA ****1111'",
    )

    gateway_order_code = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Gateway order code of the captured charge",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment reached PAID",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["customer_id", "state"], name="payment_customer_state_idx"),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.state}, {self.environment})"

    @property
    def is_open(self) -> bool:
        return self.state == PaymentState.OPEN

    def total_minor_units(self) -> int:
        """
        Sum of price x quantity over the payment's items, in minor units.

        Computed in the database with integer arithmetic.
        """
        total = self.items.aggregate(
            total=Sum(F("price_minor_units") * F("quantity"))
        )["total"]
        return total or 0

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=PaymentState.OPEN,
        target=PaymentState.PAID,
    )
    def mark_paid(self, payment_method: str | None = None, order_code: str | None = None):
        """
        Record a gateway capture.

        Transition: OPEN -> PAID

        Called by the payment store inside a row lock once the gateway
        reports the charge as captured or authorized.
        """
        self.payment_method = payment_method
        self.gateway_order_code = order_code
        self.paid_at = timezone.now()

    @transition(
        field=state,
        source=PaymentState.PAID,
        target=PaymentState.COMPLETE,
    )
    def complete(self):
        """
        Mark the order as fulfilled.

        Transition: PAID -> COMPLETE

        Set from the payment admin once the order is fulfilled, never by
        the charge flow.
        """
        pass


class PaymentItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable line item of a payment.

    Fields:
        payment: Owning payment
        item_type: Free-form type tag set by the ordering system
        item_data: Opaque JSON payload passed through unvalidated
        title: Display title
        quantity: Number of units (>= 1)
        price_minor_units: Unit price in minor units (pence)
        position: Order of the item within the payment, as submitted
    """

    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        related_name="items",
        help_text="Payment this item belongs to",
    )

    item_type = models.CharField(
        max_length=255,
        help_text="Free-form item type tag",
    )

    item_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Opaque item payload from the ordering system",
    )

    title = models.CharField(
        max_length=255,
        help_text="Display title",
    )

    quantity = models.PositiveIntegerField(
        help_text="Number of units",
    )

    price_minor_units = models.BigIntegerField(
        help_text="Unit price in minor units (e.g. pence)",
    )

    position = models.PositiveIntegerField(
        default=0,
        help_text="Zero-based position in the submitted order",
    )

    class Meta:
        ordering = ["payment", "position"]
        verbose_name = "Payment Item"
        verbose_name_plural = "Payment Items"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="payment_item_quantity_positive",
            ),
            models.UniqueConstraint(
                fields=["payment", "position"],
                name="payment_item_unique_position",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.quantity}x {self.title} @{self.price}"

    @property
    def price(self):
        """Unit price as a Decimal in major currency units."""
        return from_minor_units(self.price_minor_units)
