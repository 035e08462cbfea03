"""
Tests for state machine transitions using django-fsm.

Tests valid and invalid state transitions for the Payment model.
"""

import pytest
from django_fsm import TransitionNotAllowed

from payments.models import Payment
from payments.state_machines import PaymentState
from payments.tests.factories import PaymentFactory


# =============================================================================
# Payment State Transition Tests
# =============================================================================


class TestPaymentTransitions:
    """Tests for Payment state machine transitions."""

    # -------------------------------------------------------------------------
    # Valid Transitions
    # -------------------------------------------------------------------------

    def test_open_to_paid(self, db):
        """Should transition from open to paid and record the capture."""
        payment = PaymentFactory()

        payment.mark_paid(payment_method="VISA ****1111", order_code="wp-1")
        payment.save()

        assert payment.state == PaymentState.PAID
        assert payment.payment_method == "VISA ****1111"
        assert payment.gateway_order_code == "wp-1"
        assert payment.paid_at is not None

    def test_paid_to_complete(self, db):
        """Should transition from paid to complete."""
        payment = PaymentFactory(state=PaymentState.PAID)

        payment.complete()
        payment.save()

        assert payment.state == PaymentState.COMPLETE

    def test_transition_persists(self, db):
        payment = PaymentFactory()
        payment.mark_paid(payment_method=None, order_code="wp-1")
        payment.save()

        assert Payment.objects.get(id=payment.id).state == PaymentState.PAID

    # -------------------------------------------------------------------------
    # Invalid Transitions
    # -------------------------------------------------------------------------

    def test_cannot_mark_paid_twice(self, db):
        """Should not mark a paid payment as paid again."""
        payment = PaymentFactory(state=PaymentState.PAID)

        with pytest.raises(TransitionNotAllowed):
            payment.mark_paid(payment_method="VISA ****1111", order_code="wp-2")

    def test_cannot_complete_open_payment(self, db):
        """Should not skip PAID."""
        payment = PaymentFactory()

        with pytest.raises(TransitionNotAllowed):
            payment.complete()

    def test_complete_is_terminal(self, db):
        payment = PaymentFactory(state=PaymentState.COMPLETE)

        with pytest.raises(TransitionNotAllowed):
            payment.mark_paid()
        with pytest.raises(TransitionNotAllowed):
            payment.complete()

    def test_state_cannot_be_assigned_directly(self, db):
        """Protected FSM field rejects direct assignment."""
        payment = PaymentFactory()

        with pytest.raises(AttributeError):
            payment.state = PaymentState.PAID


# =============================================================================
# Versioning Tests
# =============================================================================


class TestPaymentVersioning:
    def test_version_starts_at_one(self, db):
        assert PaymentFactory().version == 1

    def test_version_increments_on_save(self, db):
        payment = PaymentFactory()

        payment.mark_paid(payment_method=None, order_code="wp-1")
        payment.save()

        assert payment.version == 2
