"""
Tests for the payment notification task.
"""

from unittest.mock import MagicMock

import pytest
from django.core import mail

from payments.exceptions import PaymentNotFoundError
from payments.state_machines import PaymentState
from payments.tasks import NOTIFICATION_SUBJECT, format_notification, send_payment_notification
from payments.tests.factories import PaymentFactory, PaymentItemFactory


@pytest.fixture
def notified_payment(db):
    payment = PaymentFactory(state=PaymentState.PAID, payment_method="VISA_CREDIT **** 1111")
    PaymentItemFactory(
        payment=payment,
        item_type="repair",
        item_data={"device": "iPhone 8", "note": "Zoë"},
        title="Screen repair",
        quantity=2,
        price_minor_units=4999,
    )
    return payment


@pytest.fixture
def directory(monkeypatch, identity_user):
    from django.apps import apps

    client = MagicMock()
    client.get_user.return_value = identity_user
    monkeypatch.setattr(apps.get_app_config("identity"), "keycloak_client", client)
    return client


class TestFormatNotification:
    def test_body(self, notified_payment, identity_user):
        body = format_notification(notified_payment, notified_payment.items.all(), identity_user)

        assert f"Order id: {notified_payment.id}\n" in body
        assert f"Order date: {notified_payment.created_at.isoformat()}\n" in body
        assert "Environment: test\n" in body
        assert "Payment method: VISA_CREDIT **** 1111\n" in body
        assert "Customer name: Jane Doe\n" in body
        assert "Customer email: jane@example.com\n" in body
        assert "Customer phone: +447700900000\n" in body
        assert "- 2x Screen repair @49.99 GBP\n" in body
        assert "- Item type: repair\n" in body
        assert '- Item data: {"device":"iPhone 8","note":"Zoë"}' in body

    def test_missing_customer_details(self, notified_payment, identity_user):
        identity_user.first_name = None
        identity_user.last_name = None
        identity_user.email = None
        identity_user.attributes = {}
        notified_payment.payment_method = None

        body = format_notification(notified_payment, [], identity_user)

        assert "Customer name: NFN NLN\n" in body
        assert "Customer email: N/A\n" in body
        assert "Customer phone: N/A\n" in body
        assert "Payment method: N/A\n" in body


class TestSendPaymentNotification:
    def test_sends_email(self, settings, notified_payment, directory):
        settings.PAYMENT_NOTIFICATION_RECIPIENTS = ["orders@example.com", "ops@example.com"]
        settings.DEFAULT_FROM_EMAIL = "payments@example.com"

        result = send_payment_notification(str(notified_payment.id))

        assert result == {"status": "sent", "payment_id": str(notified_payment.id)}
        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.subject == NOTIFICATION_SUBJECT
        assert message.from_email == "payments@example.com"
        assert message.to == ["orders@example.com", "ops@example.com"]
        assert "Screen repair" in message.body
        directory.get_user.assert_called_once_with(notified_payment.customer_id)

    def test_skips_without_recipients(self, settings, notified_payment, directory):
        settings.PAYMENT_NOTIFICATION_RECIPIENTS = []

        result = send_payment_notification(str(notified_payment.id))

        assert result["status"] == "skipped"
        assert mail.outbox == []

    def test_unknown_payment(self, db, directory):
        with pytest.raises(PaymentNotFoundError):
            send_payment_notification("00000000-0000-0000-0000-000000000000")

        directory.get_user.assert_not_called()
