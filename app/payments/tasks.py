"""
Celery tasks for payment processing.

This module provides async tasks for:
- Sending the "New order notification" email after a capture

Dispatch is fire-and-forget: the state machine queues the task after the
PAID transition commits and never waits for it. The task is attempted
once; a failure is logged by Celery and changes nothing about the payment.

Usage:
    from payments.tasks import send_payment_notification

    send_payment_notification.delay(str(payment_id))
"""

from __future__ import annotations

import json
import logging
from uuid import UUID

from celery import shared_task
from django.apps import apps
from django.conf import settings
from django.core.mail import send_mail

from payments.services.payment_store import PaymentStore

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

NOTIFICATION_SUBJECT = "New order notification"
NOTIFICATION_CURRENCY = "GBP"


# =============================================================================
# Formatting
# =============================================================================


def format_item(item) -> str:
    return (
        f"- {item.quantity}x {item.title} @{item.price} {NOTIFICATION_CURRENCY}\n"
        f"- Item type: {item.item_type}\n"
        f"- Item data: {json.dumps(item.item_data, separators=(',', ':'), ensure_ascii=False)}"
    )


def format_notification(payment, items, user) -> str:
    """
    Render the plain-text order notification.

    Missing customer fields render as NFN / NLN for names and N/A
    otherwise.
    """
    email_items = "\n\n".join(format_item(item) for item in items)
    return (
        "New order\n"
        "---\n"
        f"Order id: {payment.id}\n"
        f"Order date: {payment.created_at.isoformat()}\n"
        f"Environment: {payment.environment}\n"
        f"Payment method: {payment.payment_method or 'N/A'}\n"
        "---\n"
        f"Customer name: {user.first_name or 'NFN'} {user.last_name or 'NLN'}\n"
        f"Customer email: {user.email or 'N/A'}\n"
        f"Customer phone: {user.get_attribute('phone') or 'N/A'}\n"
        "---\n"
        "Items:\n"
        "\n"
        f"{email_items}\n"
    )


# =============================================================================
# Notification Tasks
# =============================================================================


@shared_task(ignore_result=True)
def send_payment_notification(payment_id: str) -> dict:
    """
    Email the order team about a newly paid payment.

    Args:
        payment_id: UUID of the paid payment

    Returns:
        Dict with the send status

    Raises:
        PaymentNotFoundError: Payment vanished
        IdentityProviderError: Customer lookup failed
    """
    if isinstance(payment_id, str):
        payment_id = UUID(payment_id)

    payment = PaymentStore.get_payment(payment_id)
    items = PaymentStore.get_items(payment)
    user = apps.get_app_config("identity").keycloak_client.get_user(payment.customer_id)

    recipients = list(settings.PAYMENT_NOTIFICATION_RECIPIENTS)
    if not recipients:
        logger.warning(
            "No payment notification recipients configured",
            extra={"payment_id": str(payment_id)},
        )
        return {"status": "skipped", "payment_id": str(payment_id)}

    send_mail(
        NOTIFICATION_SUBJECT,
        format_notification(payment, items, user),
        settings.DEFAULT_FROM_EMAIL,
        recipients,
    )

    logger.info(
        "Payment notification sent",
        extra={"payment_id": str(payment_id), "recipient_count": len(recipients)},
    )
    return {"status": "sent", "payment_id": str(payment_id)}
