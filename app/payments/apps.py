"""
Payments app configuration.

This app provides payment processing including:
- Payment, line item, card and 3DS challenge persistence
- Signed order verification
- Worldpay gateway integration
- New order notifications
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
