"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States:
    open → paid → complete

    While a 3DS challenge is outstanding the payment stays OPEN; the
    challenge is tracked by a ThreedsChallenge row, not by a state value.
"""

from django.db import models


class PaymentState(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal state: COMPLETE

    State Flow:
        OPEN → PAID → COMPLETE

    OPEN payments can be charged (and re-charged after a decline).
    PAID is reached only through a gateway capture. COMPLETE is set by
    downstream fulfilment and never by the charge flow.
    """

    OPEN = "open", "Open"
    PAID = "paid", "Paid"
    COMPLETE = "complete", "Complete"


class PaymentEnvironment(models.TextChoices):
    """
    Gateway environment a payment is charged against.

    Selects the gateway credential set; never taken from charge input.
    """

    TEST = "test", "Test"
    LIVE = "live", "Live"


class ChargeStatus(models.TextChoices):
    """Client-visible outcome of a charge attempt."""

    SUCCESS = "SUCCESS", "Success"
    FAILED = "FAILED", "Failed"
    THREEDS = "3DS", "3DS challenge required"
    EXISTING_ACCOUNT = "EXISTING_ACCOUNT", "Existing account"
    UNKNOWN = "UNKNOWN", "Unknown"


__all__ = [
    "ChargeStatus",
    "PaymentEnvironment",
    "PaymentState",
]
