"""
CardRecord model for cards presented at checkout.

Raw card numbers are never stored. A card is identified by a keyed
fingerprint of its number (or of the stored gateway token), which makes
repeated submissions of the same card idempotent.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class CardRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Card or stored token presented by a customer.

    Fields:
        customer_id: Identity provider user id of the card holder
        fingerprint: HMAC-SHA256 of the card number or token (hex)
        token: Gateway token when the card was presented as a token
        last4: Last four digits of the card number
        exp_month / exp_year: Card expiry
        name_on_card: Cardholder name
    """

    customer_id = models.UUIDField(
        db_index=True,
        help_text="Identity provider user id of the card holder",
    )

    fingerprint = models.CharField(
        max_length=64,
        unique=True,
        help_text="Keyed fingerprint of the card number or token",
    )

    token = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stored gateway token, if presented as a token",
    )

    last4 = models.CharField(
        max_length=4,
        blank=True,
        default="",
        help_text="Last four digits of the card number",
    )

    exp_month = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Expiry month (1-12)",
    )

    exp_year = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Expiry year (four digits)",
    )

    name_on_card = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Cardholder name",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Card"
        verbose_name_plural = "Cards"

    def __str__(self) -> str:
        if self.token:
            return f"CardRecord(token, {self.customer_id})"
        return f"CardRecord(****{self.last4}, {self.customer_id})"
