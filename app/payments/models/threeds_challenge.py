"""
ThreedsChallenge model for outstanding 3-D Secure step-ups.

A row exists while the customer has been redirected to their card issuer
and the payment is waiting for the result. Rows are single-use: they are
deleted when the challenge is completed, before the gateway is contacted
again.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class ThreedsChallenge(UUIDPrimaryKeyMixin, BaseModel):
    """
    Outstanding 3DS challenge for an OPEN payment.

    Fields:
        payment: Payment awaiting the challenge result
        one_time_token: Gateway one-time 3DS token posted to the issuer form
        redirect_url: Issuer ACS URL the customer is sent to
        order_code: Gateway order code to complete the charge against

    Note:
        Only the most recent row is live. Creating a new challenge does not
        delete older rows; completion deletes every row of the payment.
    """

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.CASCADE,
        related_name="threeds_challenges",
        help_text="Payment awaiting the challenge result",
    )

    one_time_token = models.TextField(
        help_text="Gateway one-time 3DS token",
    )

    redirect_url = models.URLField(
        max_length=2048,
        help_text="Card issuer URL the customer is redirected to",
    )

    order_code = models.CharField(
        max_length=255,
        help_text="Gateway order code awaiting completion",
    )

    class Meta:
        ordering = ["-created_at"]
        get_latest_by = "created_at"
        verbose_name = "3DS Challenge"
        verbose_name_plural = "3DS Challenges"

    def __str__(self) -> str:
        return f"ThreedsChallenge({self.payment_id}, {self.order_code})"
