"""
SigningToken model for signed order verification keys.

Tokens are managed by operators through the admin. Every active token is
tried when verifying an item signature, so keys can be rotated by adding
the new token before deactivating the old one.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel


class SigningToken(BaseModel):
    """
    Shared secret for HMAC-SHA512 item signatures.

    Fields:
        name: Operator-facing label
        token: Secret key bytes
        is_active: Whether the token is used for verification
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        help_text="Label identifying the issuing system or rotation",
    )

    token = models.BinaryField(
        help_text="Secret key bytes",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this token is accepted for verification",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Signing Token"
        verbose_name_plural = "Signing Tokens"

    def __str__(self) -> str:
        return f"SigningToken({self.name})"
