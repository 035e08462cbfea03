"""
Signed order verification.

Ordering systems mint inline orders whose line items carry an
HMAC-SHA512 signature. An order is trusted to create a payment only if
every item verifies against at least one active signing token.

Signed message per item (no separators):
    item_type + item_data + title + quantity + price_minor_units

item_data is rendered as compact JSON with sorted keys and unescaped
unicode, and the price is the integer number of minor units, so signer
and verifier never disagree about decimal formatting.

Usage:
    from payments.signing import SignedItem, SignedOrderVerifier

    verified = SignedOrderVerifier.verify(items, tokens)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from payments.exceptions import InvalidSignatureError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

SIGNATURE_BYTES = hashlib.sha512().digest_size


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class SignedItem:
    """
    Line item of an inline order as received from the client.

    Attributes:
        item_type: Free-form type tag
        item_data: Opaque JSON value
        title: Display title
        quantity: Number of units
        price_minor_units: Unit price in minor units
        signature: Hex-encoded HMAC-SHA512 (128 hex characters)
    """

    item_type: str
    item_data: Any
    title: str
    quantity: int
    price_minor_units: int
    signature: str

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.quantity < 1:
            raise ValueError("quantity must be at least 1")


@dataclass(frozen=True)
class VerifiedItem:
    """Line item whose signature has been checked."""

    item_type: str
    item_data: Any
    title: str
    quantity: int
    price_minor_units: int


# =============================================================================
# Canonical Form
# =============================================================================


def canonical_item_data(item_data: Any) -> str:
    return json.dumps(item_data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def signing_message(
    item_type: str,
    item_data: Any,
    title: str,
    quantity: int,
    price_minor_units: int,
) -> bytes:
    """Build the exact byte string that is signed for one item."""
    return (
        f"{item_type}{canonical_item_data(item_data)}{title}{quantity}{price_minor_units}"
    ).encode("utf-8")


def sign_item(
    token: bytes,
    item_type: str,
    item_data: Any,
    title: str,
    quantity: int,
    price_minor_units: int,
) -> str:
    """
    Compute the hex signature for an item.

    Used by trusted ordering systems and by tests; the service itself only
    verifies.
    """
    message = signing_message(item_type, item_data, title, quantity, price_minor_units)
    return hmac.new(token, message, hashlib.sha512).hexdigest()


# =============================================================================
# Verifier
# =============================================================================


class SignedOrderVerifier:
    """
    All-or-nothing verification of signed item batches.

    Each item is accepted when any token produces a matching MAC. Every
    token is tried for every item and comparisons use hmac.compare_digest.
    """

    @classmethod
    def verify(
        cls,
        items: Sequence[SignedItem],
        tokens: Iterable[bytes],
    ) -> list[VerifiedItem]:
        """
        Verify a batch of signed items.

        Args:
            items: Items in the order they were submitted
            tokens: Currently valid signing tokens

        Returns:
            The verified items, in submission order

        Raises:
            InvalidSignatureError: Any item fails against every token,
                or no tokens are configured
        """
        tokens = [bytes(token) for token in tokens]
        if not tokens:
            logger.error("Signed order rejected: no signing tokens configured")
            raise InvalidSignatureError("No signing tokens are configured")

        verified = []
        for index, item in enumerate(items):
            if not cls._item_matches(item, tokens):
                logger.warning(
                    "Signed order rejected: invalid item signature",
                    extra={"item_index": index, "item_type": item.item_type},
                )
                raise InvalidSignatureError(
                    "Invalid signature",
                    details={"item_index": index},
                )
            verified.append(
                VerifiedItem(
                    item_type=item.item_type,
                    item_data=item.item_data,
                    title=item.title,
                    quantity=item.quantity,
                    price_minor_units=item.price_minor_units,
                )
            )
        return verified

    @staticmethod
    def _item_matches(item: SignedItem, tokens: list[bytes]) -> bool:
        try:
            supplied = bytes.fromhex(item.signature)
        except ValueError:
            return False
        if len(supplied) != SIGNATURE_BYTES:
            return False

        message = signing_message(
            item.item_type,
            item.item_data,
            item.title,
            item.quantity,
            item.price_minor_units,
        )
        matched = False
        for token in tokens:
            expected = hmac.new(token, message, hashlib.sha512).digest()
            # No early exit so timing does not depend on which token matched
            matched |= hmac.compare_digest(expected, supplied)
        return matched
