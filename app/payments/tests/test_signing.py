"""
Tests for signed order verification.

Covers the canonical signed message, single and multi-token verification,
and all-or-nothing rejection of tampered batches.
"""

import dataclasses
import hashlib
import hmac

import pytest

from payments.exceptions import InvalidSignatureError
from payments.signing import (
    SIGNATURE_BYTES,
    SignedItem,
    SignedOrderVerifier,
    VerifiedItem,
    canonical_item_data,
    sign_item,
    signing_message,
)

TOKEN = b"k" * 32
OTHER_TOKEN = b"o" * 32


def make_item(token=TOKEN, **overrides):
    fields = {
        "item_type": "repair",
        "item_data": {"device": "iPhone 8", "repair": "screen"},
        "title": "Screen repair",
        "quantity": 1,
        "price_minor_units": 4999,
    }
    fields.update(overrides)
    return SignedItem(signature=sign_item(token, **fields), **fields)


# =============================================================================
# Canonical Form
# =============================================================================


class TestSigningMessage:
    def test_concatenates_fields_without_separators(self):
        message = signing_message("repair", {"b": 1, "a": "x"}, "Title", 2, 4999)

        assert message == b'repair{"a":"x","b":1}Title24999'

    def test_unicode_is_not_escaped(self):
        assert canonical_item_data({"name": "café"}) == '{"name":"café"}'
        assert "café".encode() in signing_message("t", {"name": "café"}, "x", 1, 1)

    def test_signature_is_hmac_sha512_hex(self):
        expected = hmac.new(
            TOKEN,
            signing_message("repair", {}, "Title", 1, 100),
            hashlib.sha512,
        ).hexdigest()

        assert sign_item(TOKEN, "repair", {}, "Title", 1, 100) == expected
        assert len(expected) == SIGNATURE_BYTES * 2


# =============================================================================
# Verification
# =============================================================================


class TestSignedOrderVerifier:
    def test_accepts_valid_batch(self):
        items = [make_item(), make_item(title="Case", quantity=2, price_minor_units=2000)]

        verified = SignedOrderVerifier.verify(items, [TOKEN])

        assert verified == [
            VerifiedItem(
                item_type="repair",
                item_data={"device": "iPhone 8", "repair": "screen"},
                title="Screen repair",
                quantity=1,
                price_minor_units=4999,
            ),
            VerifiedItem(
                item_type="repair",
                item_data={"device": "iPhone 8", "repair": "screen"},
                title="Case",
                quantity=2,
                price_minor_units=2000,
            ),
        ]

    def test_any_active_token_may_sign_each_item(self):
        """Items signed with different tokens verify within one batch."""
        items = [make_item(TOKEN), make_item(OTHER_TOKEN, title="Case")]

        verified = SignedOrderVerifier.verify(items, [TOKEN, OTHER_TOKEN])

        assert [item.title for item in verified] == ["Screen repair", "Case"]

    def test_accepts_uppercase_hex(self):
        item = make_item()
        item = dataclasses.replace(item, signature=item.signature.upper())

        assert len(SignedOrderVerifier.verify([item], [TOKEN])) == 1

    def test_key_order_of_item_data_does_not_matter(self):
        item = make_item(item_data={"a": 1, "b": 2})
        reordered = dataclasses.replace(item, item_data={"b": 2, "a": 1})

        assert len(SignedOrderVerifier.verify([reordered], [TOKEN])) == 1

    @pytest.mark.parametrize(
        "field,value",
        [
            ("price_minor_units", 1),
            ("quantity", 5),
            ("title", "Free repair"),
            ("item_type", "gift"),
            ("item_data", {"device": "iPhone X"}),
        ],
    )
    def test_rejects_tampered_field(self, field, value):
        tampered = dataclasses.replace(make_item(), **{field: value})

        with pytest.raises(InvalidSignatureError):
            SignedOrderVerifier.verify([tampered], [TOKEN])

    def test_one_bad_item_rejects_the_batch(self):
        items = [make_item(), make_item(OTHER_TOKEN, title="Case")]

        with pytest.raises(InvalidSignatureError) as exc_info:
            SignedOrderVerifier.verify(items, [TOKEN])

        assert exc_info.value.details == {"item_index": 1}

    def test_rejects_unknown_token(self):
        with pytest.raises(InvalidSignatureError):
            SignedOrderVerifier.verify([make_item(OTHER_TOKEN)], [TOKEN])

    def test_rejects_when_no_tokens_configured(self):
        with pytest.raises(InvalidSignatureError):
            SignedOrderVerifier.verify([make_item()], [])

    @pytest.mark.parametrize("signature", ["", "zz" * 64, "ab" * 32, "ab" * 65])
    def test_rejects_malformed_signature(self, signature):
        item = dataclasses.replace(make_item(), signature=signature)

        with pytest.raises(InvalidSignatureError):
            SignedOrderVerifier.verify([item], [TOKEN])

    def test_accepts_memoryview_tokens(self):
        """BinaryField values may come back as memoryview."""
        assert len(SignedOrderVerifier.verify([make_item()], [memoryview(TOKEN)])) == 1


class TestSignedItem:
    def test_rejects_zero_quantity(self):
        with pytest.raises(ValueError):
            SignedItem("repair", {}, "Title", 0, 100, "ab" * 64)
