"""
Payment domain models.

This module contains all payment-related models:
- Payment: Central payment entity tracking the payment lifecycle
- PaymentItem: Immutable line items of a payment
- ThreedsChallenge: Outstanding 3-D Secure step-up for an OPEN payment
- CardRecord: Cards and stored tokens presented at checkout
- SigningToken: Keys for signed order verification
"""

from payments.models.card_record import CardRecord
from payments.models.payment import Payment, PaymentItem
from payments.models.signing_token import SigningToken
from payments.models.threeds_challenge import ThreedsChallenge

__all__ = [
    "CardRecord",
    "Payment",
    "PaymentItem",
    "SigningToken",
    "ThreedsChallenge",
]
