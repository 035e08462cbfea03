"""
Payment services for coordinating payment operations.

This module provides:
- PaymentStore: All payment persistence and the locked PAID transition
- PaymentStateMachine: SubmitCharge and CompleteThreedsChallenge
- build_payment_state_machine: Wires the state machine to app clients

Usage:
    from payments.services import ChargeRequest, build_payment_state_machine

    machine = build_payment_state_machine()
    result = machine.submit_charge(ChargeRequest(...))

    result = machine.complete_threeds_challenge(
        payment_id=payment.id,
        response_code=pa_res,
        order_code=md,
        shopper=shopper,
    )
"""

from payments.services.payment_state_machine import (
    ChargeRequest,
    ChargeResult,
    InlineOrder,
    PaymentStateMachine,
    ThreedsResult,
    build_payment_state_machine,
)
from payments.services.payment_store import PaymentStore, card_fingerprint

__all__ = [
    "ChargeRequest",
    "ChargeResult",
    "InlineOrder",
    "PaymentStateMachine",
    "PaymentStore",
    "ThreedsResult",
    "build_payment_state_machine",
    "card_fingerprint",
]
