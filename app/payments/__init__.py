"""
Payments app for Worldpay card charges.

This app handles:
- Payment creation from privileged callers or signed inline orders
- Card charges with optional 3-D Secure step-up
- Reconciliation of 3DS challenge results
- New order notification emails

Related apps:
    - identity: customer resolution and bearer token verification

Usage:
    from payments.services import build_payment_state_machine

    machine = build_payment_state_machine()
    result = machine.submit_charge(charge_request)
"""
