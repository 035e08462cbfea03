"""
Tests for payments app.

This package contains test modules for:
- test_models.py / test_state_transitions.py: Payment models and FSM transitions
- test_money.py / test_signing.py: Minor units and signed order verification
- test_payment_store.py: Persistence and the locked PAID transition
- test_payment_state_machine.py: SubmitCharge and 3DS completion
- test_views.py / test_serializers.py: API endpoints
- test_tasks.py: New order notification
- test_integration.py: Checkout journeys over HTTP

Usage:
    pytest payments/tests/
    pytest payments/tests/test_payment_state_machine.py
"""
