"""
Payment adapters for external services.

This module provides the adapter for the Worldpay payment gateway. All
gateway API calls should go through it to ensure consistent error
handling, timeouts, credential selection, and observability.

Usage:
    from payments.adapters import GatewayOrder, WorldpayAdapter

    outcome = WorldpayAdapter.create_order(order, environment="live")
"""

from payments.adapters.worldpay_adapter import (
    BillingAddress,
    CardDetails,
    GatewayOrder,
    GatewayOutcome,
    OutcomeKind,
    ShopperContext,
    WorldpayAdapter,
)

__all__ = [
    "BillingAddress",
    "CardDetails",
    "GatewayOrder",
    "GatewayOutcome",
    "OutcomeKind",
    "ShopperContext",
    "WorldpayAdapter",
]
