"""
PayPal integration: REST client and webhook event adapter.
"""

from panelpass.integrations.paypal.client import (
    PayPalAPIError,
    PayPalClient,
    PayPalError,
    get_paypal_client,
)
from panelpass.integrations.paypal.events import normalize_event

__all__ = [
    "PayPalAPIError",
    "PayPalClient",
    "PayPalError",
    "get_paypal_client",
    "normalize_event",
]
