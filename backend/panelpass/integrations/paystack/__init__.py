"""
Paystack integration: API client and webhook event adapter.
"""

from panelpass.integrations.paystack.client import (
    PaystackAPIError,
    PaystackClient,
    PaystackError,
    get_paystack_client,
)
from panelpass.integrations.paystack.events import normalize_event

__all__ = [
    "PaystackAPIError",
    "PaystackClient",
    "PaystackError",
    "get_paystack_client",
    "normalize_event",
]
