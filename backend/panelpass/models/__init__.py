"""
Database models for reader profiles, day passes and webhook audit.
"""

from panelpass.models.base import TimestampMixin
from panelpass.models.profile import (
    Profile,
    SubscriptionTier,
    SubscriptionStatus,
    PaymentProvider,
)
from panelpass.models.anonymous_daypass import AnonymousDayPass
from panelpass.models.payment_webhook_event import PaymentWebhookEvent, WebhookOutcome

__all__ = [
    "TimestampMixin",
    "Profile",
    "SubscriptionTier",
    "SubscriptionStatus",
    "PaymentProvider",
    "AnonymousDayPass",
    "PaymentWebhookEvent",
    "WebhookOutcome",
]
