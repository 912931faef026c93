"""
Entitlement value types shared by adapters, reconciler, tracker and merger.

These are transient, per-request views. The profiles table is the only
authority on entitlement state.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from panelpass.models.profile import PaymentProvider, SubscriptionStatus, SubscriptionTier

PAYSTACK_REF_FIELDS = (
    "paystack_customer_code",
    "paystack_subscription_code",
    "paystack_transaction_ref",
)
PAYPAL_REF_FIELDS = (
    "paypal_order_id",
    "paypal_subscription_id",
)
CORRELATION_FIELDS = PAYSTACK_REF_FIELDS + PAYPAL_REF_FIELDS


class EventKind(str, Enum):
    """Canonical payment event kinds."""
    CAPTURE_COMPLETED = "capture_completed"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_SUSPENDED = "subscription_suspended"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    PAYMENT_FAILED = "payment_failed"


@dataclass(frozen=True)
class UserRef:
    user_id: str


@dataclass(frozen=True)
class SessionRef:
    session_id: str


SubjectRef = Union[UserRef, SessionRef]


@dataclass(frozen=True)
class CorrelationRefs:
    """Provider-side identifiers tying a payment to a profile."""
    paystack_customer_code: Optional[str] = None
    paystack_subscription_code: Optional[str] = None
    paystack_transaction_ref: Optional[str] = None
    paypal_order_id: Optional[str] = None
    paypal_subscription_id: Optional[str] = None

    def for_provider(self, provider: PaymentProvider) -> "CorrelationRefs":
        """Copy keeping only the given provider's references."""
        keep = _fields_for(provider)
        return CorrelationRefs(**{
            name: getattr(self, name) if name in keep else None
            for name in CORRELATION_FIELDS
        })

    def overlay(self, other: "CorrelationRefs") -> "CorrelationRefs":
        """Copy with every non-empty reference of ``other`` applied on top."""
        updates = {
            name: getattr(other, name)
            for name in CORRELATION_FIELDS
            if getattr(other, name)
        }
        return replace(self, **updates)

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _fields_for(provider: PaymentProvider) -> tuple:
    if provider == PaymentProvider.PAYSTACK:
        return PAYSTACK_REF_FIELDS
    if provider == PaymentProvider.PAYPAL:
        return PAYPAL_REF_FIELDS
    return ()


@dataclass(frozen=True)
class Entitlement:
    """Full entitlement tuple for one subject."""
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.FREE
    expires_at: Optional[datetime] = None
    payment_provider: PaymentProvider = PaymentProvider.NONE
    refs: CorrelationRefs = field(default_factory=CorrelationRefs)

    def is_active_at(self, now: datetime) -> bool:
        if self.status != SubscriptionStatus.ACTIVE:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > now

    def as_dict(self) -> dict:
        return {
            "tier": self.tier.value,
            "status": self.status.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "payment_provider": self.payment_provider.value,
            **self.refs.as_dict(),
        }


@dataclass(frozen=True)
class CorrelationKey:
    """Stored profile column used to find the subject when none is explicit."""
    field: str
    value: str

    def __post_init__(self):
        if self.field not in CORRELATION_FIELDS:
            raise ValueError(f"Unknown correlation field: {self.field}")


@dataclass(frozen=True)
class PaymentEvent:
    """Canonical payment event produced by a provider adapter."""
    kind: EventKind
    provider: PaymentProvider
    event_type: str
    subject: Optional[SubjectRef] = None
    lookup: Optional[CorrelationKey] = None
    refs: CorrelationRefs = field(default_factory=CorrelationRefs)
    plan_type: Optional[str] = None
    provider_event_id: Optional[str] = None

    @property
    def transaction_ref(self) -> Optional[str]:
        """One-time payment reference carried by a capture event."""
        return self.refs.paystack_transaction_ref or self.refs.paypal_order_id
