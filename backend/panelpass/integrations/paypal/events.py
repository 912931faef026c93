"""
PayPal webhook event adapter.

Validates PayPal webhook envelopes against one pydantic model per handled
event type and converts them into canonical PaymentEvents.

Handled event types:
- PAYMENT.CAPTURE.COMPLETED            one-time order captured (Day Pass)
- BILLING.SUBSCRIPTION.CREATED         subscription created (Member)
- BILLING.SUBSCRIPTION.ACTIVATED       subscription (re)activated
- BILLING.SUBSCRIPTION.CANCELLED       cancelled by user or merchant
- BILLING.SUBSCRIPTION.SUSPENDED       suspended, treated as cancelled
- BILLING.SUBSCRIPTION.EXPIRED         reached the end of its cycles
- BILLING.SUBSCRIPTION.PAYMENT.FAILED  recurring charge declined
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from panelpass.entitlements.errors import EventNormalizationError
from panelpass.entitlements.models import (
    CorrelationKey,
    CorrelationRefs,
    EventKind,
    PaymentEvent,
    UserRef,
)
from panelpass.integrations.payment_metadata import parse_metadata, subject_from_metadata
from panelpass.models.profile import PaymentProvider

CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
SUBSCRIPTION_CREATED = "BILLING.SUBSCRIPTION.CREATED"
SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
SUBSCRIPTION_SUSPENDED = "BILLING.SUBSCRIPTION.SUSPENDED"
SUBSCRIPTION_EXPIRED = "BILLING.SUBSCRIPTION.EXPIRED"
SUBSCRIPTION_PAYMENT_FAILED = "BILLING.SUBSCRIPTION.PAYMENT.FAILED"

EVENT_KINDS = {
    CAPTURE_COMPLETED: EventKind.CAPTURE_COMPLETED,
    SUBSCRIPTION_CREATED: EventKind.SUBSCRIPTION_CREATED,
    SUBSCRIPTION_ACTIVATED: EventKind.SUBSCRIPTION_ACTIVATED,
    SUBSCRIPTION_CANCELLED: EventKind.SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_SUSPENDED: EventKind.SUBSCRIPTION_SUSPENDED,
    SUBSCRIPTION_EXPIRED: EventKind.SUBSCRIPTION_EXPIRED,
    SUBSCRIPTION_PAYMENT_FAILED: EventKind.PAYMENT_FAILED,
}


# =============================================================================
# Resources
# =============================================================================

class RelatedIds(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: Optional[str] = None


class SupplementaryData(BaseModel):
    model_config = ConfigDict(extra="allow")

    related_ids: Optional[RelatedIds] = None


class PurchaseUnit(BaseModel):
    model_config = ConfigDict(extra="allow")

    custom_id: Optional[str] = None


class CaptureResource(BaseModel):
    """Capture resource of PAYMENT.CAPTURE.COMPLETED."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    order_id: Optional[str] = None
    custom_id: Optional[str] = None
    purchase_units: List[PurchaseUnit] = Field(default_factory=list)
    supplementary_data: Optional[SupplementaryData] = None

    @model_validator(mode="after")
    def _require_order_id(self) -> "CaptureResource":
        if not self.resolved_order_id:
            raise ValueError("capture carries no order id")
        return self

    @property
    def resolved_order_id(self) -> Optional[str]:
        """
        The order the capture belongs to.

        The capture's own id differs from the order id stored at checkout,
        so the related order id takes precedence.
        """
        related = self.supplementary_data.related_ids if self.supplementary_data else None
        if related and related.order_id:
            return related.order_id
        return self.order_id or self.id

    @property
    def resolved_custom_id(self) -> Optional[str]:
        if self.custom_id:
            return self.custom_id
        if self.purchase_units:
            return self.purchase_units[0].custom_id
        return None


class SubscriptionResource(BaseModel):
    """Subscription resource of BILLING.SUBSCRIPTION.* events."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    custom_id: Optional[str] = None
    status: Optional[str] = None


class PaymentFailedResource(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    billing_agreement_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_subscription_id(self) -> "PaymentFailedResource":
        if not self.subscription_id:
            raise ValueError("payment failure carries no subscription id")
        return self

    @property
    def subscription_id(self) -> Optional[str]:
        return self.id or self.billing_agreement_id


# =============================================================================
# Envelopes (one variant per event kind)
# =============================================================================

class CaptureCompletedEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: Literal["PAYMENT.CAPTURE.COMPLETED"]
    id: Optional[str] = None
    resource: CaptureResource

    def to_payment_event(self) -> PaymentEvent:
        order_id = self.resource.resolved_order_id
        metadata = parse_metadata(self.resource.resolved_custom_id, plain_key="user_id")
        return PaymentEvent(
            kind=EventKind.CAPTURE_COMPLETED,
            provider=PaymentProvider.PAYPAL,
            event_type=self.event_type,
            subject=subject_from_metadata(metadata),
            lookup=CorrelationKey("paypal_order_id", order_id),
            refs=CorrelationRefs(paypal_order_id=order_id),
            plan_type=metadata.get("plan_type"),
            provider_event_id=self.id,
        )


class SubscriptionLifecycleEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: Literal[
        "BILLING.SUBSCRIPTION.CREATED",
        "BILLING.SUBSCRIPTION.ACTIVATED",
        "BILLING.SUBSCRIPTION.CANCELLED",
        "BILLING.SUBSCRIPTION.SUSPENDED",
        "BILLING.SUBSCRIPTION.EXPIRED",
    ]
    id: Optional[str] = None
    resource: SubscriptionResource

    def to_payment_event(self) -> PaymentEvent:
        subscription_id = self.resource.id

        # Only the creation event is trusted to name the user directly
        subject = None
        if self.event_type == SUBSCRIPTION_CREATED:
            user_id = parse_metadata(self.resource.custom_id, plain_key="user_id").get("user_id")
            if user_id:
                subject = UserRef(user_id=str(user_id))

        return PaymentEvent(
            kind=EVENT_KINDS[self.event_type],
            provider=PaymentProvider.PAYPAL,
            event_type=self.event_type,
            subject=subject,
            lookup=CorrelationKey("paypal_subscription_id", subscription_id),
            refs=CorrelationRefs(paypal_subscription_id=subscription_id),
            provider_event_id=self.id,
        )


class SubscriptionPaymentFailedEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: Literal["BILLING.SUBSCRIPTION.PAYMENT.FAILED"]
    id: Optional[str] = None
    resource: PaymentFailedResource

    def to_payment_event(self) -> PaymentEvent:
        subscription_id = self.resource.subscription_id
        return PaymentEvent(
            kind=EventKind.PAYMENT_FAILED,
            provider=PaymentProvider.PAYPAL,
            event_type=self.event_type,
            lookup=CorrelationKey("paypal_subscription_id", subscription_id),
            refs=CorrelationRefs(paypal_subscription_id=subscription_id),
            provider_event_id=self.id,
        )


PayPalWebhookEvent = Annotated[
    Union[CaptureCompletedEvent, SubscriptionLifecycleEvent, SubscriptionPaymentFailedEvent],
    Field(discriminator="event_type"),
]

_event_adapter = TypeAdapter(PayPalWebhookEvent)


def normalize_event(envelope: Dict[str, Any]) -> Optional[PaymentEvent]:
    """
    Convert a decoded PayPal webhook envelope into a PaymentEvent.

    Returns:
        PaymentEvent, or None for event types that are not handled

    Raises:
        EventNormalizationError: If a handled event type fails validation
    """
    event_type = envelope.get("event_type")
    if event_type not in EVENT_KINDS:
        return None

    try:
        parsed = _event_adapter.validate_python(envelope)
    except ValidationError as e:
        raise EventNormalizationError(
            PaymentProvider.PAYPAL.value,
            event_type,
            "; ".join(err["msg"] for err in e.errors())
        ) from e

    return parsed.to_payment_event()
