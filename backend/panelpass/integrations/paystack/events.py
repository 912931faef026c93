"""
Paystack webhook event adapter.

Validates Paystack webhook envelopes ({"event": ..., "data": {...}}) against
one pydantic model per handled event and converts them into canonical
PaymentEvents.

Handled events:
- charge.success          one-time charge or subscription renewal charge
- subscription.create     plan subscription created (Member)
- subscription.enable     subscription re-enabled
- subscription.disable    subscription disabled (cancelled)
- invoice.payment_failed  renewal charge declined
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

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

CHARGE_SUCCESS = "charge.success"
SUBSCRIPTION_CREATE = "subscription.create"
SUBSCRIPTION_ENABLE = "subscription.enable"
SUBSCRIPTION_DISABLE = "subscription.disable"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

EVENT_KINDS = {
    CHARGE_SUCCESS: EventKind.CAPTURE_COMPLETED,
    SUBSCRIPTION_CREATE: EventKind.SUBSCRIPTION_CREATED,
    SUBSCRIPTION_ENABLE: EventKind.SUBSCRIPTION_ACTIVATED,
    SUBSCRIPTION_DISABLE: EventKind.SUBSCRIPTION_CANCELLED,
    INVOICE_PAYMENT_FAILED: EventKind.PAYMENT_FAILED,
}


# Paystack echoes metadata as an object or a JSON string
Metadata = Annotated[Dict[str, Any], BeforeValidator(parse_metadata)]


def _id_as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


# =============================================================================
# Data objects
# =============================================================================

class PaystackCustomer(BaseModel):
    model_config = ConfigDict(extra="allow")

    customer_code: Optional[str] = None
    email: Optional[str] = None


class ChargeData(BaseModel):
    """data of charge.success."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    reference: str = Field(..., min_length=1)
    status: Optional[str] = None
    metadata: Metadata = Field(default_factory=dict)
    customer: Optional[PaystackCustomer] = None


class SubscriptionCreateData(BaseModel):
    """data of subscription.create."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    subscription_code: str = Field(..., min_length=1)
    customer: PaystackCustomer
    metadata: Metadata = Field(default_factory=dict)

    @field_validator("customer")
    @classmethod
    def _require_customer_code(cls, value: PaystackCustomer) -> PaystackCustomer:
        if not value.customer_code:
            raise ValueError("customer_code is required")
        return value


class SubscriptionData(BaseModel):
    """data of subscription.enable and subscription.disable."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    subscription_code: str = Field(..., min_length=1)


class InvoiceSubscription(BaseModel):
    model_config = ConfigDict(extra="allow")

    subscription_code: str = Field(..., min_length=1)


class InvoiceData(BaseModel):
    """data of invoice.payment_failed."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    subscription: InvoiceSubscription


# =============================================================================
# Envelopes (one variant per event kind)
# =============================================================================

class ChargeSuccessEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Literal["charge.success"]
    data: ChargeData

    def to_payment_event(self) -> PaymentEvent:
        metadata = self.data.metadata
        customer_code = self.data.customer.customer_code if self.data.customer else None
        return PaymentEvent(
            kind=EventKind.CAPTURE_COMPLETED,
            provider=PaymentProvider.PAYSTACK,
            event_type=self.event,
            subject=subject_from_metadata(metadata),
            lookup=CorrelationKey("paystack_customer_code", customer_code) if customer_code else None,
            refs=CorrelationRefs(
                paystack_transaction_ref=self.data.reference,
                paystack_customer_code=customer_code,
            ),
            plan_type=metadata.get("plan_type"),
            provider_event_id=_id_as_str(self.data.id),
        )


class SubscriptionCreateEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Literal["subscription.create"]
    data: SubscriptionCreateData

    def to_payment_event(self) -> PaymentEvent:
        customer_code = self.data.customer.customer_code
        user_id = self.data.metadata.get("user_id")
        return PaymentEvent(
            kind=EventKind.SUBSCRIPTION_CREATED,
            provider=PaymentProvider.PAYSTACK,
            event_type=self.event,
            subject=UserRef(user_id=str(user_id)) if user_id else None,
            lookup=CorrelationKey("paystack_customer_code", customer_code),
            refs=CorrelationRefs(
                paystack_subscription_code=self.data.subscription_code,
                paystack_customer_code=customer_code,
            ),
            provider_event_id=_id_as_str(self.data.id),
        )


class SubscriptionStateEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Literal["subscription.enable", "subscription.disable"]
    data: SubscriptionData

    def to_payment_event(self) -> PaymentEvent:
        code = self.data.subscription_code
        return PaymentEvent(
            kind=EVENT_KINDS[self.event],
            provider=PaymentProvider.PAYSTACK,
            event_type=self.event,
            lookup=CorrelationKey("paystack_subscription_code", code),
            refs=CorrelationRefs(paystack_subscription_code=code),
            provider_event_id=_id_as_str(self.data.id),
        )


class InvoicePaymentFailedEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Literal["invoice.payment_failed"]
    data: InvoiceData

    def to_payment_event(self) -> PaymentEvent:
        code = self.data.subscription.subscription_code
        return PaymentEvent(
            kind=EventKind.PAYMENT_FAILED,
            provider=PaymentProvider.PAYSTACK,
            event_type=self.event,
            lookup=CorrelationKey("paystack_subscription_code", code),
            refs=CorrelationRefs(paystack_subscription_code=code),
            provider_event_id=_id_as_str(self.data.id),
        )


PaystackWebhookEvent = Annotated[
    Union[
        ChargeSuccessEvent,
        SubscriptionCreateEvent,
        SubscriptionStateEvent,
        InvoicePaymentFailedEvent,
    ],
    Field(discriminator="event"),
]

_event_adapter = TypeAdapter(PaystackWebhookEvent)


def normalize_event(envelope: Dict[str, Any]) -> Optional[PaymentEvent]:
    """
    Convert a decoded Paystack webhook envelope into a PaymentEvent.

    Returns:
        PaymentEvent, or None for events that are not handled

    Raises:
        EventNormalizationError: If a handled event fails validation
    """
    event_type = envelope.get("event")
    if event_type not in EVENT_KINDS:
        return None

    try:
        parsed = _event_adapter.validate_python(envelope)
    except ValidationError as e:
        raise EventNormalizationError(
            PaymentProvider.PAYSTACK.value,
            event_type,
            "; ".join(err["msg"] for err in e.errors())
        ) from e

    return parsed.to_payment_event()
