"""
Unit tests for the PayPal and Paystack webhook event adapters.

Tests cover:
- Mapping of each handled event type to its canonical kind
- Subject extraction from custom_id / metadata
- Correlation lookups and references
- Unknown event types (None) and invalid payloads (EventNormalizationError)
"""

import json
import pytest

from panelpass.entitlements.errors import EventNormalizationError
from panelpass.entitlements.models import EventKind, SessionRef, UserRef
from panelpass.integrations.payment_metadata import is_anonymous, parse_metadata, subject_from_metadata
from panelpass.integrations.paypal import events as paypal_events
from panelpass.integrations.paystack import events as paystack_events
from panelpass.models.profile import PaymentProvider


class TestPaymentMetadata:

    @pytest.mark.parametrize("raw,expected", [
        (None, {}),
        ("", {}),
        ({"user_id": "u1"}, {"user_id": "u1"}),
        ('{"user_id": "u1"}', {"user_id": "u1"}),
        ("not-json", {}),
        ("[1, 2]", {}),
    ])
    def test_parse_metadata(self, raw, expected):
        assert parse_metadata(raw) == expected

    def test_plain_string_with_key(self):
        assert parse_metadata("u1", plain_key="user_id") == {"user_id": "u1"}

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        ("true", True),
        ("TRUE", True),
        ("false", False),
        (None, False),
        (1, False),
    ])
    def test_is_anonymous(self, value, expected):
        assert is_anonymous({"is_anonymous": value}) is expected

    def test_anonymous_session_subject(self):
        subject = subject_from_metadata({"is_anonymous": "true", "session_id": "s1", "user_id": "u1"})
        assert subject == SessionRef("s1")

    def test_user_subject(self):
        assert subject_from_metadata({"user_id": "u1"}) == UserRef("u1")

    def test_anonymous_without_session_uses_user(self):
        assert subject_from_metadata({"is_anonymous": True, "user_id": "u1"}) == UserRef("u1")

    def test_no_subject(self):
        assert subject_from_metadata({"plan_type": "daypass"}) is None


# =============================================================================
# PayPal
# =============================================================================

class TestPayPalCaptureCompleted:

    def test_related_order_id_takes_precedence(self):
        event = paypal_events.normalize_event({
            "id": "WH-1",
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {
                "id": "CAPTURE-1",
                "custom_id": json.dumps({"user_id": "u1", "plan_type": "daypass"}),
                "supplementary_data": {"related_ids": {"order_id": "ORDER-1"}},
            },
        })

        assert event.kind == EventKind.CAPTURE_COMPLETED
        assert event.provider == PaymentProvider.PAYPAL
        assert event.subject == UserRef("u1")
        assert event.lookup.field == "paypal_order_id"
        assert event.lookup.value == "ORDER-1"
        assert event.refs.paypal_order_id == "ORDER-1"
        assert event.plan_type == "daypass"
        assert event.provider_event_id == "WH-1"

    def test_capture_id_used_when_no_order_id(self):
        event = paypal_events.normalize_event({
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {"id": "CAPTURE-1"},
        })

        assert event.refs.paypal_order_id == "CAPTURE-1"
        assert event.subject is None

    def test_custom_id_from_purchase_unit(self):
        event = paypal_events.normalize_event({
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {
                "order_id": "ORDER-2",
                "purchase_units": [
                    {"custom_id": '{"session_id": "s1", "is_anonymous": true}'}
                ],
            },
        })

        assert event.refs.paypal_order_id == "ORDER-2"
        assert event.subject == SessionRef("s1")

    def test_capture_without_any_id_is_invalid(self):
        with pytest.raises(EventNormalizationError) as exc_info:
            paypal_events.normalize_event({
                "event_type": "PAYMENT.CAPTURE.COMPLETED",
                "resource": {"custom_id": "u1"},
            })
        assert exc_info.value.provider == "paypal"


class TestPayPalSubscriptionEvents:

    @pytest.mark.parametrize("event_type,kind", [
        ("BILLING.SUBSCRIPTION.CREATED", EventKind.SUBSCRIPTION_CREATED),
        ("BILLING.SUBSCRIPTION.ACTIVATED", EventKind.SUBSCRIPTION_ACTIVATED),
        ("BILLING.SUBSCRIPTION.CANCELLED", EventKind.SUBSCRIPTION_CANCELLED),
        ("BILLING.SUBSCRIPTION.SUSPENDED", EventKind.SUBSCRIPTION_SUSPENDED),
        ("BILLING.SUBSCRIPTION.EXPIRED", EventKind.SUBSCRIPTION_EXPIRED),
    ])
    def test_lifecycle_kinds(self, event_type, kind):
        event = paypal_events.normalize_event({
            "event_type": event_type,
            "resource": {"id": "I-SUB1"},
        })

        assert event.kind == kind
        assert event.lookup.field == "paypal_subscription_id"
        assert event.lookup.value == "I-SUB1"
        assert event.refs.paypal_subscription_id == "I-SUB1"

    def test_only_created_trusts_custom_id(self):
        created = paypal_events.normalize_event({
            "event_type": "BILLING.SUBSCRIPTION.CREATED",
            "resource": {"id": "I-SUB1", "custom_id": '{"user_id": "u1"}'},
        })
        activated = paypal_events.normalize_event({
            "event_type": "BILLING.SUBSCRIPTION.ACTIVATED",
            "resource": {"id": "I-SUB1", "custom_id": '{"user_id": "u1"}'},
        })

        assert created.subject == UserRef("u1")
        assert activated.subject is None

    def test_payment_failed_uses_billing_agreement_id(self):
        event = paypal_events.normalize_event({
            "event_type": "BILLING.SUBSCRIPTION.PAYMENT.FAILED",
            "resource": {"billing_agreement_id": "I-SUB2"},
        })

        assert event.kind == EventKind.PAYMENT_FAILED
        assert event.lookup.value == "I-SUB2"

    def test_subscription_without_id_is_invalid(self):
        with pytest.raises(EventNormalizationError):
            paypal_events.normalize_event({
                "event_type": "BILLING.SUBSCRIPTION.CANCELLED",
                "resource": {"status": "CANCELLED"},
            })

    def test_missing_resource_is_invalid(self):
        with pytest.raises(EventNormalizationError):
            paypal_events.normalize_event({"event_type": "BILLING.SUBSCRIPTION.CREATED"})

    def test_unknown_event_type_returns_none(self):
        assert paypal_events.normalize_event({
            "event_type": "CHECKOUT.ORDER.APPROVED",
            "resource": {"id": "ORDER-1"},
        }) is None


# =============================================================================
# Paystack
# =============================================================================

class TestPaystackChargeSuccess:

    def test_charge_with_user_metadata(self):
        event = paystack_events.normalize_event({
            "event": "charge.success",
            "data": {
                "id": 302961,
                "reference": "ref_abc",
                "metadata": {"user_id": "u1", "plan_type": "daypass", "plan_name": "Day Pass"},
                "customer": {"customer_code": "CUS_1", "email": "reader@example.com"},
            },
        })

        assert event.kind == EventKind.CAPTURE_COMPLETED
        assert event.provider == PaymentProvider.PAYSTACK
        assert event.subject == UserRef("u1")
        assert event.refs.paystack_transaction_ref == "ref_abc"
        assert event.refs.paystack_customer_code == "CUS_1"
        assert event.lookup.field == "paystack_customer_code"
        assert event.plan_type == "daypass"
        assert event.provider_event_id == "302961"

    def test_metadata_as_json_string(self):
        event = paystack_events.normalize_event({
            "event": "charge.success",
            "data": {
                "reference": "ref_abc",
                "metadata": '{"session_id": "s1", "is_anonymous": "true", "plan_type": "daypass"}',
            },
        })

        assert event.subject == SessionRef("s1")
        assert event.lookup is None
        assert event.transaction_ref == "ref_abc"

    def test_empty_metadata(self):
        event = paystack_events.normalize_event({
            "event": "charge.success",
            "data": {"reference": "ref_abc", "metadata": ""},
        })

        assert event.subject is None
        assert event.plan_type is None

    def test_missing_reference_is_invalid(self):
        with pytest.raises(EventNormalizationError) as exc_info:
            paystack_events.normalize_event({
                "event": "charge.success",
                "data": {"metadata": {"user_id": "u1"}},
            })
        assert exc_info.value.event_type == "charge.success"


class TestPaystackSubscriptionEvents:

    def test_subscription_create(self):
        event = paystack_events.normalize_event({
            "event": "subscription.create",
            "data": {
                "subscription_code": "SUB_1",
                "customer": {"customer_code": "CUS_1"},
                "metadata": {"user_id": "u1"},
            },
        })

        assert event.kind == EventKind.SUBSCRIPTION_CREATED
        assert event.subject == UserRef("u1")
        assert event.lookup.field == "paystack_customer_code"
        assert event.lookup.value == "CUS_1"
        assert event.refs.paystack_subscription_code == "SUB_1"
        assert event.refs.paystack_customer_code == "CUS_1"

    def test_subscription_create_requires_customer_code(self):
        with pytest.raises(EventNormalizationError):
            paystack_events.normalize_event({
                "event": "subscription.create",
                "data": {"subscription_code": "SUB_1", "customer": {"email": "a@b.c"}},
            })

    @pytest.mark.parametrize("event_type,kind", [
        ("subscription.enable", EventKind.SUBSCRIPTION_ACTIVATED),
        ("subscription.disable", EventKind.SUBSCRIPTION_CANCELLED),
    ])
    def test_subscription_state(self, event_type, kind):
        event = paystack_events.normalize_event({
            "event": event_type,
            "data": {"subscription_code": "SUB_1"},
        })

        assert event.kind == kind
        assert event.lookup.field == "paystack_subscription_code"
        assert event.lookup.value == "SUB_1"

    def test_invoice_payment_failed(self):
        event = paystack_events.normalize_event({
            "event": "invoice.payment_failed",
            "data": {"subscription": {"subscription_code": "SUB_1"}},
        })

        assert event.kind == EventKind.PAYMENT_FAILED
        assert event.lookup.value == "SUB_1"

    def test_unknown_event_returns_none(self):
        assert paystack_events.normalize_event({
            "event": "transfer.success",
            "data": {"reference": "tr_1"},
        }) is None
