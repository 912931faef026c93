"""
Payment webhook handler.

Processes decoded PayPal and Paystack webhooks with:
- Normalization through the provider adapter
- Reconciliation into the entitlement store
- An audit row per delivery (best effort)

Nothing raised while processing reaches the route: providers retry on
non-2xx responses, so every outcome here is acknowledged and the failure is
recorded in logs and in payment_webhook_events instead.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from panelpass.entitlements.errors import EntitlementWriteError, EventNormalizationError
from panelpass.entitlements.models import PaymentEvent
from panelpass.integrations.paypal import events as paypal_events
from panelpass.integrations.paystack import events as paystack_events
from panelpass.models.base import utcnow
from panelpass.models.payment_webhook_event import PaymentWebhookEvent, WebhookOutcome
from panelpass.models.profile import PaymentProvider
from panelpass.services.subscription_reconciler import SubscriptionReconciler

logger = logging.getLogger(__name__)

NORMALIZERS: Dict[PaymentProvider, Callable[[Dict[str, Any]], Optional[PaymentEvent]]] = {
    PaymentProvider.PAYPAL: paypal_events.normalize_event,
    PaymentProvider.PAYSTACK: paystack_events.normalize_event,
}


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    outcome: str
    event_type: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    error: Optional[str] = None


def envelope_event_type(provider: PaymentProvider, envelope: Dict[str, Any]) -> Optional[str]:
    """Event type field of a provider envelope."""
    if provider == PaymentProvider.PAYSTACK:
        return envelope.get("event")
    return envelope.get("event_type")


def envelope_event_id(provider: PaymentProvider, envelope: Dict[str, Any]) -> Optional[str]:
    if provider == PaymentProvider.PAYSTACK:
        data = envelope.get("data")
        value = data.get("id") if isinstance(data, dict) else None
    else:
        value = envelope.get("id")
    return None if value is None else str(value)


class PaymentWebhookHandler:
    """
    Handler for payment provider webhooks.
    """

    def __init__(
        self,
        db_session: Session,
        clock: Callable[[], datetime] = utcnow,
        reconciler: Optional[SubscriptionReconciler] = None
    ):
        """
        Initialize webhook handler.

        Args:
            db_session: Database session
            clock: Source of the processing time
            reconciler: Reconciler to apply events with
        """
        self.db = db_session
        self.clock = clock
        self.reconciler = reconciler or SubscriptionReconciler(db_session, clock=clock)

    def handle(
        self,
        provider: PaymentProvider,
        envelope: Dict[str, Any],
        raw_body: bytes = b"",
        signature_valid: bool = True
    ) -> WebhookProcessingResult:
        """
        Normalize, reconcile and audit one webhook delivery.

        Args:
            provider: Provider the webhook came from
            envelope: JSON-decoded webhook body
            raw_body: Raw request body (hashed for the audit row)
            signature_valid: Result of the route's signature check

        Returns:
            WebhookProcessingResult (never raises)
        """
        event_type = envelope_event_type(provider, envelope)
        result = self._process(provider, envelope, event_type)

        self._record_event(
            provider=provider,
            envelope=envelope,
            event_type=event_type,
            raw_body=raw_body,
            signature_valid=signature_valid,
            result=result
        )
        return result

    def _process(
        self,
        provider: PaymentProvider,
        envelope: Dict[str, Any],
        event_type: Optional[str]
    ) -> WebhookProcessingResult:
        try:
            event = NORMALIZERS[provider](envelope)
        except EventNormalizationError as e:
            logger.warning("Payment webhook failed validation", extra={
                "provider": provider.value,
                "event_type": event_type,
                "reason": e.reason
            })
            return WebhookProcessingResult(
                processed=False,
                message="Invalid event payload",
                outcome=WebhookOutcome.INVALID,
                event_type=event_type,
                error=str(e)
            )

        if event is None:
            logger.info("Unhandled payment webhook event type", extra={
                "provider": provider.value,
                "event_type": event_type
            })
            return WebhookProcessingResult(
                processed=False,
                message=f"Event type {event_type} not handled",
                outcome=WebhookOutcome.IGNORED,
                event_type=event_type
            )

        logger.info("Processing payment webhook", extra={
            "provider": provider.value,
            "event_type": event_type,
            "kind": event.kind.value
        })

        try:
            reconciled = self.reconciler.reconcile(event)
        except EntitlementWriteError as e:
            logger.error("Entitlement write failed for payment webhook", extra={
                "provider": provider.value,
                "event_type": event_type,
                "error": str(e)
            })
            return WebhookProcessingResult(
                processed=False,
                message="Entitlement write failed",
                outcome=WebhookOutcome.ERROR,
                event_type=event_type,
                error=str(e)
            )
        except Exception as e:
            self.db.rollback()
            logger.error("Unexpected error processing payment webhook", extra={
                "provider": provider.value,
                "event_type": event_type,
                "error": str(e)
            }, exc_info=True)
            return WebhookProcessingResult(
                processed=False,
                message="Internal error",
                outcome=WebhookOutcome.ERROR,
                event_type=event_type,
                error=str(e)
            )

        return WebhookProcessingResult(
            processed=reconciled.applied,
            message=reconciled.message,
            outcome=reconciled.outcome,
            event_type=event_type,
            user_id=reconciled.user_id,
            session_id=reconciled.session_id
        )

    def _record_event(
        self,
        provider: PaymentProvider,
        envelope: Dict[str, Any],
        event_type: Optional[str],
        raw_body: bytes,
        signature_valid: bool,
        result: WebhookProcessingResult
    ) -> None:
        """Write the audit row. Failures are logged, never raised."""
        detail = result.error or result.message
        try:
            self.db.add(PaymentWebhookEvent(
                provider=provider.value,
                event_type=event_type or "unknown",
                provider_event_id=envelope_event_id(provider, envelope),
                payload_hash=hashlib.sha256(raw_body).hexdigest() if raw_body else None,
                signature_valid=signature_valid,
                outcome=result.outcome,
                detail=detail[:2000] if detail else None,
                processed_at=self.clock()
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Failed to record payment webhook event", extra={
                "provider": provider.value,
                "event_type": event_type,
                "error": str(e)
            })


def get_payment_webhook_handler(db_session: Session) -> PaymentWebhookHandler:
    """Factory function for PaymentWebhookHandler."""
    return PaymentWebhookHandler(db_session)
