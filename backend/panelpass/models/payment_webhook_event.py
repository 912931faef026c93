"""
PaymentWebhookEvent model for auditing received provider webhooks.

Webhook handlers always acknowledge the provider, so this table is where
dropped or failed events become visible.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Boolean, Text, Index, func

from panelpass.db_base import Base


class WebhookOutcome(str):
    """Processing outcome values."""
    APPLIED = "applied"            # Entitlement or day pass written
    IGNORED = "ignored"            # Event kind not modelled
    UNRESOLVED = "unresolved"      # No matching user or session
    LOGGED = "logged"              # Recognized, intentionally not acted on
    INVALID = "invalid"            # Payload failed variant validation
    ERROR = "error"                # Store or unexpected failure


class PaymentWebhookEvent(Base):
    """One row per webhook delivery received from PayPal or Paystack."""

    __tablename__ = "payment_webhook_events"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Primary key (UUID)"
    )

    provider = Column(
        String(20),
        nullable=False,
        index=True,
        comment="paypal | paystack"
    )

    event_type = Column(
        String(100),
        nullable=False,
        comment="Provider event type (e.g., BILLING.SUBSCRIPTION.CREATED)"
    )

    provider_event_id = Column(
        String(255),
        nullable=True,
        comment="Provider event id when the envelope carries one"
    )

    payload_hash = Column(
        String(64),
        nullable=True,
        comment="SHA-256 hash of payload for debugging"
    )

    signature_valid = Column(
        Boolean,
        nullable=False,
        default=True
    )

    outcome = Column(
        String(20),
        nullable=False
    )

    detail = Column(
        Text,
        nullable=True
    )

    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When the webhook was processed"
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        Index(
            "idx_payment_webhook_events_provider_type",
            "provider",
            "event_type"
        ),
        Index(
            "idx_payment_webhook_events_processed",
            "processed_at",
            postgresql_ops={"processed_at": "DESC"}
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentWebhookEvent(id={self.id}, provider={self.provider}, "
            f"event_type={self.event_type}, outcome={self.outcome})>"
        )
