"""
AnonymousDayPass model for pre-account Day Pass purchases.

Rows are never deleted. Once user_id is set the pass has been merged into
that user's profile and no longer grants anonymous access.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, CheckConstraint

from panelpass.db_base import Base
from panelpass.models.base import TimestampMixin, generate_uuid


class AnonymousDayPass(Base, TimestampMixin):
    """Day Pass keyed by the browser session cookie."""

    __tablename__ = "anonymous_daypasses"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    session_id = Column(
        String(255),
        nullable=False,
        unique=True,
        comment="Value of the daypass_session_id cookie"
    )
    expires_at = Column(
        DateTime(timezone=True),
        nullable=False
    )
    payment_provider = Column(
        String(20),
        nullable=False,
        comment="paypal | paystack"
    )
    transaction_ref = Column(
        String(255),
        nullable=True,
        comment="PayPal order id or Paystack transaction reference"
    )
    user_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Set when the pass is merged into an account"
    )

    __table_args__ = (
        CheckConstraint(
            "payment_provider IN ('paystack', 'paypal')",
            name="ck_anonymous_daypasses_provider"
        ),
        Index("ix_anonymous_daypasses_session_id", "session_id"),
        Index("ix_anonymous_daypasses_expires_at", "expires_at"),
        Index("ix_anonymous_daypasses_user_id", "user_id"),
    )

    @property
    def is_merged(self) -> bool:
        return self.user_id is not None

    def __repr__(self) -> str:
        return (
            f"<AnonymousDayPass(session_id={self.session_id}, "
            f"expires_at={self.expires_at}, user_id={self.user_id})>"
        )
