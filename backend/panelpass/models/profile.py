"""
Profile model carrying each reader's current entitlement.

CRITICAL: One entitlement per profile. Every payment write replaces the
full entitlement tuple (tier, status, end date, provider and all provider
correlation references) so a profile never holds references for two
providers at once.
"""

from enum import Enum

from sqlalchemy import Column, String, DateTime, Index, CheckConstraint

from panelpass.db_base import Base
from panelpass.models.base import TimestampMixin


class SubscriptionTier(str, Enum):
    """Access tier."""
    FREE = "free"
    MEMBER = "member"        # Weekly recurring subscription
    DAYPASS = "daypass"      # One-time, short-lived access


class SubscriptionStatus(str, Enum):
    """Entitlement status values."""
    FREE = "free"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentProvider(str, Enum):
    """Payment provider that produced the entitlement."""
    NONE = "none"            # Persisted as NULL
    PAYPAL = "paypal"
    PAYSTACK = "paystack"


class Profile(Base, TimestampMixin):
    """
    Reader profile and entitlement store.

    The id matches the identity provider's user id (Supabase auth.users).
    """

    __tablename__ = "profiles"

    id = Column(
        String(36),
        primary_key=True,
        comment="Identity provider user id"
    )
    email = Column(String(320), nullable=True)
    full_name = Column(String(255), nullable=True)

    # Entitlement tuple
    subscription_tier = Column(
        String(20),
        nullable=False,
        default=SubscriptionTier.FREE.value,
        comment="free | member | daypass"
    )
    subscription_status = Column(
        String(20),
        nullable=False,
        default=SubscriptionStatus.FREE.value,
        comment="free | active | cancelled | expired"
    )
    subscription_end_date = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Access expiry; NULL means no expiry tracked"
    )
    payment_provider = Column(
        String(20),
        nullable=True,
        comment="paypal | paystack; NULL when no provider"
    )

    # Paystack correlation references
    paystack_customer_code = Column(String(100), nullable=True)
    paystack_subscription_code = Column(String(100), nullable=True)
    paystack_transaction_ref = Column(String(255), nullable=True)

    # PayPal correlation references
    paypal_order_id = Column(String(100), nullable=True)
    paypal_subscription_id = Column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "subscription_status IN ('free', 'active', 'cancelled', 'expired')",
            name="ck_profiles_subscription_status"
        ),
        CheckConstraint(
            "subscription_tier IN ('free', 'member', 'daypass')",
            name="ck_profiles_subscription_tier"
        ),
        Index("ix_profiles_paypal_order_id", "paypal_order_id"),
        Index("ix_profiles_paypal_subscription_id", "paypal_subscription_id"),
        Index("ix_profiles_paystack_customer_code", "paystack_customer_code"),
        Index("ix_profiles_paystack_subscription_code", "paystack_subscription_code"),
        Index("ix_profiles_status_end_date", "subscription_status", "subscription_end_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Profile(id={self.id}, tier={self.subscription_tier}, "
            f"status={self.subscription_status})>"
        )
