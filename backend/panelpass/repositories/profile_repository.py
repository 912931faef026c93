"""
Profile repository: the entitlement store.

Encapsulates all database operations on the entitlement columns of
profiles with:
- Full-tuple writes (never partial patches)
- Lookup by stored provider correlation ids
- Conversion between rows and Entitlement values

The repository flushes but never commits; services own the transaction.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from panelpass.entitlements.errors import ProfileNotFoundError
from panelpass.entitlements.models import (
    CORRELATION_FIELDS,
    CorrelationKey,
    CorrelationRefs,
    Entitlement,
)
from panelpass.models.base import ensure_utc
from panelpass.models.profile import (
    PaymentProvider,
    Profile,
    SubscriptionStatus,
    SubscriptionTier,
)

logger = logging.getLogger(__name__)


def _parse_enum(enum_cls, value, default):
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Unexpected stored value", extra={
            "enum": enum_cls.__name__,
            "value": value
        })
        return default


def profile_to_entitlement(profile: Profile) -> Entitlement:
    """Build the Entitlement value stored on a profile row."""
    return Entitlement(
        tier=_parse_enum(SubscriptionTier, profile.subscription_tier, SubscriptionTier.FREE),
        status=_parse_enum(SubscriptionStatus, profile.subscription_status, SubscriptionStatus.FREE),
        expires_at=ensure_utc(profile.subscription_end_date),
        payment_provider=_parse_enum(PaymentProvider, profile.payment_provider, PaymentProvider.NONE),
        refs=CorrelationRefs(**{
            name: getattr(profile, name) for name in CORRELATION_FIELDS
        }),
    )


class ProfileRepository:
    """
    Repository for profile entitlement data access.
    """

    def __init__(self, db_session: Session):
        """
        Initialize repository with database session.

        Args:
            db_session: SQLAlchemy database session
        """
        self.db = db_session

    def get(self, user_id: str) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.id == user_id).first()

    def get_entitlement(self, user_id: str) -> Optional[Entitlement]:
        """
        Get the current entitlement for a user.

        Returns:
            Entitlement if the profile exists, None otherwise
        """
        profile = self.get(user_id)
        if profile is None:
            return None
        return profile_to_entitlement(profile)

    def find_user_id(self, key: CorrelationKey) -> Optional[str]:
        """
        Find the profile holding a provider correlation id.

        Args:
            key: Profile column and value to match

        Returns:
            Profile id if found, None otherwise
        """
        column = getattr(Profile, key.field)
        row = self.db.query(Profile.id).filter(column == key.value).first()
        return row[0] if row else None

    def write_entitlement(self, user_id: str, entitlement: Entitlement) -> Profile:
        """
        Replace the full entitlement tuple on a profile.

        Every correlation column is written, so references belonging to a
        provider other than the entitlement's are cleared.

        Raises:
            ProfileNotFoundError: If the profile does not exist
        """
        profile = self.get(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        refs = entitlement.refs.for_provider(entitlement.payment_provider)

        profile.subscription_tier = entitlement.tier.value
        profile.subscription_status = entitlement.status.value
        profile.subscription_end_date = entitlement.expires_at
        profile.payment_provider = (
            None if entitlement.payment_provider == PaymentProvider.NONE
            else entitlement.payment_provider.value
        )
        for name in CORRELATION_FIELDS:
            setattr(profile, name, getattr(refs, name))

        self.db.flush()

        logger.info("Entitlement written", extra={
            "user_id": user_id,
            "tier": entitlement.tier.value,
            "status": entitlement.status.value,
            "payment_provider": entitlement.payment_provider.value,
            "expires_at": entitlement.expires_at.isoformat() if entitlement.expires_at else None
        })
        return profile

    def list_elapsed_active(self, now: datetime, limit: int = 500) -> List[Profile]:
        """
        Get active profiles whose end date has been reached.

        Args:
            now: Reference time
            limit: Maximum rows to return

        Returns:
            List of profiles, oldest end date first
        """
        return self.db.query(Profile).filter(
            Profile.subscription_status == SubscriptionStatus.ACTIVE.value,
            Profile.subscription_end_date.isnot(None),
            Profile.subscription_end_date <= now
        ).order_by(Profile.subscription_end_date.asc()).limit(limit).all()
