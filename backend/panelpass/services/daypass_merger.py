"""
Session-to-account merger.

Called when a visitor who bought an anonymous Day Pass authenticates. The
pass is copied onto the user's profile, then marked merged so it no longer
grants anonymous access.

The two writes are separate commits. If marking the pass fails after the
profile write succeeded, the user still has the entitlement and the pass
stays usable from its cookie until it expires.
"""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from panelpass.entitlements.models import CorrelationRefs, Entitlement
from panelpass.models.base import ensure_utc, utcnow
from panelpass.models.profile import PaymentProvider, SubscriptionStatus, SubscriptionTier
from panelpass.repositories.profile_repository import ProfileRepository
from panelpass.services.daypass_tracker import DayPassTracker

logger = logging.getLogger(__name__)


def _refs_for_pass(provider: PaymentProvider, transaction_ref) -> CorrelationRefs:
    if provider == PaymentProvider.PAYSTACK:
        return CorrelationRefs(paystack_transaction_ref=transaction_ref)
    return CorrelationRefs(paypal_order_id=transaction_ref)


class DayPassMerger:
    """Move an anonymous Day Pass onto a registered user's profile."""

    def __init__(self, db_session: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db_session
        self.clock = clock
        self.tracker = DayPassTracker(db_session, clock=clock)
        self.profiles = ProfileRepository(db_session)

    def merge(self, session_id: str, user_id: str) -> bool:
        """
        Merge the Day Pass held by ``session_id`` into ``user_id``.

        Never raises. Returns False when there is nothing to merge (no pass,
        already merged, expired) or the profile write fails.
        """
        if not session_id or not user_id:
            return False

        try:
            daypass = self.tracker.get_unmerged(session_id)
            if daypass is None:
                return False

            expires_at = ensure_utc(daypass.expires_at)
            if expires_at <= self.clock():
                logger.info("Skipping merge of expired Day Pass", extra={
                    "session_id": session_id,
                    "user_id": user_id
                })
                return False

            provider = PaymentProvider(daypass.payment_provider)
            entitlement = Entitlement(
                tier=SubscriptionTier.DAYPASS,
                status=SubscriptionStatus.ACTIVE,
                expires_at=expires_at,
                payment_provider=provider,
                refs=_refs_for_pass(provider, daypass.transaction_ref),
            )
            self.profiles.write_entitlement(user_id, entitlement)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error("Failed to merge Day Pass into profile", extra={
                "session_id": session_id,
                "user_id": user_id,
                "error": str(e)
            }, exc_info=True)
            return False

        try:
            self.tracker.mark_merged(session_id, user_id)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error("Day Pass copied to profile but not marked merged", extra={
                "session_id": session_id,
                "user_id": user_id,
                "error": str(e)
            }, exc_info=True)

        logger.info("Anonymous Day Pass merged", extra={
            "session_id": session_id,
            "user_id": user_id,
            "expires_at": expires_at.isoformat()
        })
        return True
